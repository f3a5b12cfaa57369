"""Streaming of assistant text to the frontend sink."""

from __future__ import annotations

from typing import Awaitable, Callable

from apex_claw.ai.toolcall import THINK_OPEN, TOOL_CALL_OPEN

ChunkSink = Callable[[str], Awaitable[None]]

_MARKERS = (TOOL_CALL_OPEN, THINK_OPEN)

DEFAULT_FLUSH_BYTES = 800
PARAGRAPH_BREAK = "\n\n"


class ChunkBuffer:
    """Accumulates text and hands it to the sink in message-sized chunks.

    Each chunk becomes its own chat message, so chunks end on a boundary:
    everything up to the last paragraph break, or, once ``flush_bytes``
    (UTF-8) is reached, the last whitespace outside an open HTML element.
    :meth:`flush` sends whatever is left.
    """

    def __init__(self, sink: ChunkSink, flush_bytes: int = DEFAULT_FLUSH_BYTES):
        self._sink = sink
        self._flush_bytes = flush_bytes
        self._pending = ""
        self.sent: list[str] = []

    async def write(self, text: str) -> None:
        if not text:
            return
        self._pending += text
        brk = self._pending.rfind(PARAGRAPH_BREAK)
        if brk != -1:
            await self._emit(brk + len(PARAGRAPH_BREAK))
        while len(self._pending.encode("utf-8")) >= self._flush_bytes:
            await self._emit(_split_point(self._pending, self._flush_bytes))

    async def flush(self) -> None:
        await self._emit(len(self._pending))

    async def _emit(self, end: int) -> None:
        chunk, self._pending = self._pending[:end], self._pending[end:]
        if not chunk:
            return
        self.sent.append(chunk)
        await self._sink(chunk)

    @property
    def text(self) -> str:
        """Everything handed to the sink so far."""
        return "".join(self.sent)


def _split_point(text: str, limit: int) -> int:
    """Where to cut *text* so the head fits in *limit* UTF-8 bytes.

    Prefers the last whitespace with no HTML element open, then any
    whitespace, then a hard cut.
    """
    head = text.encode("utf-8")[:limit].decode("utf-8", errors="ignore")
    best = fallback = 0
    depth = 0
    i = 0
    while i < len(head):
        ch = head[i]
        if ch == "<":
            end = head.find(">", i)
            if end == -1:
                break
            tag = head[i + 1 : end]
            if tag.startswith("/"):
                depth = max(0, depth - 1)
            elif not tag.endswith("/"):
                depth += 1
            i = end + 1
            continue
        if ch.isspace():
            fallback = i + 1
            if depth == 0:
                best = i + 1
        i += 1
    return best or fallback or max(len(head), 1)


class StreamGate:
    """Releases live model output for one assistant turn.

    Text is released only while it is certain to be user-visible: nothing at
    or after a tool-call or think marker, no tail that could still grow into
    a marker, and no trailing whitespace (the final answer is stripped).
    """

    def __init__(self, buffer: ChunkBuffer | None):
        self._buffer = buffer
        self._raw = ""
        self._released = ""
        self._closed = False

    async def feed(self, delta: str) -> None:
        if self._buffer is None or self._closed:
            return
        self._raw += delta
        safe = self._safe_prefix()
        if len(safe) > len(self._released):
            new = safe[len(self._released):]
            self._released = safe
            await self._buffer.write(new)

    async def finish(self, visible: str) -> None:
        """Release the part of *visible* that was not streamed live."""
        self._closed = True
        if self._buffer is None:
            return
        # Released text is always a prefix of the visible reply.
        rest = visible[len(self._released):]
        self._released = visible
        await self._buffer.write(rest)

    def _safe_prefix(self) -> str:
        text = self._raw.lstrip()
        cut = len(text)
        for marker in _MARKERS:
            idx = text.find(marker)
            if idx != -1:
                cut = min(cut, idx)
                self._closed = True
        if not self._closed:
            cut -= _partial_marker_length(text)
        return text[:cut].rstrip()


def _partial_marker_length(text: str) -> int:
    """Length of the longest suffix of *text* that is a proper prefix of a marker."""
    longest = 0
    for marker in _MARKERS:
        for k in range(len(marker) - 1, 0, -1):
            if k > longest and text.endswith(marker[:k]):
                longest = k
                break
    return longest
