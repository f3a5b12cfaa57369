"""SSE answer parser for the chat.z.ai completion stream.

Each ``data: <json>`` line carries ``{"type": ..., "data": {"phase": ...,
"delta_content": ..., "edit_content": ...}}``. Only user-visible answer text
is collected; thinking and search/tool scaffolding is dropped.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

from apex_claw.errors import EmptyUpstreamError

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DETAILS_CLOSE = "</details>"

# edit_content carrying any of these is search or MCP scaffolding.
SKIP_MARKERS = ('"search_result"', '"search_image"', '"mcp"')


def _edit_content(data: dict[str, Any]) -> str:
    edit = data.get("edit_content") or ""
    if not isinstance(edit, str):
        return ""
    if edit.startswith('"'):
        try:
            unquoted = json.loads(edit)
        except ValueError:
            return edit
        if isinstance(unquoted, str):
            return unquoted
    return edit


class SSEAnswerParser:
    """Incremental parser; feed it raw bytes as they arrive.

    Bytes are framed into lines after UTF-8 decoding with an incremental
    decoder, so the result does not depend on where the transport splits the
    stream.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._chunks: list[str] = []
        self._cumulative_len = 0  # code points of edit_content already emitted
        self.done = False

    def feed(self, data: bytes) -> list[str]:
        """Consume bytes and return the answer chunks they completed."""
        if self.done:
            return []
        self._pending += self._decoder.decode(data)
        return self._drain_lines()

    def close(self) -> list[str]:
        """Flush the decoder and any unterminated last line."""
        if self.done:
            return []
        self._pending += self._decoder.decode(b"", final=True)
        new = self._drain_lines()
        if not self.done and self._pending:
            line, self._pending = self._pending, ""
            new.extend(self._handle_line(line.rstrip("\r")))
        self.done = True
        return new

    @property
    def text(self) -> str:
        return "".join(self._chunks).strip()

    def result(self) -> str:
        """The trimmed answer; raises EmptyUpstreamError when there is none."""
        text = self.text
        if not text:
            raise EmptyUpstreamError("empty response from model")
        return text

    def _drain_lines(self) -> list[str]:
        new: list[str] = []
        while not self.done:
            line, sep, rest = self._pending.partition("\n")
            if not sep:
                break
            self._pending = rest
            new.extend(self._handle_line(line.rstrip("\r")))
        return new

    def _handle_line(self, line: str) -> list[str]:
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):]
        if payload == DONE_SENTINEL:
            self.done = True
            return []
        try:
            record = json.loads(payload)
        except ValueError:
            return []
        data = record.get("data") if isinstance(record, dict) else None
        if not isinstance(data, dict):
            return []

        phase = data.get("phase") or ""
        if phase == "done":
            self.done = True
            return []
        if phase == "thinking":
            return []

        edit = _edit_content(data)
        if edit and any(marker in edit for marker in SKIP_MARKERS):
            return []

        match phase:
            case "answer":
                delta = data.get("delta_content") or ""
                if isinstance(delta, str) and delta:
                    return self._emit(delta)
                if DETAILS_CLOSE in edit:
                    after = edit.split(DETAILS_CLOSE, 1)[1].removeprefix("\n")
                    if after:
                        return self._emit(after)
            case "other" | "tool_call":
                if len(edit) > self._cumulative_len:
                    new_part = edit[self._cumulative_len:]
                    self._cumulative_len = len(edit)
                    return self._emit(new_part)
        return []

    def _emit(self, chunk: str) -> list[str]:
        self._chunks.append(chunk)
        return [chunk]


def parse_sse_text(body: str | bytes) -> str:
    """Parse a complete SSE body in one go."""
    parser = SSEAnswerParser()
    parser.feed(body.encode("utf-8") if isinstance(body, str) else body)
    parser.close()
    return parser.result()
