"""Agent session: the observe -> call tool -> feed result loop."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Callable, Optional

from apex_claw.ai.models import FileRef, Message
from apex_claw.ai.streaming import DEFAULT_FLUSH_BYTES, ChunkBuffer, ChunkSink, StreamGate
from apex_claw.ai.toolcall import ToolCall, clean_reply, parse_tool_call, visible_reply
from apex_claw.config import DEFAULT_MODEL
from apex_claw.core.types import Role
from apex_claw.log import get_logger

if TYPE_CHECKING:
    from apex_claw.ai.client import AIClient
    from apex_claw.ai.tools.registry import ToolRegistry
    from apex_claw.core.context import ContextStore, InvocationContext

logger = get_logger(__name__)

ITERATION_BUDGET_EXHAUSTED = "(iteration budget exhausted)"
TRUNCATION_SUFFIX = "…[truncated]"
PINNED_MESSAGES = 1  # the system prompt

SYSTEM_PROMPT = """\
You are ApexClaw, a personal AI assistant. Be genuinely helpful. Skip filler. \
Figure things out before asking.

## Tool Usage
Format: <tool_call>tool_name param="value" /></tool_call>
- One tool call per reply. Wait for its result before calling the next tool.
- Use exact tool and parameter names from the list below. Values must be double-quoted \
and must not contain double quotes.
- Don't fabricate tool names. When you have the final answer, reply with plain text only.

## Live Data
Never answer from memory for prices, weather, news, scores or rates. Fetch them with \
web_fetch. If unreachable, say so.

## Scheduling
For reminders use schedule_task directly.
- prompt: tell your future self to fetch live data at run time; never embed current values.
- run_at: ISO-8601 with offset, computed from the [Current time] header, or a delay like 15m. \
Must be in the future.
- repeat: once|minutely|hourly|daily|weekly|every_N_minutes|every_N_hours|every_N_days \
or a 5-field cron expression.

## Telegram Context
Each user message may carry a [TG Context: ...] header with sender_id, chat_id, msg_id, \
group_id and reply_id. Use chat_id as the target for tg_* tools.

## Errors
When a tool reports an error, fix the parameters or try another approach. Only report \
to the user after repeated failure.

## Formatting
Telegram HTML only: <b>, <i>, <u>, <s>, <a href="">, <code>, <pre>, <blockquote>. No Markdown.
"""


def build_system_prompt(registry: ToolRegistry) -> str:
    section = registry.prompt_section()
    return f"{SYSTEM_PROMPT}\n{section}" if section else SYSTEM_PROMPT


def truncate_observation(text: str, cap_bytes: int) -> str:
    """Cap *text* at ``cap_bytes`` UTF-8 bytes, suffix included."""
    encoded = text.encode("utf-8")
    if len(encoded) <= cap_bytes:
        return text
    room = max(0, cap_bytes - len(TRUNCATION_SUFFIX.encode("utf-8")))
    return encoded[:room].decode("utf-8", errors="ignore") + TRUNCATION_SUFFIX


class AgentSession:
    """Per-owner conversation state and the agent loop.

    History always starts with the system prompt. :meth:`run` calls are
    serialized; each appends the user message, then one assistant message
    per model reply plus one tool message per executed tool call.
    """

    def __init__(
        self,
        owner_id: str,
        client: AIClient,
        registry: ToolRegistry,
        contexts: Optional[ContextStore] = None,
        model: str = DEFAULT_MODEL,
        max_iterations: int = 10,
        history_limit: int = 60,
        observation_cap_bytes: int = 8 * 1024,
        flush_bytes: int = DEFAULT_FLUSH_BYTES,
        tz: tzinfo = timezone.utc,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.owner_id = owner_id
        self.model = model
        self.max_iterations = max_iterations
        self._client = client
        self._registry = registry
        self._contexts = contexts
        self._history_limit = history_limit
        self._observation_cap = observation_cap_bytes
        self._flush_bytes = flush_bytes
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._history: list[Message] = [self._system_message()]

    @property
    def history(self) -> list[Message]:
        return list(self._history)

    def history_len(self) -> int:
        return len(self._history)

    def reset(self) -> None:
        """Drop everything but the system prompt (rebuilt from the current tool set)."""
        self._history = [self._system_message()]
        logger.info("session_reset", owner_id=self.owner_id)

    async def run(
        self,
        user_text: str,
        ctx: Optional[InvocationContext] = None,
        on_chunk: Optional[ChunkSink] = None,
        attachments: Optional[list[FileRef]] = None,
    ) -> str:
        """Run one user turn to completion and return the final answer.

        ``on_chunk`` receives user-visible text as it streams; omit it for a
        non-streaming call. ``ctx`` defaults to the context installed for this
        owner. Upstream errors propagate; tool errors become observations.
        """
        async with self._lock:
            if ctx is None and self._contexts is not None:
                ctx = self._contexts.get(self.owner_id)
            buffer = ChunkBuffer(on_chunk, self._flush_bytes) if on_chunk is not None else None

            self._evict_for_new_turn()
            files = list(attachments or [])
            self._history.append(Message(Role.USER, self._stamp(user_text, ctx), attachments=files))

            answer = await self._loop(ctx, buffer, files)
            if buffer is not None:
                await buffer.flush()
            return answer

    async def _loop(
        self,
        ctx: Optional[InvocationContext],
        buffer: Optional[ChunkBuffer],
        files: list[FileRef],
    ) -> str:
        for iteration in range(1, self.max_iterations + 1):
            gate = StreamGate(buffer)
            reply = await self._client.send(
                self.model,
                list(self._history),
                files=files if iteration == 1 and files else None,
                on_delta=gate.feed,
            )
            text = clean_reply(reply)
            call = parse_tool_call(text)

            if call is None:
                answer = visible_reply(text)
                self._history.append(Message(Role.ASSISTANT, text))
                await gate.finish(answer)
                logger.info("agent_turn_complete", owner_id=self.owner_id, iterations=iteration)
                return answer

            logger.info("agent_tool_call", owner_id=self.owner_id, iteration=iteration, tool_name=call.name, args=call.args_json)
            self._history.append(Message(Role.ASSISTANT, text))
            await gate.finish(text[: call.start].strip())
            if buffer is not None:
                await buffer.flush()

            await self._invoke(call, ctx)

        logger.warning("iteration_budget_exhausted", owner_id=self.owner_id, max_iterations=self.max_iterations)
        self._history.append(Message(Role.ASSISTANT, ITERATION_BUDGET_EXHAUSTED))
        if buffer is not None:
            await buffer.write(ITERATION_BUDGET_EXHAUSTED)
        return ITERATION_BUDGET_EXHAUSTED

    async def _invoke(self, call: ToolCall, ctx: Optional[InvocationContext]) -> None:
        """Run the tool and record its observation.

        A cancelled turn still waits for the tool; its observation is recorded
        before the cancellation is re-raised.
        """
        running = asyncio.ensure_future(self._registry.invoke(call.name, call.args, ctx))
        try:
            observation = await asyncio.shield(running)
        except asyncio.CancelledError:
            observation = await running
            self._record_observation(call.name, observation)
            raise
        self._record_observation(call.name, observation)

    def _record_observation(self, name: str, observation: str) -> None:
        self._history.append(Message(Role.TOOL, truncate_observation(observation, self._observation_cap), name=name))

    def _evict_for_new_turn(self) -> None:
        """Make room for the next user message, keeping the system prompt pinned.

        Oldest messages go first, and the kept tail never starts with an
        assistant or tool message.
        """
        body = self._history[PINNED_MESSAGES:]
        excess = len(body) + 1 - self._history_limit
        if excess <= 0:
            return
        body = body[excess:]
        while body and body[0].role in (Role.ASSISTANT, Role.TOOL):
            body.pop(0)
        self._history = self._history[:PINNED_MESSAGES] + body
        logger.debug("history_trimmed", owner_id=self.owner_id, evicted=excess)

    def _stamp(self, text: str, ctx: Optional[InvocationContext]) -> str:
        now = self._clock().astimezone(self._tz)
        header = f"[Current time: {now.strftime('%Y-%m-%d %H:%M:%S %a')} ({now.tzname()})]\n"
        if ctx is not None:
            header += ctx.header() + "\n"
        return header + text

    def _system_message(self) -> Message:
        return Message(Role.SYSTEM, build_system_prompt(self._registry))
