from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from apex_claw.ai.client import AIClient
from apex_claw.ai.models import FileRef, Message
from apex_claw.ai.session import AgentSession
from apex_claw.ai.tools.base import Tool, ToolArg
from apex_claw.ai.tools.registry import ToolRegistry
from apex_claw.core.context import ContextStore, InvocationContext

OWNER = "1001"
FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClient(AIClient):
    """Replays scripted replies, streaming each through on_delta in small pieces."""

    def __init__(self, replies: list[str], piece: int = 5):
        self.replies = list(replies)
        self.piece = piece
        self.calls: list[dict] = []
        self.uploads: list[tuple[bytes, str]] = []

    async def send(self, model, messages, files=None, on_delta=None) -> str:
        self.calls.append({"model": model, "messages": list(messages), "files": files})
        if not self.replies:
            raise AssertionError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if on_delta is not None:
            for i in range(0, len(reply), self.piece):
                await on_delta(reply[i : i + self.piece])
        return reply.strip()

    async def upload(self, data: bytes, filename: str) -> FileRef:
        self.uploads.append((data, filename))
        return FileRef(id="file-1", url="/api/v1/files/file-1", name=filename, size=len(data))


class StaticTool(Tool):
    def __init__(self, name: str, result: str = "ok", args: Optional[list[ToolArg]] = None, secure: bool = False):
        self._name = name
        self._result = result
        self._args = args or []
        self.secure = secure
        self.calls: list[dict[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"{self._name} test tool"

    @property
    def args(self) -> list[ToolArg]:
        return self._args

    async def execute(self, args: dict[str, str]) -> str:
        self.calls.append(dict(args))
        return self._result


@pytest.fixture
def ctx() -> InvocationContext:
    return InvocationContext(owner_id=OWNER, chat_id="555", message_id="42", sender_id=OWNER)


@pytest.fixture
def registry() -> ToolRegistry:
    reg = ToolRegistry(owner_id=OWNER)
    reg.register(StaticTool("datetime", "2025-01-01T00:00:00Z"))
    reg.register(StaticTool("echo", "hi", args=[ToolArg("msg", "text")]))
    reg.register(StaticTool("read_file", "contents", args=[ToolArg("path", "file path")]))
    return reg


def make_session(client: AIClient, registry: ToolRegistry, **kwargs) -> AgentSession:
    kwargs.setdefault("clock", lambda: FIXED_NOW)
    return AgentSession(OWNER, client, registry, contexts=kwargs.pop("contexts", ContextStore()), **kwargs)
