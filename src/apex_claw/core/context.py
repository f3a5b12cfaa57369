"""Per-turn invocation context shared between the frontend and tools."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class InvocationContext:
    """Who is talking to the agent, and where the turn came from."""

    owner_id: str
    chat_id: str
    message_id: str = ""
    sender_id: str = ""
    reply_to_msg_id: Optional[str] = None
    group_id: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)

    def as_mapping(self) -> dict[str, Any]:
        """Well-known keys as read by tools."""
        mapping: dict[str, Any] = {
            "owner_id": self.owner_id,
            "telegram_id": self.chat_id,
            "chat_id": self.chat_id,
            "message_id": self.message_id,
            "sender_id": self.sender_id,
        }
        if self.reply_to_msg_id:
            mapping["reply_to_msg_id"] = self.reply_to_msg_id
        if self.group_id:
            mapping["group_id"] = self.group_id
        mapping.update(self.extras)
        return mapping

    def header(self) -> str:
        """One-line summary prepended to the user turn so the model can address replies."""
        parts = [
            f"sender_id={self.sender_id or self.owner_id}",
            f"chat_id={self.chat_id}",
            f"msg_id={self.message_id}",
        ]
        if self.group_id:
            parts.append(f"group_id={self.group_id}")
        if self.reply_to_msg_id:
            parts.append(f"reply_id={self.reply_to_msg_id}")
        parts.extend(f"{key}={value}" for key, value in self.extras.items())
        return f"[TG Context: {' | '.join(parts)}]"

    def snapshot(self) -> InvocationContext:
        """A detached copy for tools that outlive the turn."""
        return replace(self, extras=dict(self.extras))


class ContextStore:
    """Holds at most one live context per owner; each turn overwrites the last."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: dict[str, InvocationContext] = {}

    def install(self, ctx: InvocationContext) -> None:
        with self._lock:
            self._contexts[ctx.owner_id] = ctx

    def get(self, owner_id: str) -> InvocationContext | None:
        with self._lock:
            return self._contexts.get(owner_id)

    def clear(self, owner_id: str) -> None:
        with self._lock:
            self._contexts.pop(owner_id, None)
