"""Convert session history to the upstream chat message format."""

from __future__ import annotations

from typing import Any

from apex_claw.ai.models import Message
from apex_claw.core.types import Role

TOOL_RESULT_TEMPLATE = "[Tool result: {name}]\n{content}\n\nPlease continue."
TOOL_ERROR_TEMPLATE = (
    "[Tool error: {name}]\n{content}\n\n"
    "Fix this and retry with a different approach or corrected parameters."
)


def build_messages(history: list[Message]) -> list[dict[str, Any]]:
    """Convert history records into upstream ``{role, content}`` dicts.

    The upstream only knows system/user/assistant, so tool observations are
    sent as user turns wrapped in a result (or error) banner.
    """
    messages: list[dict[str, Any]] = []
    for record in history:
        if record.role == Role.TOOL:
            template = TOOL_ERROR_TEMPLATE if record.is_error_observation() else TOOL_RESULT_TEMPLATE
            content = template.format(name=record.name or "unknown", content=record.content)
            messages.append({"role": Role.USER.value, "content": content})
        else:
            messages.append({"role": record.role.value, "content": record.content})
    return messages


def latest_user_content(messages: list[dict[str, Any]]) -> str:
    """Return the content of the last user-role upstream message (signed by the client)."""
    for msg in reversed(messages):
        if msg.get("role") == Role.USER.value:
            return msg.get("content", "")
    return ""

