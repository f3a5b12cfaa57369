"""Tools that talk back through the messenger frontend."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from apex_claw.ai.tools.base import Tool, ToolArg
from apex_claw.ai.tools.filesystem import resolve_path
from apex_claw.messenger.base import FrontendAffordances
from apex_claw.messenger.models import OutgoingMessage

if TYPE_CHECKING:
    from apex_claw.core.context import InvocationContext


class SendMessageTool(Tool):
    def __init__(self, affordances: FrontendAffordances):
        self._frontend = affordances

    @property
    def name(self) -> str:
        return "tg_send_message"

    @property
    def description(self) -> str:
        return "Send a separate Telegram message (defaults to the current chat). Telegram HTML is allowed."

    @property
    def args(self) -> list[ToolArg]:
        return [
            ToolArg("text", "Message text"),
            ToolArg("chat_id", "Target chat id (default: current chat)", required=False),
        ]

    async def execute(self, args: dict[str, str]) -> str:
        if not args.get("chat_id"):
            return "error: chat_id is required outside a conversation"
        await self._frontend.send_message(OutgoingMessage(chat_id=args["chat_id"], text=args["text"], parse_mode="html"))
        return f"Message sent to {args['chat_id']}."

    async def execute_with_context(self, ctx: InvocationContext, args: dict[str, str]) -> str:
        chat_id = args.get("chat_id") or ctx.chat_id
        await self._frontend.send_message(OutgoingMessage(chat_id=chat_id, text=args["text"], parse_mode="html"))
        return f"Message sent to {chat_id}."


class SendFileTool(Tool):
    def __init__(self, affordances: FrontendAffordances, workspace_dir: str | Path = "."):
        self._frontend = affordances
        self._workspace = Path(workspace_dir).expanduser().resolve()

    @property
    def name(self) -> str:
        return "tg_send_file"

    @property
    def description(self) -> str:
        return "Send a local file to a Telegram chat as a document (defaults to the current chat)."

    @property
    def args(self) -> list[ToolArg]:
        return [
            ToolArg("path", "Path of the file to send"),
            ToolArg("caption", "Optional caption", required=False),
            ToolArg("chat_id", "Target chat id (default: current chat)", required=False),
        ]

    async def execute(self, args: dict[str, str]) -> str:
        if not args.get("chat_id"):
            return "error: chat_id is required outside a conversation"
        return await self._send(args["chat_id"], args, reply_to=None)

    async def execute_with_context(self, ctx: InvocationContext, args: dict[str, str]) -> str:
        chat_id = args.get("chat_id") or ctx.chat_id
        reply_to = ctx.message_id if chat_id == ctx.chat_id else None
        return await self._send(chat_id, args, reply_to=reply_to or None)

    async def _send(self, chat_id: str, args: dict[str, str], reply_to: str | None) -> str:
        path = resolve_path(self._workspace, args["path"])
        if not path.is_file():
            return f"error: '{path}' is not a file"
        await self._frontend.send_file(chat_id, path, args.get("caption", ""), reply_to)
        return f"File {path.name} sent to {chat_id}."
