"""Tool registry for discovering, listing and invoking tools."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Optional

from apex_claw.ai.toolcall import render_tool_call
from apex_claw.ai.tools.base import Tool
from apex_claw.errors import DuplicateToolError
from apex_claw.log import get_logger

if TYPE_CHECKING:
    from apex_claw.config import ToolsConfig
    from apex_claw.core.context import InvocationContext
    from apex_claw.messenger.base import FrontendAffordances
    from apex_claw.services.scheduler import HeartbeatScheduler

logger = get_logger(__name__)

PERMISSION_DENIED = "error: permission denied"


class ToolRegistry:
    """Registry of all available tools.

    Writes replace the name map under a lock; readers use whatever map was
    current when they looked, so invocations never block on registration.
    """

    def __init__(self, owner_id: str = ""):
        self._tools: dict[str, Tool] = {}
        self._lock = threading.Lock()
        self._owner_id = owner_id

    def register(self, tool: Tool) -> None:
        with self._lock:
            if tool.name in self._tools:
                raise DuplicateToolError(f"tool {tool.name!r} is already registered")
            self._tools = {**self._tools, tool.name: tool}
        logger.info("tool_registered", tool_name=tool.name, secure=tool.secure)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> list[Tool]:
        tools = self._tools
        return [tools[name] for name in sorted(tools)]

    def names(self) -> list[str]:
        return sorted(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def invoke(
        self,
        name: str,
        args: dict[str, str],
        ctx: Optional[InvocationContext] = None,
    ) -> str:
        """Run a tool and return its observation.

        Every tool-side failure (unknown name, refused secure tool, missing
        argument, exception) comes back as an ``"error: ..."`` string.
        """
        tool = self.get(name)
        if tool is None:
            return f"error: unknown tool {name}. Available: {', '.join(self.names())}"

        if tool.secure and not self._is_owner(ctx):
            logger.warning(
                "secure_tool_denied",
                tool_name=name,
                sender_id=ctx.sender_id if ctx else None,
            )
            return PERMISSION_DENIED

        for arg_name in tool.required_args():
            if not args.get(arg_name, "").strip():
                return f"error: missing required arg {arg_name}"

        logger.info("tool_invoked", tool_name=name, arg_keys=sorted(args))
        try:
            if ctx is not None and tool.uses_context:
                call_ctx = ctx.snapshot() if tool.blocks_context else ctx
                result = await tool.execute_with_context(call_ctx, args)
            else:
                result = await tool.execute(args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("tool_error", tool_name=name, error=str(e))
            return f"error: {e or type(e).__name__}"

        logger.info("tool_completed", tool_name=name, result_length=len(result))
        return result

    def _is_owner(self, ctx: Optional[InvocationContext]) -> bool:
        if ctx is None or not self._owner_id:
            return False
        return (ctx.sender_id or ctx.owner_id) == self._owner_id

    def prompt_section(self) -> str:
        """Tool catalogue for the system prompt."""
        tools = self.list()
        if not tools:
            return ""
        lines = ["## Tools"]
        for tool in tools:
            lines.extend(tool.prompt_lines())
        lines.append("")
        lines.append(f"Example: {render_tool_call('echo', {'msg': 'hello'})}")
        return "\n".join(lines) + "\n"

    def discover_and_register(
        self,
        config: ToolsConfig,
        scheduler: Optional[HeartbeatScheduler] = None,
        affordances: Optional[FrontendAffordances] = None,
    ) -> None:
        """Import and register all built-in tools.

        Scheduling and messaging tools are only available when the scheduler
        and the frontend affordances are supplied.
        """
        from apex_claw.ai.tools.basic import DateTimeTool, EchoTool
        from apex_claw.ai.tools.executor import ExecTool
        from apex_claw.ai.tools.filesystem import ListDirTool, ReadFileTool, WriteFileTool
        from apex_claw.ai.tools.web import WebFetchTool

        self.register(DateTimeTool())
        self.register(EchoTool())
        self.register(ReadFileTool(config.workspace_dir, max_bytes=config.max_read_bytes))
        self.register(WriteFileTool(config.workspace_dir))
        self.register(ListDirTool(config.workspace_dir))
        self.register(ExecTool(config.workspace_dir, default_timeout=config.exec_timeout_seconds))
        self.register(WebFetchTool())

        if scheduler is not None:
            from apex_claw.ai.tools.scheduler import CancelTaskTool, ListTasksTool, ScheduleTaskTool

            self.register(ScheduleTaskTool(scheduler))
            self.register(CancelTaskTool(scheduler))
            self.register(ListTasksTool(scheduler))

        if affordances is not None:
            from apex_claw.ai.tools.messaging import SendFileTool, SendMessageTool

            self.register(SendMessageTool(affordances))
            self.register(SendFileTool(affordances, config.workspace_dir))
