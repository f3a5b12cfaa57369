"""Small utility tools."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apex_claw.ai.tools.base import Tool, ToolArg


class DateTimeTool(Tool):
    """Returns the current date/time."""

    @property
    def name(self) -> str:
        return "datetime"

    @property
    def description(self) -> str:
        return "Get the current date/time in ISO-8601 format (UTC unless a timezone is given)."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("tz", "IANA timezone name, e.g. Europe/Berlin", required=False)]

    async def execute(self, args: dict[str, str]) -> str:
        tz_name = args.get("tz", "").strip()
        if not tz_name:
            return datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            return f"error: unknown timezone {tz_name!r}"
        return datetime.now(tz).isoformat(timespec="seconds")


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Return the given message unchanged."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("msg", "Text to echo back")]

    async def execute(self, args: dict[str, str]) -> str:
        return args["msg"]
