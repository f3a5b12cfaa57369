"""Shell command execution tool."""

from __future__ import annotations

import asyncio
from pathlib import Path

from apex_claw.ai.tools.base import Tool, ToolArg

MAX_TIMEOUT_SECONDS = 300


class ExecTool(Tool):
    """Runs a shell command in the workspace and reports its output."""

    secure = True
    blocks_context = True

    def __init__(self, workspace_dir: str | Path = ".", default_timeout: int = 60):
        self._cwd = Path(workspace_dir).expanduser().resolve()
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return "Execute a shell command in the workspace. Returns stdout, stderr and the exit code."

    @property
    def args(self) -> list[ToolArg]:
        return [
            ToolArg("cmd", "Shell command line"),
            ToolArg("timeout", f"Timeout in seconds (default {self._default_timeout}, max {MAX_TIMEOUT_SECONDS})", required=False),
        ]

    async def execute(self, args: dict[str, str]) -> str:
        command = args["cmd"]
        try:
            timeout = int(args.get("timeout") or self._default_timeout)
        except ValueError:
            return f"error: timeout must be an integer, got {args['timeout']!r}"
        timeout = max(1, min(timeout, MAX_TIMEOUT_SECONDS))

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._cwd,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return f"error: command timed out after {timeout} seconds"

        output_parts = []
        if stdout:
            output_parts.append(f"STDOUT:\n{stdout.decode('utf-8', errors='replace')[:20000]}")
        if stderr:
            output_parts.append(f"STDERR:\n{stderr.decode('utf-8', errors='replace')[:5000]}")
        output_parts.append(f"Exit code: {process.returncode}")

        return "\n\n".join(output_parts)
