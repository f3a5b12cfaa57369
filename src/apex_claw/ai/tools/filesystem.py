"""File system tools: read, write and list files under the workspace."""

from __future__ import annotations

from pathlib import Path

from apex_claw.ai.tools.base import Tool, ToolArg


def resolve_path(workspace: Path, path_str: str) -> Path:
    """Resolve *path_str* against the workspace; absolute paths are kept."""
    path = Path(path_str).expanduser()
    if not path.is_absolute():
        path = workspace / path
    return path.resolve()


class _WorkspaceTool(Tool):
    def __init__(self, workspace_dir: str | Path = "."):
        self._workspace = Path(workspace_dir).expanduser().resolve()


class ReadFileTool(_WorkspaceTool):
    def __init__(self, workspace_dir: str | Path = ".", max_bytes: int = 500_000):
        super().__init__(workspace_dir)
        self._max_bytes = max_bytes

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read a UTF-8 text file. Relative paths are resolved against the workspace."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("path", "File path")]

    async def execute(self, args: dict[str, str]) -> str:
        path = resolve_path(self._workspace, args["path"])
        if not path.is_file():
            return f"error: '{path}' is not a file"

        size = path.stat().st_size
        if size > self._max_bytes:
            return f"error: file is too large ({_format_size(size)}). Max {_format_size(self._max_bytes)}."

        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"error: '{path}' is a binary file and cannot be read as text."


class WriteFileTool(_WorkspaceTool):
    secure = True

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write text to a file, creating parent directories. Overwrites existing files."

    @property
    def args(self) -> list[ToolArg]:
        return [
            ToolArg("path", "File path"),
            ToolArg("content", "Text to write"),
        ]

    async def execute(self, args: dict[str, str]) -> str:
        path = resolve_path(self._workspace, args["path"])
        path.parent.mkdir(parents=True, exist_ok=True)
        content = args["content"]
        path.write_text(content, encoding="utf-8")
        return f"Wrote {len(content.encode('utf-8'))} bytes to {path}"


class ListDirTool(_WorkspaceTool):
    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return "List directory contents (defaults to the workspace)."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("path", "Directory path", required=False)]

    async def execute(self, args: dict[str, str]) -> str:
        path = resolve_path(self._workspace, args.get("path") or ".")
        if not path.is_dir():
            return f"error: '{path}' is not a directory"

        entries = []
        for entry in sorted(path.iterdir()):
            entry_type = "DIR" if entry.is_dir() else "FILE"
            size = ""
            if entry.is_file():
                size = f" ({_format_size(entry.stat().st_size)})"
            entries.append(f"  [{entry_type}] {entry.name}{size}")

        if not entries:
            return f"Directory '{path}' is empty."

        return f"Contents of {path}:\n" + "\n".join(entries)


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024  # type: ignore[assignment]
    return f"{size:.1f}TB"
