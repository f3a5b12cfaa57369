"""Abstract tool interface for agent tool calls."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apex_claw.core.context import InvocationContext


@dataclass(frozen=True, slots=True)
class ToolArg:
    name: str
    description: str
    required: bool = True


class Tool(ABC):
    """Base class for all model-callable tools.

    Arguments arrive as a flat ``str -> str`` map taken from the tool-call
    attributes; each tool decodes what it needs. Tools that need to know who
    called them (chat ids, reply targets) override :meth:`execute_with_context`.
    """

    secure: bool = False
    """Only the configured owner may invoke the tool."""

    blocks_context: bool = False
    """Long-running; gets a detached copy of the context instead of the live one."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in ``<tool_call>`` envelopes."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """One-line description shown to the model."""
        ...

    @property
    def args(self) -> list[ToolArg]:
        return []

    @abstractmethod
    async def execute(self, args: dict[str, str]) -> str:
        """Run the tool and return a text observation for the model."""
        ...

    async def execute_with_context(self, ctx: InvocationContext, args: dict[str, str]) -> str:
        return await self.execute(args)

    @property
    def uses_context(self) -> bool:
        """True when a subclass overrides :meth:`execute_with_context`."""
        return type(self).execute_with_context is not Tool.execute_with_context

    def required_args(self) -> list[str]:
        return [a.name for a in self.args if a.required]

    def prompt_lines(self) -> list[str]:
        """Catalogue entry for the system prompt."""
        lines = [f"• {self.name}: {self.description}"]
        for arg in self.args:
            req = " (required)" if arg.required else ""
            lines.append(f"  - {arg.name}{req}: {arg.description}")
        return lines
