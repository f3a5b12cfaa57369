"""Parsing of ``<tool_call>`` envelopes embedded in model output.

The model is told to request tools with an XML-ish tag::

    <tool_call>read_file path="notes.md" /></tool_call>

Only the first envelope in a reply is honoured.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

TOOL_CALL_OPEN = "<tool_call>"
THINK_OPEN = "<think>"

# Quoted values may contain "/>" or ">"; the envelope ends outside them.
TOOL_CALL_PATTERN = re.compile(r'<tool_call>((?:[^"]|"[^"]*")*?)(?:/>|</tool_call>)')
LOOSE_TOOL_CALL_PATTERN = re.compile(r"<tool_call>(.*?)(?:/>|</tool_call>)", re.DOTALL)
ATTR_PATTERN = re.compile(r'(\w+)="([^"]*)"')
NAME_PATTERN = re.compile(r"^[A-Za-z_]\w*$")
THINK_PATTERN = re.compile(r"([ \t]*)<think>.*?</think>([ \t]*)", re.DOTALL)

MAX_INNER_LENGTH = 10_000
MAX_NAME_LENGTH = 100
MAX_KEY_LENGTH = 100
MAX_VALUE_LENGTH = 100_000
MAX_ATTRS = 50


@dataclass(frozen=True, slots=True)
class ToolCall:
    name: str
    args: dict[str, str] = field(default_factory=dict)
    start: int = 0  # offset of the envelope in the source text
    end: int = 0

    @property
    def args_json(self) -> str:
        """Canonical JSON encoding of the argument map."""
        return json.dumps(self.args, sort_keys=True, ensure_ascii=False)


def parse_tool_call(text: str) -> ToolCall | None:
    """Return the first tool call in *text*, or None if there is none.

    Malformed attribute strings (an unbalanced quote, unquoted values) give
    an empty argument map rather than a failure; the registry then reports
    any missing argument itself.
    """
    match = TOOL_CALL_PATTERN.search(text) or LOOSE_TOOL_CALL_PATTERN.search(text)
    if match is None:
        return None

    inner = match.group(1).strip()
    if not inner or len(inner) > MAX_INNER_LENGTH:
        return None

    head, *rest = inner.split(None, 1)
    name = head.rstrip(">")
    if len(name) > MAX_NAME_LENGTH or not NAME_PATTERN.match(name):
        return None

    args: dict[str, str] = {}
    for key, value in ATTR_PATTERN.findall(rest[0] if rest else ""):
        if len(key) > MAX_KEY_LENGTH or len(value) > MAX_VALUE_LENGTH:
            continue
        args[key] = value
    if len(args) > MAX_ATTRS:
        return None

    return ToolCall(name=name, args=args, start=match.start(), end=match.end())


def render_tool_call(name: str, attrs: dict[str, str] | None = None) -> str:
    """Render a self-closing envelope; the inverse of :func:`parse_tool_call`."""
    parts = [name]
    parts.extend(f'{key}="{value}"' for key, value in (attrs or {}).items())
    return f"{TOOL_CALL_OPEN}{' '.join(parts)} />"


def clean_reply(text: str) -> str:
    """Strip ``<think>...</think>`` blocks and surrounding whitespace.

    A block between two words leaves a single space behind.
    """
    return THINK_PATTERN.sub(lambda m: " " if m.group(1) or m.group(2) else "", text).strip()


def visible_reply(text: str) -> str:
    """The user-facing part of a reply that carries no usable tool call.

    An envelope the parser rejected (oversized, bad name, never closed) is
    cut off together with everything after it.
    """
    idx = text.find(TOOL_CALL_OPEN)
    return text if idx == -1 else text[:idx].strip()
