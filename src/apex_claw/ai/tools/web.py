"""Web page fetching tool."""

from __future__ import annotations

import html
import re

import httpx

from apex_claw.ai.tools.base import Tool, ToolArg

MAX_CONTENT_CHARS = 20_000

_SCRIPT_STYLE = re.compile(r"<(script|style|noscript)\b.*?</\1>", re.DOTALL | re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_SPACES = re.compile(r"[ \t\r\f\v]+")


def html_to_text(markup: str) -> str:
    text = _SCRIPT_STYLE.sub(" ", markup)
    text = _TAG.sub("\n", text)
    text = html.unescape(text)
    text = _SPACES.sub(" ", text)
    return _BLANK_LINES.sub("\n\n", text).strip()


class WebFetchTool(Tool):
    """Fetch a URL and return its readable text."""

    blocks_context = True

    def __init__(self, timeout: float = 20.0, transport: httpx.AsyncBaseTransport | None = None):
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch a web page (http/https) and return its text content, truncated to 20000 characters."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("url", "The full URL to fetch")]

    async def execute(self, args: dict[str, str]) -> str:
        url = args["url"].strip()
        if not url.startswith(("http://", "https://")):
            return f"error: unsupported URL {url!r}; only http and https are allowed"

        async with httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True, transport=self._transport
        ) as client:
            resp = await client.get(url)
            if resp.status_code != 200:
                return f"error: HTTP {resp.status_code} fetching {url}"
            content_type = resp.headers.get("content-type", "")
            body = resp.text

        text = html_to_text(body) if "html" in content_type else body.strip()
        if len(text) > MAX_CONTENT_CHARS:
            text = text[:MAX_CONTENT_CHARS] + "\n…[truncated]"
        return f"Source: {url}\n\n{text}"
