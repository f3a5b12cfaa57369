"""AI client abstraction and the chat.z.ai streaming backend."""

from __future__ import annotations

import random
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import httpx

from apex_claw.ai.conversation import build_messages, latest_user_content
from apex_claw.ai.models import FileRef, Message
from apex_claw.ai.upstream.auth import TokenProvider, user_id_from_token
from apex_claw.ai.upstream.signing import (
    generate_signature,
    get_target_model,
    is_search_model,
    is_thinking_model,
)
from apex_claw.ai.upstream.sse import SSEAnswerParser
from apex_claw.ai.upstream.upload import upload_file
from apex_claw.ai.upstream.version import FeVersionTracker
from apex_claw.config import UpstreamConfig
from apex_claw.errors import UpstreamTransientError, upstream_error_for_status
from apex_claw.log import get_logger

logger = get_logger(__name__)

DeltaCallback = Callable[[str], Awaitable[None]]

COMPLETIONS_PATH = "/api/v2/chat/completions"
CLIENT_VERSION = "0.0.1"

DESKTOP_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.6 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]


class AIClient(ABC):
    """Abstract base class for LLM backends."""

    @abstractmethod
    async def send(
        self,
        model: str,
        messages: list[Message],
        files: Optional[list[FileRef]] = None,
        on_delta: Optional[DeltaCallback] = None,
    ) -> str:
        """Send the conversation and return the assistant reply text.

        ``on_delta`` receives answer text as it streams in; the return value
        is the stripped concatenation of those deltas.
        """
        ...

    async def upload(self, data: bytes, filename: str) -> FileRef:
        raise NotImplementedError(f"{type(self).__name__} does not accept attachments")

    async def aclose(self) -> None:
        return None


class ZaiClient(AIClient):
    """chat.z.ai backend: signed, streamed completion requests over httpx."""

    def __init__(
        self,
        config: UpstreamConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config
        self._origin = config.base_url.rstrip("/")
        self._clock = clock
        self._http = httpx.AsyncClient(
            base_url=self._origin,
            timeout=httpx.Timeout(config.timeout),
            transport=transport,
        )
        self.tokens = TokenProvider(
            self._http,
            static_token=config.token,
            ttl_seconds=config.token_ttl_seconds,
            refresh_margin_seconds=config.token_refresh_margin_seconds,
            clock=clock,
        )
        self.fe_version = FeVersionTracker(self._http, refresh_seconds=config.fe_version_refresh_seconds)

    async def send(
        self,
        model: str,
        messages: list[Message],
        files: Optional[list[FileRef]] = None,
        on_delta: Optional[DeltaCallback] = None,
    ) -> str:
        token = await self.tokens.get_token()
        user_id = user_id_from_token(token)

        upstream_messages = build_messages(messages)
        prompt = latest_user_content(upstream_messages)

        chat_id = str(uuid.uuid4())
        request_id = str(uuid.uuid4())
        user_msg_id = str(uuid.uuid4())
        timestamp = int(self._clock() * 1000)

        body: dict[str, Any] = {
            "stream": True,
            "model": get_target_model(model),
            "messages": upstream_messages,
            "signature_prompt": prompt,
            "params": {},
            "features": {
                "image_generation": False,
                "web_search": False,
                "auto_web_search": is_search_model(model),
                "preview_mode": True,
                "enable_thinking": is_thinking_model(model),
            },
            "chat_id": chat_id,
            "id": str(uuid.uuid4()),
            "current_user_message_id": user_msg_id,
        }
        if files:
            body["files"] = [ref.to_request_dict(user_msg_id) for ref in files]

        params = {
            "timestamp": str(timestamp),
            "requestId": request_id,
            "user_id": user_id,
            "version": CLIENT_VERSION,
            "platform": "web",
            "token": token,
            "current_url": f"{self._origin}/c/{chat_id}",
            "pathname": f"/c/{chat_id}",
            "signature_timestamp": str(timestamp),
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "X-FE-Version": self.fe_version.version,
            "X-Signature": generate_signature(user_id, request_id, prompt, timestamp),
            "Content-Type": "application/json",
            "Connection": "keep-alive",
            "Origin": self._origin,
            "Referer": f"{self._origin}/c/{uuid.uuid4()}",
            "User-Agent": random.choice(DESKTOP_USER_AGENTS),
        }

        logger.debug(
            "upstream_request",
            model=body["model"],
            message_count=len(upstream_messages),
            file_count=len(files or []),
        )

        parser = SSEAnswerParser()
        try:
            async with self._http.stream(
                "POST", COMPLETIONS_PATH, params=params, headers=headers, json=body
            ) as response:
                if response.status_code != 200:
                    detail = (await response.aread())[:500].decode("utf-8", errors="replace")
                    if response.status_code in (401, 403):
                        self.tokens.invalidate()
                    raise upstream_error_for_status(response.status_code, detail)

                async for raw in response.aiter_bytes():
                    for chunk in parser.feed(raw):
                        if on_delta is not None:
                            await on_delta(chunk)
                    if parser.done:
                        break
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(f"upstream timed out: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamTransientError(f"upstream request failed: {e}") from e

        for chunk in parser.close():
            if on_delta is not None:
                await on_delta(chunk)

        text = parser.result()
        logger.debug("upstream_response", model=body["model"], length=len(text))
        return text

    async def upload(self, data: bytes, filename: str) -> FileRef:
        token = await self.tokens.get_token()
        return await upload_file(self._http, token, data, filename, origin=self._origin)

    async def aclose(self) -> None:
        await self.fe_version.stop()
        await self._http.aclose()
