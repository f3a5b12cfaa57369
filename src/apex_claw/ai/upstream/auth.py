"""Upstream token acquisition and caching."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import time
from typing import Any, Callable

import httpx

from apex_claw.errors import UpstreamAuthError
from apex_claw.log import get_logger

logger = get_logger(__name__)

AUTH_PATH = "/api/v1/auths/"


def decode_jwt_payload(token: str) -> dict[str, Any]:
    """Decode the payload segment of a JWT without verifying it.

    Missing base64 padding is tolerated.
    """
    parts = token.split(".")
    if len(parts) < 2:
        raise UpstreamAuthError("invalid token")
    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment))
    except (binascii.Error, ValueError) as e:
        raise UpstreamAuthError(f"invalid token: {e}") from e
    if not isinstance(payload, dict):
        raise UpstreamAuthError("invalid token")
    return payload


def user_id_from_token(token: str) -> str:
    return str(decode_jwt_payload(token).get("id", ""))


class TokenProvider:
    """Hands out the upstream bearer token.

    A configured static token is used as is. Otherwise an anonymous token is
    fetched from the auth endpoint and cached until shortly before it expires
    (the JWT ``exp`` claim, or ``ttl_seconds`` after the fetch).
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        static_token: str = "",
        ttl_seconds: int = 24 * 3600,
        refresh_margin_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self._http = http
        self._static_token = static_token
        self._ttl = ttl_seconds
        self._margin = refresh_margin_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token = ""
        self._expires_at = 0.0

    @property
    def is_static(self) -> bool:
        return bool(self._static_token)

    async def get_token(self) -> str:
        if self._static_token:
            return self._static_token
        async with self._lock:
            now = self._clock()
            if self._token and now < self._expires_at - self._margin:
                return self._token
            self._token, self._expires_at = await self._fetch(now)
            return self._token

    def invalidate(self) -> None:
        """Drop the cached anonymous token so the next call fetches a fresh one."""
        self._token = ""
        self._expires_at = 0.0

    async def _fetch(self, now: float) -> tuple[str, float]:
        try:
            response = await self._http.get(AUTH_PATH)
        except httpx.TransportError as e:
            raise UpstreamAuthError(f"auth request failed: {e}") from e
        if response.status_code != 200:
            raise UpstreamAuthError(f"auth status {response.status_code}", status_code=response.status_code)

        try:
            token = response.json().get("token", "")
        except ValueError as e:
            raise UpstreamAuthError(f"auth response is not JSON: {e}") from e
        if not token:
            raise UpstreamAuthError("auth response carried no token")

        exp = decode_jwt_payload(token).get("exp")
        expires_at = float(exp) if isinstance(exp, (int, float)) else now + self._ttl
        logger.info("upstream_token_fetched", expires_in=int(expires_at - now))
        return token, expires_at
