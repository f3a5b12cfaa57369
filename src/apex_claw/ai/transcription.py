"""Voice transcription over a configurable HTTP speech-to-text endpoint."""

from __future__ import annotations

import json
from typing import Any

import httpx

from apex_claw.config import TranscriptionConfig
from apex_claw.errors import ApexClawError
from apex_claw.log import get_logger

logger = get_logger(__name__)


class TranscriptionError(ApexClawError):
    """The speech-to-text service failed or returned no transcript."""


def extract_transcript(body: str) -> str:
    """Pull the transcript out of a response body.

    Accepts a ``{"text": ...}`` object or newline-delimited
    ``{"result": [{"alternative": [{"transcript": ...}]}]}`` records.
    """
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            data: Any = json.loads(line)
        except ValueError:
            continue
        if not isinstance(data, dict):
            continue
        if isinstance(data.get("text"), str) and data["text"].strip():
            return data["text"].strip()
        for result in data.get("result") or []:
            for alt in result.get("alternative") or []:
                transcript = alt.get("transcript", "")
                if transcript:
                    return transcript.strip()
    return ""


class Transcriber:
    """Posts raw audio to the configured endpoint and returns the text."""

    def __init__(self, config: TranscriptionConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self._transport = transport

    async def transcribe(self, audio: bytes, media_type: str = "audio/ogg") -> str:
        headers = {"Content-Type": media_type}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        async with httpx.AsyncClient(timeout=60.0, transport=self._transport) as client:
            try:
                resp = await client.post(
                    self._config.url,
                    params={"lang": self._config.language},
                    headers=headers,
                    content=audio,
                )
            except httpx.TransportError as e:
                raise TranscriptionError(f"transcription request failed: {e}") from e

        if resp.status_code != 200:
            raise TranscriptionError(f"transcription status {resp.status_code}")
        transcript = extract_transcript(resp.text)
        if not transcript:
            raise TranscriptionError("no transcript found in response")
        logger.info("voice_transcribed", length=len(transcript))
        return transcript
