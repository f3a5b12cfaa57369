"""Unified message models for messenger frontends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from apex_claw.core.types import Platform


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary attachment (photo, document, voice note)."""

    data: bytes
    media_type: str  # e.g. "image/jpeg", "audio/ogg"
    filename: str = "attachment"

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def is_audio(self) -> bool:
        return self.media_type.startswith("audio/")


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: Platform
    chat_id: str
    user_id: str
    user_display_name: str
    text: str
    timestamp: datetime
    message_id: str = ""
    reply_to_message_id: Optional[str] = None
    is_group: bool = False
    mentions_bot: bool = False
    reply_to_bot: bool = False
    attachments: list[Attachment] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    chat_id: str
    text: str
    parse_mode: Optional[str] = None  # "markdown", "html", None
    reply_to_message_id: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
