"""Abstract messenger adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from apex_claw.messenger.models import IncomingMessage, OutgoingMessage

MessageCallback = Callable[[IncomingMessage], Awaitable[None]]


class MessengerAdapter(ABC):
    """Base class for messenger frontends.

    To add a new messenger, subclass this and implement all abstract methods.
    """

    def __init__(self) -> None:
        self._message_callback: MessageCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> Optional[str]:
        """Send a message; returns the platform message id when known."""
        ...

    @abstractmethod
    async def send_typing_indicator(self, chat_id: str) -> None:
        """Show typing/processing indicator."""
        ...

    @abstractmethod
    async def send_file(
        self,
        chat_id: str,
        path: Path,
        caption: str = "",
        reply_to_message_id: Optional[str] = None,
    ) -> None:
        """Upload a local file to the chat as a document."""
        ...

    @abstractmethod
    async def download_media(self, file_id: str) -> bytes:
        """Fetch the bytes of a platform-hosted file."""
        ...

    def on_message(self, callback: MessageCallback) -> None:
        """Register the callback invoked for every incoming message."""
        self._message_callback = callback

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return platform identifier string."""
        ...

    def affordances(self) -> FrontendAffordances:
        return FrontendAffordances(
            send_message=self.send_message,
            send_file=self.send_file,
            send_typing_indicator=self.send_typing_indicator,
            download_media=self.download_media,
        )


@dataclass(frozen=True, slots=True)
class FrontendAffordances:
    """Frontend callbacks handed to tools when the registry is built."""

    send_message: Callable[[OutgoingMessage], Awaitable[Optional[str]]]
    send_file: Callable[[str, Path, str, Optional[str]], Awaitable[None]]
    send_typing_indicator: Callable[[str], Awaitable[None]]
    download_media: Callable[[str], Awaitable[bytes]]
