"""Telegram messenger adapter using python-telegram-bot v21+."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from telegram import Message, Update
from telegram.constants import ChatAction, ChatType, MessageEntityType, ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, MessageHandler as TGMessageHandler, filters

from apex_claw.config import TelegramConfig
from apex_claw.core.types import Platform
from apex_claw.log import get_logger
from apex_claw.messenger.base import MessengerAdapter
from apex_claw.messenger.models import Attachment, IncomingMessage, OutgoingMessage

logger = get_logger(__name__)

_GROUP_TYPES = {ChatType.GROUP, ChatType.SUPERGROUP}


class TelegramAdapter(MessengerAdapter):
    """Telegram bot adapter using python-telegram-bot."""

    def __init__(self, config: TelegramConfig):
        super().__init__()
        self.config = config
        self._app: Application | None = None  # type: ignore[type-arg]
        self._bot_id: int | None = None
        self._bot_username = ""

    @property
    def platform_name(self) -> str:
        return Platform.TELEGRAM

    async def start(self) -> None:
        if not self.config.bot_token:
            raise ValueError("Telegram bot token not configured")

        self._app = Application.builder().token(self.config.bot_token).build()

        # Text and commands share one path; the handler decides what a command is
        self._app.add_handler(TGMessageHandler(filters.TEXT, self._on_telegram_message))
        self._app.add_handler(TGMessageHandler(filters.PHOTO, self._on_telegram_message))
        self._app.add_handler(TGMessageHandler(filters.Document.ALL, self._on_telegram_message))
        self._app.add_handler(TGMessageHandler(filters.VOICE | filters.AUDIO, self._on_telegram_message))

        await self._app.initialize()
        bot = self._app.bot
        self._bot_id = bot.id
        self._bot_username = bot.username or ""
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)  # type: ignore[union-attr]
        logger.info("telegram_adapter_started", username=self._bot_username)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            logger.info("telegram_adapter_stopped")

    async def send_message(self, message: OutgoingMessage) -> Optional[str]:
        if not self._app or not self._app.bot:
            return None

        chat_id = int(message.chat_id)
        reply_id = int(message.reply_to_message_id) if message.reply_to_message_id else None

        if message.attachments:
            sent_id = None
            for att in message.attachments:
                if att.is_image:
                    sent = await self._app.bot.send_photo(
                        chat_id=chat_id,
                        photo=att.data,
                        caption=message.text or None,
                        reply_to_message_id=reply_id,
                    )
                    sent_id = str(sent.message_id)
            return sent_id

        parse_mode = None
        if message.parse_mode == "markdown":
            parse_mode = ParseMode.MARKDOWN_V2
        elif message.parse_mode == "html":
            parse_mode = ParseMode.HTML

        try:
            sent = await self._app.bot.send_message(
                chat_id=chat_id,
                text=message.text,
                parse_mode=parse_mode,
                reply_to_message_id=reply_id,
            )
        except BadRequest as e:
            if parse_mode is None:
                raise
            # Model output is not always valid HTML; resend as plain text
            logger.warning("telegram_parse_fallback", error=str(e), chat_id=message.chat_id)
            sent = await self._app.bot.send_message(
                chat_id=chat_id,
                text=message.text,
                reply_to_message_id=reply_id,
            )
        return str(sent.message_id)

    async def send_file(
        self,
        chat_id: str,
        path: Path,
        caption: str = "",
        reply_to_message_id: Optional[str] = None,
    ) -> None:
        if not self._app or not self._app.bot:
            return
        with open(path, "rb") as fh:
            await self._app.bot.send_document(
                chat_id=int(chat_id),
                document=fh,
                filename=Path(path).name,
                caption=caption or None,
                reply_to_message_id=int(reply_to_message_id) if reply_to_message_id else None,
            )

    async def send_typing_indicator(self, chat_id: str) -> None:
        if self._app and self._app.bot:
            await self._app.bot.send_chat_action(
                chat_id=int(chat_id), action=ChatAction.TYPING
            )

    async def download_media(self, file_id: str) -> bytes:
        if not self._app or not self._app.bot:
            raise RuntimeError("Telegram adapter is not started")
        tg_file = await self._app.bot.get_file(file_id)
        return bytes(await tg_file.download_as_bytearray())

    def mentions_bot(self, msg: Message) -> bool:
        """True when the message @-mentions this bot by username."""
        if not self._bot_username:
            return False
        handle = f"@{self._bot_username}".lower()
        for entity, value in {**msg.parse_entities(), **msg.parse_caption_entities()}.items():
            if entity.type == MessageEntityType.MENTION and value.lower() == handle:
                return True
        return False

    def is_reply_to_bot(self, msg: Message) -> bool:
        reply = msg.reply_to_message
        return bool(reply and reply.from_user and self._bot_id is not None and reply.from_user.id == self._bot_id)

    async def _collect_attachments(self, msg: Message) -> list[Attachment]:
        """Download photo/document/voice payloads (highest resolution photo only)."""
        attachments: list[Attachment] = []
        if msg.photo:
            data = await self.download_media(msg.photo[-1].file_id)
            attachments.append(Attachment(data=data, media_type="image/jpeg", filename="photo.jpg"))
        if msg.document:
            doc = msg.document
            data = await self.download_media(doc.file_id)
            attachments.append(
                Attachment(
                    data=data,
                    media_type=doc.mime_type or "application/octet-stream",
                    filename=doc.file_name or "document",
                )
            )
        voice = msg.voice or msg.audio
        if voice:
            data = await self.download_media(voice.file_id)
            attachments.append(
                Attachment(data=data, media_type=voice.mime_type or "audio/ogg", filename="voice.ogg")
            )
        return attachments

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        """Convert a Telegram update into an IncomingMessage and dispatch it."""
        if not update.message:
            return
        if not self._message_callback:
            return

        msg = update.message
        text = msg.text or msg.caption or ""
        try:
            attachments = await self._collect_attachments(msg)
        except Exception as e:
            logger.warning("telegram_media_download_error", error=str(e))
            if msg.voice or msg.audio:
                await self.send_message(
                    OutgoingMessage(
                        chat_id=str(msg.chat_id),
                        text="⚠️ Failed to download voice message.",
                        reply_to_message_id=str(msg.message_id),
                    )
                )
                return
            attachments = []

        if not text and not attachments:
            return

        incoming = IncomingMessage(
            platform=Platform.TELEGRAM,
            chat_id=str(msg.chat_id),
            user_id=str(msg.from_user.id) if msg.from_user else "unknown",
            user_display_name=(
                msg.from_user.full_name if msg.from_user else "Unknown"
            ),
            text=text,
            timestamp=msg.date or datetime.now(timezone.utc),
            message_id=str(msg.message_id),
            reply_to_message_id=(
                str(msg.reply_to_message.message_id) if msg.reply_to_message else None
            ),
            is_group=msg.chat.type in _GROUP_TYPES,
            mentions_bot=self.mentions_bot(msg),
            reply_to_bot=self.is_reply_to_bot(msg),
            attachments=attachments,
        )

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), chat_id=str(msg.chat_id))
