"""Message handler: filters incoming messages, drives the agent, streams replies."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from apex_claw.ai.client import AIClient
from apex_claw.ai.models import FileRef
from apex_claw.ai.streaming import ChunkSink
from apex_claw.ai.tools.registry import ToolRegistry
from apex_claw.ai.transcription import Transcriber, TranscriptionError
from apex_claw.config import AgentConfig, TelegramConfig
from apex_claw.core.context import ContextStore, InvocationContext
from apex_claw.core.session import SessionManager
from apex_claw.errors import UpstreamAuthError, UpstreamError
from apex_claw.log import bind_turn, clear_turn, get_logger
from apex_claw.messenger.base import MessengerAdapter
from apex_claw.messenger.models import Attachment, IncomingMessage, OutgoingMessage

if TYPE_CHECKING:
    from apex_claw.services.scheduler import HeartbeatScheduler, ScheduledTask

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 4000

START_TEXT = "👋 ApexClaw is online. Send me a message, a photo or a voice note."
RESET_TEXT = "🔄 Conversation cleared."
AUTH_FAILED_TEXT = "⚠️ auth failed"
TIMEOUT_TEXT = "⚠️ Request timed out."
GENERIC_ERROR_TEXT = "⚠️ Something went wrong. Please try again."
UPLOAD_FAILED_TEXT = "⚠️ Failed to upload your image."
VOICE_UNSUPPORTED_TEXT = "🎙️ Voice messages are not supported: no transcription service is configured."
VOICE_FAILED_TEXT = "⚠️ Could not transcribe voice message. Try typing your message."
DEFAULT_IMAGE_PROMPT = "Describe this image."


class MessageHandler:
    """Handles the full flow: message -> filter -> context -> agent session -> streamed reply."""

    def __init__(
        self,
        adapter: MessengerAdapter,
        client: AIClient,
        sessions: SessionManager,
        registry: ToolRegistry,
        contexts: ContextStore,
        telegram_config: TelegramConfig,
        agent_config: AgentConfig,
        scheduler: Optional[HeartbeatScheduler] = None,
        transcriber: Optional[Transcriber] = None,
        download_dir: str | Path = "downloads",
    ):
        self._adapter = adapter
        self._client = client
        self._sessions = sessions
        self._registry = registry
        self._contexts = contexts
        self._telegram = telegram_config
        self._agent = agent_config
        self._scheduler = scheduler
        self._transcriber = transcriber
        self._download_dir = Path(download_dir)

    def is_allowed(self, message: IncomingMessage) -> bool:
        """Owner only; in groups only when addressed."""
        if message.user_id != self._telegram.owner_id:
            return False
        if not message.is_group:
            return True
        trigger = self._telegram.trigger_word.lower()
        return (
            message.mentions_bot
            or message.reply_to_bot
            or bool(trigger and trigger in message.text.lower())
        )

    async def handle(self, message: IncomingMessage) -> None:
        """Process an incoming message end-to-end."""
        if not self.is_allowed(message):
            logger.debug("message_ignored", chat_id=message.chat_id, user_id=message.user_id)
            return

        text = message.text.strip()
        if text.startswith("/") and await self._handle_command(message, text):
            return

        bind_turn(owner_id=message.user_id, chat_id=message.chat_id)
        try:
            await self._handle_turn(message, text)
        finally:
            clear_turn()

    async def _handle_turn(self, message: IncomingMessage, text: str) -> None:
        extras: dict[str, str] = {}
        files: list[FileRef] = []

        for att in message.attachments:
            if att.is_image:
                try:
                    files.append(await self._client.upload(att.data, att.filename))
                except UpstreamError as e:
                    logger.warning("image_upload_failed", error=str(e))
                    await self._reply(message, UPLOAD_FAILED_TEXT)
                    return
                text = text or DEFAULT_IMAGE_PROMPT
            elif att.is_audio:
                transcript = await self._transcribe(message, att)
                if transcript is None:
                    return
                text = f"{text}\n{transcript}".strip()
            else:
                path = self._save_document(att)
                extras.update(file_name=att.filename, file_path=str(path))
                text = text or f"Process this file: {att.filename}"

        if not text:
            return

        ctx = InvocationContext(
            owner_id=message.user_id,
            chat_id=message.chat_id,
            message_id=message.message_id,
            sender_id=message.user_id,
            reply_to_msg_id=message.reply_to_message_id,
            group_id=message.chat_id if message.is_group else None,
            extras=extras,
        )
        self._contexts.install(ctx)

        logger.info("message_received", chat_id=message.chat_id, length=len(text), files=len(files))
        try:
            await self._adapter.send_typing_indicator(message.chat_id)
        except Exception as e:
            logger.warning("typing_indicator_failed", error=str(e))

        error_text = await self._run_agent(ctx, text, files)
        if error_text:
            await self._reply(message, error_text)

    async def _run_agent(self, ctx: InvocationContext, text: str, files: list[FileRef]) -> Optional[str]:
        """Run one turn under the frontend deadline; returns a user-facing error text on failure."""
        session = self._sessions.get_or_create(ctx.owner_id)
        sink = self._sink(ctx.chat_id, ctx.message_id or None)
        try:
            async with asyncio.timeout(self._agent.turn_timeout_seconds):
                await session.run(text, ctx=ctx, on_chunk=sink, attachments=files or None)
        except TimeoutError:
            logger.warning("agent_timeout", timeout=self._agent.turn_timeout_seconds)
            return TIMEOUT_TEXT
        except UpstreamAuthError as e:
            logger.error("upstream_auth_error", error=str(e))
            return AUTH_FAILED_TEXT
        except UpstreamError as e:
            logger.error("upstream_error", error=str(e), status_code=e.status_code)
            return GENERIC_ERROR_TEXT
        except Exception as e:
            logger.error("agent_error", error=str(e))
            return GENERIC_ERROR_TEXT
        return None

    async def run_scheduled(self, task: ScheduledTask) -> None:
        """Heartbeat entry point: run a task prompt as the owner and reply to the origin message."""
        ctx = InvocationContext(
            owner_id=task.owner_id,
            chat_id=task.origin_chat_id,
            message_id=task.origin_message_id,
            sender_id=task.owner_id,
            group_id=task.group_id,
        )
        self._contexts.install(ctx)
        session = self._sessions.get_or_create(task.owner_id)
        bind_turn(owner_id=task.owner_id, chat_id=task.origin_chat_id, task_id=task.id)
        try:
            await session.run(task.prompt, ctx=ctx, on_chunk=self._sink(ctx.chat_id, ctx.message_id or None))
        finally:
            clear_turn()

    def _sink(self, chat_id: str, reply_to: Optional[str]) -> ChunkSink:
        async def send_chunk(chunk: str) -> None:
            chunk = chunk.strip()
            if not chunk:
                return
            for part in _split_message(chunk, max_length=MAX_MESSAGE_LENGTH):
                await self._adapter.send_message(
                    OutgoingMessage(chat_id=chat_id, text=part, parse_mode="html", reply_to_message_id=reply_to)
                )

        return send_chunk

    async def _handle_command(self, message: IncomingMessage, text: str) -> bool:
        """Run a slash command; returns False when the text should go to the agent instead."""
        command = text.split()[0].split("@")[0].lower()
        owner_id = message.user_id

        match command:
            case "/start":
                reply = START_TEXT
            case "/reset":
                self._sessions.reset(owner_id)
                reply = RESET_TEXT
            case "/status":
                session = self._sessions.get_or_create(owner_id)
                reply = f"History: {session.history_len()} msgs | Model: {session.model} | Tools: {len(self._registry)}"
            case "/tasks":
                reply = self._scheduler.format_tasks() if self._scheduler else "Scheduler is not running."
            case "/tools":
                reply = "\n".join(f"• {t.name}: {t.description}" for t in self._registry.list()) or "No tools."
            case _:
                return False

        await self._reply(message, reply)
        return True

    async def _transcribe(self, message: IncomingMessage, att: Attachment) -> Optional[str]:
        if self._transcriber is None:
            await self._reply(message, VOICE_UNSUPPORTED_TEXT)
            return None
        try:
            return await self._transcriber.transcribe(att.data, media_type=att.media_type)
        except TranscriptionError as e:
            logger.warning("transcription_failed", error=str(e))
            await self._reply(message, VOICE_FAILED_TEXT)
            return None

    def _save_document(self, att: Attachment) -> Path:
        self._download_dir.mkdir(parents=True, exist_ok=True)
        path = self._download_dir / f"{uuid.uuid4().hex[:8]}_{Path(att.filename).name}"
        path.write_bytes(att.data)
        return path.resolve()

    async def _reply(self, message: IncomingMessage, text: str) -> None:
        await self._adapter.send_message(
            OutgoingMessage(chat_id=message.chat_id, text=text, reply_to_message_id=message.message_id or None)
        )


def _split_message(text: str, max_length: int = 4000) -> list[str]:
    """Split a message into chunks that fit within platform limits."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break
        # Try to split at a newline
        split_pos = text.rfind("\n", 0, max_length)
        if split_pos == -1:
            split_pos = max_length
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks
