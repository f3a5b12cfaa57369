"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

from apex_claw.ai.client import ZaiClient
from apex_claw.ai.handler import MessageHandler
from apex_claw.ai.session import AgentSession
from apex_claw.ai.tools.registry import ToolRegistry
from apex_claw.ai.transcription import Transcriber
from apex_claw.config import AppConfig
from apex_claw.core.context import ContextStore
from apex_claw.core.session import SessionManager
from apex_claw.log import get_logger
from apex_claw.messenger.base import MessengerAdapter
from apex_claw.services.scheduler import HeartbeatScheduler
from apex_claw.services.service_manager import ServiceManager

logger = get_logger(__name__)


class ApexClawApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, adapter: MessengerAdapter | None = None, client: ZaiClient | None = None):
        config.require_mandatory()
        self.config = config
        self.client = client or ZaiClient(config.upstream)
        self.contexts = ContextStore()
        self.scheduler = HeartbeatScheduler(config.scheduler)
        self.adapter = adapter or self._create_adapter()
        self.tool_registry = ToolRegistry(owner_id=config.telegram.owner_id)
        self.session_manager = SessionManager(self._new_session)
        self.service_manager = ServiceManager(
            critical=[self.scheduler],
            optional=[self.client.fe_version],
        )
        transcriber = Transcriber(config.transcription) if config.transcription.url else None
        self.handler = MessageHandler(
            adapter=self.adapter,
            client=self.client,
            sessions=self.session_manager,
            registry=self.tool_registry,
            contexts=self.contexts,
            telegram_config=config.telegram,
            agent_config=config.agent,
            scheduler=self.scheduler,
            transcriber=transcriber,
            download_dir=Path(config.tools.workspace_dir) / "downloads",
        )

    def _new_session(self, owner_id: str) -> AgentSession:
        agent = self.config.agent
        return AgentSession(
            owner_id=owner_id,
            client=self.client,
            registry=self.tool_registry,
            contexts=self.contexts,
            model=agent.model,
            max_iterations=agent.max_iterations,
            history_limit=agent.history_limit,
            observation_cap_bytes=agent.observation_cap_bytes,
            flush_bytes=agent.stream_flush_bytes,
            tz=ZoneInfo(self.config.scheduler.timezone),
        )

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Tools
        self.tool_registry.discover_and_register(
            self.config.tools,
            scheduler=self.scheduler,
            affordances=self.adapter.affordances(),
        )

        # 2. Heartbeat runs scheduled prompts through the owner's session
        self.scheduler.set_runner(self.handler.run_scheduled)

        # 3. Services
        await self.service_manager.start_all()

        # 4. Frontend
        self.adapter.on_message(self.handler.handle)
        await self.adapter.start()

        logger.info(
            "apex_claw_started",
            model=self.config.agent.model,
            tools=len(self.tool_registry),
            platform=self.adapter.platform_name,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.adapter.stop()
        except Exception as e:
            logger.error("adapter_stop_error", error=str(e))

        await self.service_manager.stop_all()
        await self.client.aclose()
        logger.info("apex_claw_stopped")

    def _create_adapter(self) -> MessengerAdapter:
        from apex_claw.messenger.telegram import TelegramAdapter

        return TelegramAdapter(self.config.telegram)
