"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Optional
from zoneinfo import ZoneInfo

from chat_panel.ai.client import AIClient, create_ai_client
from chat_panel.ai.responder import BotResponder
from chat_panel.config import AppConfig
from chat_panel.core.bot_config import BotConfigManager
from chat_panel.core.dispatcher import InboundDispatcher
from chat_panel.core.panel import ControlPanel
from chat_panel.log import get_logger
from chat_panel.memory.conversation_store import ConversationStore
from chat_panel.messenger.base import MessagingBackend
from chat_panel.reports.assembler import ReportAssembler
from chat_panel.services.scheduler import SchedulerService
from chat_panel.storage.database import Database
from chat_panel.storage.json_store import JsonFileStore
from chat_panel.storage.message_repo import MessageRepository
from chat_panel.webhook.forwarder import WebhookForwarder

logger = get_logger(__name__)

SWEEP_JOB_ID = "conversation_sweep"


class ChatPanelApp:
    """Top-level application orchestrator.

    Every component is built here and handed to the ones that need it; there
    is no module-level shared state.
    """

    def __init__(
        self,
        config: AppConfig,
        messaging: Optional[MessagingBackend] = None,
        ai_client: Optional[AIClient] = None,
    ):
        self.config = config
        storage = config.storage

        self.db = Database(storage.db_path)
        self.message_repo = MessageRepository(self.db)
        self.messaging = messaging or self._create_messaging()
        self.ai_client = ai_client or create_ai_client(config)

        self.conversations = ConversationStore(
            JsonFileStore(storage.conversations_path),
            max_messages=config.memory.max_messages_per_session,
            session_timeout_hours=config.memory.session_timeout_hours,
        )
        self.bot_config = BotConfigManager(JsonFileStore(storage.bot_config_path))
        self.webhook = WebhookForwarder(
            JsonFileStore(storage.webhook_config_path),
            timeout=config.webhook.timeout_seconds,
        )
        self.responder = BotResponder(
            self.bot_config,
            self.conversations,
            self.ai_client,
            history_messages=config.ai.history_messages,
        )
        self.reports = ReportAssembler(
            self.message_repo,
            self.messaging,
            self.ai_client,
            tz=ZoneInfo(config.reports.timezone),
            custom_prompt=config.reports.custom_prompt,
            live_fetch_limit=config.reports.live_fetch_limit,
            ai_timeout=config.reports.ai_timeout_seconds,
        )
        self.dispatcher = InboundDispatcher(
            self.messaging,
            self.responder,
            self.conversations,
            self.webhook,
            archive=self.message_repo,
        )
        self.panel = ControlPanel(
            self.messaging,
            self.bot_config,
            self.conversations,
            self.webhook,
            self.reports,
            report_timeout=config.reports.timeout_seconds,
        )
        self.scheduler = SchedulerService(config.scheduler)

    def _create_messaging(self) -> MessagingBackend:
        if self.config.telegram is None:
            raise ValueError("No messaging backend configured: add a 'telegram' section")

        from chat_panel.messenger.telegram import TelegramBackend

        return TelegramBackend(self.config.telegram)

    async def start(self, connect: bool = True) -> None:
        """Initialize and start all components."""
        # 1. Database
        await self.db.initialize()

        # 2. Housekeeping
        await self.scheduler.start()
        self.scheduler.add_interval_job(
            self.sweep_conversations,
            minutes=self.config.memory.sweep_interval_minutes,
            job_id=SWEEP_JOB_ID,
        )

        # 3. Messaging session
        self.messaging.on_message(self.dispatcher.handle)
        if connect:
            try:
                await self.messaging.start()
            except Exception as e:
                logger.error("messaging_start_failed", error=str(e))

        logger.info(
            "chat_panel_started",
            ai_backend=self.config.ai.backend,
            ai_model=self.ai_client.model_name,
            ai_available=self.ai_client.available,
            messaging_ready=self.messaging.is_ready,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.messaging.stop()
        except Exception as e:
            logger.error("messaging_stop_error", error=str(e))

        await self.webhook.drain()
        await self.scheduler.stop()
        await self.db.close()
        logger.info("chat_panel_stopped")

    async def sweep_conversations(self) -> int:
        # Must stay a coroutine: APScheduler runs plain callables in a worker thread.
        removed = self.conversations.sweep_expired(self.config.memory.session_timeout_hours)
        logger.debug("conversation_sweep_done", removed=removed)
        return removed
