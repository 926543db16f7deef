"""Operations exposed to an outer control surface (HTTP API, CLI, UI)."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from chat_panel.core.bot_config import BotConfig, BotConfigManager, Pattern
from chat_panel.core.errors import BackendUnavailable, ReportTimeout, ValidationError
from chat_panel.log import get_logger
from chat_panel.memory.conversation_store import ConversationStore
from chat_panel.messenger.base import MessagingBackend
from chat_panel.messenger.models import ChatSummary, FetchedMessage, MediaPayload, SendResult
from chat_panel.reports.assembler import ReportAssembler, ReportResult
from chat_panel.webhook.forwarder import WebhookConfig, WebhookForwarder

logger = get_logger(__name__)

_SENDABLE_MEDIA = ("image/", "video/")


class ControlPanel:
    """Validates requests, then delegates to the components that own the state."""

    def __init__(
        self,
        messaging: MessagingBackend,
        bot_config: BotConfigManager,
        conversations: ConversationStore,
        webhook: WebhookForwarder,
        reports: ReportAssembler,
        report_timeout: float = 30.0,
    ):
        self._messaging = messaging
        self._bot_config = bot_config
        self._conversations = conversations
        self._webhook = webhook
        self._reports = reports
        self._report_timeout = report_timeout

    # ── session ────────────────────────────────────────────────

    async def start_session(self) -> dict[str, Any]:
        await self._messaging.start()
        return self._messaging.status()

    async def stop_session(self) -> None:
        await self._messaging.stop()

    def session_status(self) -> dict[str, Any]:
        return self._messaging.status()

    def _require_ready(self) -> None:
        if not self._messaging.is_ready:
            raise BackendUnavailable("Messaging client is not ready. Please start the session first.")

    def _chat_id(self, number: str) -> str:
        chat_id = self._messaging.normalize_chat_id(number or "")
        if not chat_id:
            raise ValidationError(f"Invalid recipient: {number!r}")
        return chat_id

    # ── sending ────────────────────────────────────────────────

    async def send_message(self, number: str, text: str) -> SendResult:
        if not number or not text:
            raise ValidationError("Number and message are required")
        chat_id = self._chat_id(number)
        self._require_ready()
        result = await self._messaging.send_text(chat_id, text)
        logger.info("message_sent", chat_id=chat_id, message_id=result.message_id)
        return result

    async def send_media(
        self,
        number: str,
        media: Optional[MediaPayload],
        caption: str = "",
    ) -> SendResult:
        if not number or media is None:
            raise ValidationError("Number and media are required")
        if not media.mime_type or not media.data:
            raise ValidationError("Media must include a mime type and data")
        if not media.mime_type.startswith(_SENDABLE_MEDIA):
            raise ValidationError("Only image and video mime types are supported")
        chat_id = self._chat_id(number)
        self._require_ready()
        result = await self._messaging.send_media(chat_id, media, caption or "")
        logger.info("media_sent", chat_id=chat_id, mime_type=media.mime_type)
        return result

    # ── bot config ─────────────────────────────────────────────

    def get_bot_config(self) -> BotConfig:
        return self._bot_config.config

    def update_bot_config(
        self,
        enabled: Optional[bool] = None,
        use_ai: Optional[bool] = None,
        system_instruction: Optional[str] = None,
    ) -> BotConfig:
        return self._bot_config.update(
            enabled=enabled,
            use_ai=use_ai,
            system_instruction=system_instruction,
        )

    def add_pattern(self, trigger: str, response: str) -> Pattern:
        return self._bot_config.add_pattern(trigger, response)

    def remove_pattern(self, trigger: str) -> int:
        return self._bot_config.remove_pattern(trigger)

    # ── webhook ────────────────────────────────────────────────

    def get_webhook_config(self) -> WebhookConfig:
        return self._webhook.config

    def update_webhook_config(
        self,
        enabled: Optional[bool] = None,
        url: Optional[str] = None,
    ) -> WebhookConfig:
        return self._webhook.update_config(enabled=enabled, url=url)

    # ── chats / memory / reports ───────────────────────────────

    async def list_chats(self) -> list[ChatSummary]:
        self._require_ready()
        return await self._messaging.list_chats()

    async def chat_history(self, chat_id: str, limit: int = 50) -> list[FetchedMessage]:
        if not chat_id:
            raise ValidationError("Chat id is required")
        self._require_ready()
        return await self._messaging.fetch_messages(chat_id, limit)

    def conversation_stats(self) -> dict[str, Any]:
        return self._conversations.stats()

    def clear_conversation(self, chat_id: str) -> bool:
        if not chat_id:
            raise ValidationError("Chat id is required")
        return self._conversations.clear(chat_id)

    async def daily_report(self, date: Optional[str] = None, use_ai: bool = True) -> ReportResult:
        try:
            return await asyncio.wait_for(
                self._reports.assemble(date=date, use_ai=use_ai),
                timeout=self._report_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("report_timeout", date=date, timeout=self._report_timeout)
            raise ReportTimeout(f"Report generation timed out after {self._report_timeout:g}s") from e
