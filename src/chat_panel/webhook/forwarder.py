"""Best-effort delivery of inbound-message events to one external URL."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from chat_panel.core.errors import ValidationError
from chat_panel.log import get_logger
from chat_panel.messenger.models import InboundMessage
from chat_panel.storage.json_store import StateStore

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class WebhookConfig(BaseModel):
    enabled: bool = False
    url: str = ""


def build_event(message: InboundMessage) -> dict[str, Any]:
    """JSON body posted for one inbound message."""
    media = message.media
    return {
        "from": message.chat_id,
        "sender": message.sender_id,
        "body": message.text,
        "hasMedia": media is not None,
        "media": (
            {"mimetype": media.mime_type, "data": media.to_base64(), "filename": media.filename}
            if media is not None
            else None
        ),
        "timestamp": int(message.timestamp.timestamp()),
        "senderName": message.sender_name,
        "isGroup": message.is_group,
        "groupName": message.group_name,
    }


class WebhookForwarder:
    """Fire-and-forget POSTs; failures are logged, never retried or raised."""

    def __init__(
        self,
        state_store: StateStore,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._state_store = state_store
        self._timeout = timeout
        self._transport = transport
        self._config = self._load()
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def config(self) -> WebhookConfig:
        return self._config

    def _load(self) -> WebhookConfig:
        data = self._state_store.load()
        if data is None:
            return WebhookConfig()
        try:
            return WebhookConfig.model_validate(data)
        except PydanticValidationError as e:
            logger.error("webhook_config_invalid", error=str(e))
            return WebhookConfig()

    def update_config(self, enabled: Optional[bool] = None, url: Optional[str] = None) -> WebhookConfig:
        """Shallow merge; enabling with no URL is rejected before anything changes."""
        changes: dict[str, Any] = {}
        if enabled is not None:
            changes["enabled"] = enabled
        if url is not None:
            changes["url"] = url.strip()

        updated = self._config.model_copy(update=changes)
        if updated.enabled and not updated.url:
            raise ValidationError("A webhook URL is required to enable forwarding")

        self._config = updated
        try:
            self._state_store.save(self._config.model_dump())
        except Exception as e:
            logger.error("webhook_config_save_error", error=str(e))
        logger.info("webhook_config_updated", enabled=updated.enabled, url=updated.url)
        return self._config

    async def forward(self, message: InboundMessage) -> None:
        config = self._config
        if not config.enabled or not config.url:
            return

        payload = build_event(message)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(config.url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("webhook_delivery_error", url=config.url, error=str(e))
            return

        if response.is_success:
            logger.info("webhook_delivered", url=config.url, status=response.status_code)
        else:
            logger.error("webhook_delivery_failed", url=config.url, status=response.status_code)

    def forward_in_background(self, message: InboundMessage) -> asyncio.Task[None] | None:
        """Schedule ``forward`` without waiting for it."""
        if not self._config.enabled or not self._config.url:
            return None
        task = asyncio.create_task(self.forward(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
