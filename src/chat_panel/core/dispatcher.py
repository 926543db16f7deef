"""Inbound message flow: archive -> webhook -> bot decision -> memory -> reply."""

from __future__ import annotations

from typing import Optional

from chat_panel.ai.responder import BotReply, BotResponder
from chat_panel.core.types import Role
from chat_panel.log import get_logger
from chat_panel.memory.conversation_store import ConversationStore
from chat_panel.messenger.base import MessagingBackend
from chat_panel.messenger.models import InboundMessage
from chat_panel.storage.message_repo import MessageRepository
from chat_panel.storage.models import ArchivedMessage
from chat_panel.webhook.forwarder import WebhookForwarder

logger = get_logger(__name__)


class InboundDispatcher:
    """Handles every message the messaging backend receives.

    Nothing raised while handling a message escapes to the backend.
    """

    def __init__(
        self,
        messaging: MessagingBackend,
        responder: BotResponder,
        conversations: ConversationStore,
        webhook: WebhookForwarder,
        archive: Optional[MessageRepository] = None,
    ):
        self._messaging = messaging
        self._responder = responder
        self._conversations = conversations
        self._webhook = webhook
        self._archive = archive

    async def handle(self, message: InboundMessage) -> Optional[BotReply]:
        """Process one inbound message end-to-end. Returns the reply sent, if any."""
        if message.from_me:
            return None

        await self._archive_message(message)
        self._webhook.forward_in_background(message)

        if not self._responder.enabled:
            return None

        try:
            return await self._respond(message)
        except Exception as e:
            logger.error("inbound_handler_error", chat_id=message.chat_id, error=str(e))
            return None

    async def _archive_message(self, message: InboundMessage) -> None:
        if self._archive is None:
            return
        try:
            await self._archive.upsert(ArchivedMessage.from_inbound(message))
        except Exception as e:
            logger.warning("message_archive_failed", chat_id=message.chat_id, error=str(e))

    async def _respond(self, message: InboundMessage) -> Optional[BotReply]:
        chat_id = message.chat_id

        # Commands act on the history, so they are not recorded in it.
        reply = self._responder.command_reply(message)
        if reply is not None:
            await self._messaging.send_text(chat_id, reply.text)
            return reply

        self._conversations.append(chat_id, Role.USER, message.effective_text)

        reply = await self._responder.generate(message)
        if reply is None:
            return None

        self._conversations.append(chat_id, Role.ASSISTANT, reply.text)
        await self._messaging.send_text(chat_id, reply.text)
        logger.info("bot_replied", chat_id=chat_id, kind=str(reply.kind))
        return reply
