"""Shared fixtures and fakes for chat-panel tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio

from chat_panel.ai.client import AIClient
from chat_panel.core.bot_config import BotConfigManager
from chat_panel.core.errors import BackendUnavailable
from chat_panel.memory.conversation_store import ConversationStore
from chat_panel.messenger.base import MessagingBackend
from chat_panel.messenger.models import (
    ChatSummary,
    FetchedMessage,
    InboundMessage,
    MediaPayload,
    SendResult,
    TextOnly,
    WithMedia,
)
from chat_panel.storage.database import Database
from chat_panel.storage.json_store import MemoryStateStore
from chat_panel.storage.message_repo import MessageRepository

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeMessaging(MessagingBackend):
    """In-memory messaging backend recording everything sent through it."""

    def __init__(self, ready: bool = True):
        super().__init__()
        self.ready = ready
        self.sent: list[tuple[str, str]] = []
        self.sent_media: list[tuple[str, MediaPayload, str]] = []
        self.chats: list[ChatSummary] = []
        self.messages: dict[str, list[FetchedMessage]] = {}
        self.fail_listing = False
        self.started = 0
        self.stopped = 0

    async def start(self) -> None:
        self.started += 1
        self.ready = True

    async def stop(self) -> None:
        self.stopped += 1
        self.ready = False

    @property
    def is_ready(self) -> bool:
        return self.ready

    def status(self) -> dict[str, Any]:
        return {"platform": "fake", "is_ready": self.ready}

    async def send_text(self, chat_id: str, text: str) -> SendResult:
        self._check()
        self.sent.append((chat_id, text))
        return SendResult(message_id=f"out-{len(self.sent)}", timestamp=int(FIXED_NOW.timestamp()))

    async def send_media(self, chat_id: str, media: MediaPayload, caption: str = "") -> SendResult:
        self._check()
        self.sent_media.append((chat_id, media, caption))
        return SendResult(message_id=f"media-{len(self.sent_media)}", timestamp=int(FIXED_NOW.timestamp()))

    async def list_chats(self) -> list[ChatSummary]:
        self._check()
        if self.fail_listing:
            raise ConnectionError("client crashed")
        return list(self.chats)

    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[FetchedMessage]:
        self._check()
        return self.messages.get(chat_id, [])[-limit:]

    def add_chat(self, chat: ChatSummary, messages: list[FetchedMessage]) -> None:
        self.chats.append(chat)
        self.messages[chat.id] = messages

    def _check(self) -> None:
        if not self.ready:
            raise BackendUnavailable("not ready")


class FakeAI(AIClient):
    """Records prompts; returns canned text or raises."""

    def __init__(self, reply: str = "AI reply", available: bool = True, error: Optional[Exception] = None):
        self.reply = reply
        self._available = available
        self.error = error
        self.prompts: list[str] = []
        self.media: list[Optional[MediaPayload]] = []

    @property
    def available(self) -> bool:
        return self._available

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def generate_text(self, prompt: str, media: MediaPayload | None = None) -> str:
        self.prompts.append(prompt)
        self.media.append(media)
        if self.error is not None:
            raise self.error
        return self.reply


def make_inbound(
    text: str = "hello",
    chat_id: str = "972501234567@c.us",
    media: Optional[MediaPayload] = None,
    from_me: bool = False,
    message_id: str = "m1",
    sender_name: str = "Dana",
    timestamp: datetime = FIXED_NOW,
) -> InboundMessage:
    content = WithMedia(media=media, text=text) if media is not None else TextOnly(text=text)
    return InboundMessage(
        message_id=message_id,
        chat_id=chat_id,
        sender_id=chat_id,
        sender_name=sender_name,
        content=content,
        timestamp=timestamp,
        from_me=from_me,
    )


@pytest.fixture
def clock():
    """Mutable clock: set ``clock.now`` to move time."""

    class _Clock:
        now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def conversations(clock) -> ConversationStore:
    return ConversationStore(MemoryStateStore(), clock=clock)


@pytest.fixture
def bot_config() -> BotConfigManager:
    return BotConfigManager(MemoryStateStore())


@pytest.fixture
def messaging() -> FakeMessaging:
    return FakeMessaging()


@pytest_asyncio.fixture
async def message_repo():
    db = Database(":memory:")
    await db.initialize()
    yield MessageRepository(db)
    await db.close()
