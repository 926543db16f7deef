"""Abstract messaging backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from chat_panel.messenger.models import (
    ChatSummary,
    FetchedMessage,
    InboundMessage,
    MediaPayload,
    SendResult,
)

MessageCallback = Callable[[InboundMessage], Awaitable[Any]]


class MessagingBackend(ABC):
    """Narrow interface over a third-party messaging client.

    To support a new messenger, subclass this and implement all abstract methods.
    Methods that need an authenticated client raise ``BackendUnavailable``
    while ``is_ready`` is False.
    """

    def __init__(self) -> None:
        self._message_callback: MessageCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    def status(self) -> dict[str, Any]:
        """Connection state for display (ready flag, account info, ...)."""
        ...

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> SendResult:
        ...

    @abstractmethod
    async def send_media(self, chat_id: str, media: MediaPayload, caption: str = "") -> SendResult:
        ...

    @abstractmethod
    async def list_chats(self) -> list[ChatSummary]:
        ...

    @abstractmethod
    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[FetchedMessage]:
        ...

    def normalize_chat_id(self, number: str) -> str:
        """Turn user input (phone number, id with punctuation) into a chat id."""
        return number.strip()

    def on_message(self, callback: MessageCallback) -> None:
        """Register the callback invoked for every inbound message."""
        self._message_callback = callback
