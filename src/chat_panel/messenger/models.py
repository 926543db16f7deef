"""Message models shared by the messaging backend and the bot pipeline."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

_PLACEHOLDERS = {
    "audio": "[Audio Message]",
    "video": "[Video Message]",
    "image": "[Image]",
}


def media_placeholder(mime_type: str) -> str:
    """Text that stands in for a message whose only content is media."""
    family = mime_type.split("/", 1)[0].lower()
    return _PLACEHOLDERS.get(family, "[Media]")


@dataclass(frozen=True, slots=True)
class MediaPayload:
    """Binary media (voice note, image, video, document)."""

    data: bytes
    mime_type: str  # e.g. "audio/ogg", "image/jpeg"
    filename: str = "attachment"

    @property
    def family(self) -> str:
        return self.mime_type.split("/", 1)[0].lower()

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True, slots=True)
class TextOnly:
    text: str


@dataclass(frozen=True, slots=True)
class WithMedia:
    media: MediaPayload
    text: str = ""


MessageContent = Union[TextOnly, WithMedia]


@dataclass(frozen=True, slots=True)
class InboundMessage:
    message_id: str
    chat_id: str
    sender_id: str
    sender_name: str
    content: MessageContent
    timestamp: datetime
    from_me: bool = False
    is_group: bool = False
    group_name: Optional[str] = None

    @property
    def text(self) -> str:
        return self.content.text

    @property
    def media(self) -> MediaPayload | None:
        if isinstance(self.content, WithMedia):
            return self.content.media
        return None

    @property
    def has_media(self) -> bool:
        return isinstance(self.content, WithMedia)

    @property
    def effective_text(self) -> str:
        """Message text, or a media placeholder when the text is empty."""
        text = self.text.strip()
        if not text and isinstance(self.content, WithMedia):
            return media_placeholder(self.content.media.mime_type)
        return text


@dataclass(frozen=True, slots=True)
class SendResult:
    message_id: str
    timestamp: int  # epoch seconds


@dataclass(frozen=True, slots=True)
class ChatSummary:
    id: str
    name: str
    unread_count: int
    timestamp: int
    is_group: bool
    last_message: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FetchedMessage:
    """A message read back from the messaging client's current state."""

    id: str
    body: str
    timestamp: int  # epoch seconds
    from_me: bool
    has_media: bool
    type: str = "chat"
    sender_id: str = ""
    sender_name: str = ""
