"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from chat_panel.messenger.models import media_placeholder

if TYPE_CHECKING:
    from chat_panel.messenger.models import ChatSummary, FetchedMessage, InboundMessage


@dataclass
class ArchivedMessage:
    """A normalized message record as stored in the historical index."""

    id: str
    timestamp: int  # epoch seconds
    phone: str  # sender id for direct chats, chat id for groups
    sender_name: str
    body: str
    has_media: bool = False
    is_group: bool = False
    group_name: Optional[str] = None
    media_description: Optional[str] = None

    @classmethod
    def from_inbound(cls, message: InboundMessage) -> ArchivedMessage:
        media = message.media
        return cls(
            id=f"{message.chat_id}:{message.message_id}",
            timestamp=int(message.timestamp.timestamp()),
            phone=message.sender_id,
            sender_name=message.sender_name,
            body=message.text,
            has_media=media is not None,
            is_group=message.is_group,
            group_name=message.group_name,
            media_description=media_placeholder(media.mime_type) if media else None,
        )

    @classmethod
    def from_fetched(cls, message: FetchedMessage, chat: ChatSummary) -> ArchivedMessage:
        if message.from_me:
            sender = "Me"
        else:
            sender = message.sender_name or chat.name
        return cls(
            id=f"{chat.id}:{message.id}",
            timestamp=message.timestamp,
            phone=message.sender_id or chat.id,
            sender_name=sender,
            body=message.body,
            has_media=message.has_media,
            is_group=chat.is_group,
            group_name=chat.name if chat.is_group else None,
            media_description=message.type if message.has_media else None,
        )
