"""Telegram messaging backend using python-telegram-bot v21+.

The Bot API offers no way to list chats or read history, so the backend keeps
a bounded buffer of the messages it has seen (inbound and outbound) and serves
``list_chats`` / ``fetch_messages`` from it.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from telegram import Message, Update
from telegram.ext import Application, MessageHandler as TGMessageHandler, filters

from chat_panel.config import TelegramConfig
from chat_panel.core.errors import BackendUnavailable
from chat_panel.log import get_logger
from chat_panel.messenger.base import MessagingBackend
from chat_panel.messenger.models import (
    ChatSummary,
    FetchedMessage,
    InboundMessage,
    MediaPayload,
    SendResult,
    TextOnly,
    WithMedia,
    media_placeholder,
)

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")


@dataclass
class _ChatBuffer:
    name: str
    is_group: bool
    messages: deque[FetchedMessage]
    unread: int = 0
    last_timestamp: int = 0
    last_message: str | None = None


@dataclass
class _Download:
    payload: MediaPayload | None = None
    kind: str = "chat"


class TelegramBackend(MessagingBackend):
    """Telegram bot backend using python-telegram-bot."""

    def __init__(self, config: TelegramConfig):
        super().__init__()
        self._config = config
        self._app: Application | None = None  # type: ignore[type-arg]
        self._ready = False
        self._account: dict[str, Any] | None = None
        self._chats: dict[str, _ChatBuffer] = {}

    @property
    def is_ready(self) -> bool:
        return self._ready

    def status(self) -> dict[str, Any]:
        return {
            "platform": "telegram",
            "is_ready": self._ready,
            "session_info": self._account,
        }

    async def start(self) -> None:
        if self._app is not None:
            logger.info("telegram_already_started")
            return
        if not self._config.token:
            raise BackendUnavailable("Telegram bot token is not configured")

        self._app = Application.builder().token(self._config.token).build()
        media_filter = filters.PHOTO | filters.VOICE | filters.AUDIO | filters.VIDEO
        self._app.add_handler(TGMessageHandler(filters.TEXT | media_filter, self._on_telegram_message))

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)  # type: ignore[union-attr]

        me = await self._app.bot.get_me()
        self._account = {"username": me.username, "id": me.id, "name": me.full_name}
        self._ready = True
        logger.info("telegram_backend_started", username=me.username)

    async def stop(self) -> None:
        if not self._app:
            return
        await self._app.updater.stop()  # type: ignore[union-attr]
        await self._app.stop()
        await self._app.shutdown()
        self._app = None
        self._ready = False
        self._account = None
        logger.info("telegram_backend_stopped")

    def normalize_chat_id(self, number: str) -> str:
        digits = _NON_DIGITS.sub("", number)
        # Group chat ids are negative.
        if digits and number.strip().startswith("-"):
            return f"-{digits}"
        return digits

    async def send_text(self, chat_id: str, text: str) -> SendResult:
        app = self._require_app()
        sent = await app.bot.send_message(chat_id=int(chat_id), text=text)
        return self._record_sent(chat_id, sent, text, has_media=False)

    async def send_media(self, chat_id: str, media: MediaPayload, caption: str = "") -> SendResult:
        app = self._require_app()
        target = int(chat_id)
        caption_arg = caption or None

        if media.family == "image":
            sent = await app.bot.send_photo(chat_id=target, photo=media.data, caption=caption_arg)
        elif media.family == "video":
            sent = await app.bot.send_video(chat_id=target, video=media.data, caption=caption_arg)
        elif media.family == "audio":
            sent = await app.bot.send_audio(chat_id=target, audio=media.data, caption=caption_arg)
        else:
            sent = await app.bot.send_document(
                chat_id=target, document=media.data, filename=media.filename, caption=caption_arg
            )
        return self._record_sent(chat_id, sent, caption, has_media=True)

    async def list_chats(self) -> list[ChatSummary]:
        self._require_app()
        chats = [
            ChatSummary(
                id=chat_id,
                name=buf.name,
                unread_count=buf.unread,
                timestamp=buf.last_timestamp,
                is_group=buf.is_group,
                last_message=buf.last_message,
            )
            for chat_id, buf in self._chats.items()
        ]
        chats.sort(key=lambda c: c.timestamp, reverse=True)
        return chats

    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[FetchedMessage]:
        self._require_app()
        buf = self._chats.get(chat_id)
        if buf is None:
            return []
        buf.unread = 0
        if limit <= 0:
            return []
        return list(buf.messages)[-limit:]

    # ── helpers ─────────────────────────────────────────────────

    def _require_app(self) -> Application:  # type: ignore[type-arg]
        if not self._ready or self._app is None:
            raise BackendUnavailable("Messaging client is not ready. Please start the session first.")
        return self._app

    def _buffer_for(self, chat_id: str, name: str, is_group: bool) -> _ChatBuffer:
        buf = self._chats.get(chat_id)
        if buf is None:
            buf = _ChatBuffer(
                name=name,
                is_group=is_group,
                messages=deque(maxlen=self._config.buffer_size),
            )
            self._chats[chat_id] = buf
        return buf

    def _remember(self, chat_id: str, name: str, is_group: bool, message: FetchedMessage) -> None:
        buf = self._buffer_for(chat_id, name, is_group)
        buf.messages.append(message)
        buf.last_timestamp = message.timestamp
        buf.last_message = message.body
        if not message.from_me:
            buf.unread += 1

    def _record_sent(self, chat_id: str, sent: Message, body: str, has_media: bool) -> SendResult:
        timestamp = int((sent.date or datetime.now(timezone.utc)).timestamp())
        chat = sent.chat
        self._remember(
            chat_id,
            chat.title or chat.full_name or chat_id,
            chat.type in ("group", "supergroup"),
            FetchedMessage(
                id=str(sent.message_id),
                body=body,
                timestamp=timestamp,
                from_me=True,
                has_media=has_media,
            ),
        )
        return SendResult(message_id=str(sent.message_id), timestamp=timestamp)

    async def _download_media(self, msg: Message) -> _Download:
        result = _Download()
        source: Any = None
        mime_type = "application/octet-stream"
        filename = "attachment"

        if msg.photo:
            source, mime_type, filename, result.kind = msg.photo[-1], "image/jpeg", "photo.jpg", "image"
        elif msg.voice:
            source, result.kind = msg.voice, "ptt"
            mime_type, filename = msg.voice.mime_type or "audio/ogg", "voice.ogg"
        elif msg.audio:
            source, result.kind = msg.audio, "audio"
            mime_type, filename = msg.audio.mime_type or "audio/mpeg", msg.audio.file_name or "audio"
        elif msg.video:
            source, result.kind = msg.video, "video"
            mime_type, filename = msg.video.mime_type or "video/mp4", msg.video.file_name or "video.mp4"

        if source is None:
            return result

        try:
            tg_file = await source.get_file()
            data = await tg_file.download_as_bytearray()
            result.payload = MediaPayload(data=bytes(data), mime_type=mime_type, filename=filename)
        except Exception as e:
            logger.warning("telegram_media_download_error", error=str(e), kind=result.kind)
        return result

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        """Normalize an incoming Telegram message and hand it to the callback."""
        msg = update.message
        if not msg:
            return

        text = msg.text or msg.caption or ""
        download = await self._download_media(msg)
        if not text and download.payload is None:
            return

        chat_id = str(msg.chat_id)
        is_group = msg.chat.type in ("group", "supergroup")
        user = msg.from_user
        sender_name = user.full_name if user else "Unknown"
        timestamp = msg.date or datetime.now(timezone.utc)

        content = WithMedia(media=download.payload, text=text) if download.payload else TextOnly(text=text)
        incoming = InboundMessage(
            message_id=str(msg.message_id),
            chat_id=chat_id,
            sender_id=str(user.id) if user else "unknown",
            sender_name=sender_name,
            content=content,
            timestamp=timestamp,
            from_me=bool(user and self._account and user.id == self._account["id"]),
            is_group=is_group,
            group_name=msg.chat.title if is_group else None,
        )

        self._remember(
            chat_id,
            msg.chat.title or sender_name,
            is_group,
            FetchedMessage(
                id=incoming.message_id,
                body=text or (media_placeholder(download.payload.mime_type) if download.payload else ""),
                timestamp=int(timestamp.timestamp()),
                from_me=incoming.from_me,
                has_media=incoming.has_media,
                type=download.kind,
                sender_id=incoming.sender_id,
                sender_name=sender_name,
            ),
        )

        if not self._message_callback:
            return
        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), chat_id=chat_id)
