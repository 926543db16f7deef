"""Daily activity reports: live vs historical source selection and summaries.

Today's report is read straight from the messaging client when possible and
falls back to the historical index on any error. Earlier days come from the
index, with one synchronization pass from the live client when the index has
nothing for that day. Summaries come from the AI backend or, when it is
unavailable or fails, from a deterministic message count / top contributors
digest.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import date as Date, datetime, time, timezone, tzinfo
from typing import Any, Callable, Optional

from chat_panel.ai.client import AIClient
from chat_panel.core.errors import BackendUnavailable, ValidationError
from chat_panel.core.types import ReportSource
from chat_panel.log import get_logger
from chat_panel.messenger.base import MessagingBackend
from chat_panel.storage.message_repo import MessageRepository
from chat_panel.storage.models import ArchivedMessage

logger = get_logger(__name__)

NO_MESSAGES_SUMMARY = "No messages found for this day."
TOP_CONTRIBUTORS = 5
DEFAULT_LIVE_FETCH_LIMIT = 100
DEFAULT_AI_TIMEOUT_SECONDS = 20.0


@dataclass
class ReportResult:
    date: str
    source: ReportSource
    summary: Optional[str]
    messages: list[ArchivedMessage] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "source": str(self.source),
            "summary": self.summary,
            "count": self.count,
            "messages": [asdict(m) for m in self.messages],
        }


def top_contributors(messages: list[ArchivedMessage], limit: int = TOP_CONTRIBUTORS) -> list[tuple[str, int]]:
    """(sender, count) pairs, busiest first; ties keep first-seen order."""
    counts: dict[str, int] = {}
    for message in messages:
        sender = message.sender_name or message.phone
        counts[sender] = counts.get(sender, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def fallback_summary(date: str, messages: list[ArchivedMessage]) -> str:
    lines = [
        f"AI summary unavailable. {len(messages)} messages were exchanged on {date}.",
        "",
        "Top contributors:",
    ]
    for rank, (sender, count) in enumerate(top_contributors(messages), start=1):
        noun = "message" if count == 1 else "messages"
        lines.append(f"{rank}. {sender}: {count} {noun}")
    return "\n".join(lines)


def render_transcript(messages: list[ArchivedMessage], tz: tzinfo = timezone.utc) -> str:
    """Chronological plain-text transcript for callers that skip the AI summary."""
    lines = []
    for m in messages:
        stamp = datetime.fromtimestamp(m.timestamp, tz).strftime("%H:%M")
        body = m.body or m.media_description or "[Media]"
        lines.append(f"[{stamp}] {m.sender_name or m.phone}: {body}")
    return "\n".join(lines)


class ReportAssembler:
    """Builds a ReportResult for one calendar day in the configured timezone."""

    def __init__(
        self,
        repo: MessageRepository,
        messaging: MessagingBackend | None,
        ai_client: AIClient,
        tz: tzinfo = timezone.utc,
        custom_prompt: Optional[str] = None,
        live_fetch_limit: int = DEFAULT_LIVE_FETCH_LIMIT,
        ai_timeout: float = DEFAULT_AI_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._repo = repo
        self._messaging = messaging
        self._ai_client = ai_client
        self._tz = tz
        self._custom_prompt = custom_prompt
        self._live_fetch_limit = live_fetch_limit
        self._ai_timeout = ai_timeout
        self._clock = clock

    def today(self) -> str:
        return self._clock().astimezone(self._tz).date().isoformat()

    def day_bounds(self, day: str) -> tuple[int, int]:
        """Epoch seconds of 00:00:00 and 23:59:59 local time on *day*."""
        try:
            parsed = Date.fromisoformat(day)
        except ValueError as e:
            raise ValidationError(f"Invalid date '{day}', expected YYYY-MM-DD") from e
        start = datetime.combine(parsed, time(0, 0, 0), tzinfo=self._tz)
        end = datetime.combine(parsed, time(23, 59, 59), tzinfo=self._tz)
        return int(start.timestamp()), int(end.timestamp())

    async def assemble(self, date: Optional[str] = None, use_ai: bool = True) -> ReportResult:
        day = date or self.today()
        start_ts, end_ts = self.day_bounds(day)
        logger.info("report_started", date=day, use_ai=use_ai)

        if day == self.today():
            try:
                messages = await self._live_messages(start_ts)
                source = ReportSource.REAL_TIME
            except Exception as e:
                logger.warning("report_live_fetch_failed", date=day, error=str(e))
                messages = await self._repo.get_range(start_ts, end_ts)
                source = ReportSource.DATABASE_FALLBACK
        else:
            messages = await self._repo.get_range(start_ts, end_ts)
            if not messages:
                await self.synchronize()
                messages = await self._repo.get_range(start_ts, end_ts)
            source = ReportSource.DATABASE

        if not messages:
            logger.info("report_empty", date=day, source=str(source))
            return ReportResult(date=day, source=source, summary=NO_MESSAGES_SUMMARY, messages=[])

        summary = await self._summarize(day, messages) if use_ai else None
        logger.info("report_done", date=day, source=str(source), count=len(messages))
        return ReportResult(date=day, source=source, summary=summary, messages=messages)

    def _require_messaging(self) -> MessagingBackend:
        if self._messaging is None or not self._messaging.is_ready:
            raise BackendUnavailable("Messaging client is not ready")
        return self._messaging

    async def _collect_live(self) -> list[ArchivedMessage]:
        messaging = self._require_messaging()
        collected: dict[str, ArchivedMessage] = {}
        for chat in await messaging.list_chats():
            for fetched in await messaging.fetch_messages(chat.id, self._live_fetch_limit):
                archived = ArchivedMessage.from_fetched(fetched, chat)
                collected[archived.id] = archived
        return list(collected.values())

    async def _live_messages(self, start_ts: int) -> list[ArchivedMessage]:
        live = [m for m in await self._collect_live() if m.timestamp >= start_ts]
        live.sort(key=lambda m: m.timestamp)

        # Keep the index current so later historical reports see these too.
        try:
            await self._repo.upsert_many(live)
        except Exception as e:
            logger.warning("report_archive_failed", error=str(e))
        return live

    async def synchronize(self) -> int:
        """Pull whatever the live client has into the historical index (best-effort)."""
        try:
            messages = await self._collect_live()
            stored = await self._repo.upsert_many(messages)
        except Exception as e:
            logger.warning("history_sync_failed", error=str(e))
            return 0
        logger.info("history_synced", count=stored)
        return stored

    async def _summarize(self, day: str, messages: list[ArchivedMessage]) -> str:
        if not self._ai_client.available:
            return fallback_summary(day, messages)
        try:
            summary = await asyncio.wait_for(
                self._ai_client.summarize(messages, self._custom_prompt),
                timeout=self._ai_timeout,
            )
        except Exception as e:
            logger.warning("report_ai_summary_failed", date=day, error=str(e) or type(e).__name__)
            return fallback_summary(day, messages)
        return summary.strip() or fallback_summary(day, messages)
