"""Per-chat bounded dialogue history used as context for AI replies.

Every mutation is written through to the state store immediately. Write
failures are logged and ignored: the in-memory sessions stay authoritative
for the lifetime of the process.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from chat_panel.core.types import Role
from chat_panel.log import get_logger
from chat_panel.storage.json_store import StateStore

logger = get_logger(__name__)

MAX_MESSAGES_PER_SESSION = 50
SESSION_TIMEOUT_HOURS = 24
DEFAULT_CONTEXT_MESSAGES = 10

_CHAT_SUFFIXES = ("@c.us", "@g.us")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_time(value: str) -> datetime:
    return _as_utc(datetime.fromisoformat(value))


def session_id_for(chat_id: str) -> str:
    """Stable session key: the chat id without its domain marker."""
    session_id = chat_id
    for suffix in _CHAT_SUFFIXES:
        session_id = session_id.replace(suffix, "")
    return session_id


@dataclass
class ConversationEntry:
    role: str
    content: str
    timestamp: str


@dataclass
class ConversationSession:
    session_id: str
    chat_id: str
    created_at: str
    last_activity: str
    messages: list[ConversationEntry] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationSession:
        return cls(
            session_id=data["session_id"],
            chat_id=data.get("chat_id", data["session_id"]),
            created_at=data["created_at"],
            last_activity=data["last_activity"],
            messages=[
                ConversationEntry(role=m["role"], content=m["content"], timestamp=m["timestamp"])
                for m in data.get("messages", [])
            ],
            metadata=dict(data.get("metadata") or {}),
        )


class ConversationStore:
    """Bounded, persisted per-chat message history with idle expiry."""

    def __init__(
        self,
        state_store: StateStore,
        max_messages: int = MAX_MESSAGES_PER_SESSION,
        session_timeout_hours: float = SESSION_TIMEOUT_HOURS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._state_store = state_store
        self._max_messages = max_messages
        self._timeout_hours = session_timeout_hours
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = self._load()

    # ── persistence ─────────────────────────────────────────────

    def _load(self) -> dict[str, ConversationSession]:
        data = self._state_store.load()
        if not data:
            return {}

        sessions: dict[str, ConversationSession] = {}
        for session_id, raw in data.items():
            try:
                sessions[session_id] = ConversationSession.from_dict(raw)
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning("conversation_session_skipped", session_id=session_id, error=str(e))
        logger.info("conversations_loaded", count=len(sessions))
        return sessions

    def _persist(self) -> None:
        try:
            self._state_store.save({sid: s.to_dict() for sid, s in self._sessions.items()})
        except Exception as e:
            logger.error("conversations_save_error", error=str(e))

    # ── sessions ────────────────────────────────────────────────

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def get_session(self, chat_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id_for(chat_id))

    def _get_or_create(self, chat_id: str) -> ConversationSession:
        session_id = session_id_for(chat_id)
        session = self._sessions.get(session_id)
        if session is None:
            now = self._now_iso()
            session = ConversationSession(
                session_id=session_id,
                chat_id=chat_id,
                created_at=now,
                last_activity=now,
            )
            self._sessions[session_id] = session
            logger.info("conversation_session_created", session_id=session_id)
        return session

    def append(self, chat_id: str, role: Role | str, content: str) -> None:
        """Record one turn, dropping the oldest entries beyond the cap."""
        role = Role(role)
        session = self._get_or_create(chat_id)
        now = self._now_iso()

        session.messages.append(ConversationEntry(role=role.value, content=content, timestamp=now))
        if len(session.messages) > self._max_messages:
            session.messages = session.messages[-self._max_messages:]

        session.last_activity = now
        self._persist()

    def history(self, chat_id: str, max_messages: int = DEFAULT_CONTEXT_MESSAGES) -> list[dict[str, str]]:
        """The last *max_messages* turns, oldest first."""
        session = self.get_session(chat_id)
        if session is None or max_messages <= 0:
            return []
        return [{"role": m.role, "content": m.content} for m in session.messages[-max_messages:]]

    def format_for_prompt(self, chat_id: str, max_messages: int = DEFAULT_CONTEXT_MESSAGES) -> str:
        history = self.history(chat_id, max_messages)
        if not history:
            return ""

        lines = "\n".join(
            f"{'User' if m['role'] == Role.USER else 'Assistant'}: {m['content']}" for m in history
        )
        return f"Previous conversation:\n{lines}\n\n"

    def clear(self, chat_id: str) -> bool:
        """Drop the whole session. Returns whether one existed."""
        session_id = session_id_for(chat_id)
        existed = self._sessions.pop(session_id, None) is not None
        self._persist()
        logger.info("conversation_session_cleared", session_id=session_id, existed=existed)
        return existed

    def sweep_expired(
        self,
        timeout_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Remove sessions idle for longer than the timeout. Returns how many went."""
        timeout = timedelta(hours=self._timeout_hours if timeout_hours is None else timeout_hours)
        now = _as_utc(now or self._clock())

        expired = []
        for session_id, session in self._sessions.items():
            try:
                idle = now - _parse_time(session.last_activity)
            except ValueError:
                logger.warning("conversation_bad_timestamp", session_id=session_id)
                continue
            if idle > timeout:
                expired.append(session_id)

        for session_id in expired:
            del self._sessions[session_id]

        if expired:
            logger.info("conversation_sessions_expired", count=len(expired))
            self._persist()
        return len(expired)

    # ── metadata / stats ────────────────────────────────────────

    def get_metadata(self, chat_id: str) -> dict[str, Any]:
        session = self.get_session(chat_id)
        return dict(session.metadata) if session else {}

    def update_metadata(self, chat_id: str, metadata: dict[str, Any]) -> None:
        session = self._get_or_create(chat_id)
        session.metadata = {**session.metadata, **metadata}
        self._persist()

    def stats(self) -> dict[str, Any]:
        sessions = list(self._sessions.values())
        created = [s.created_at for s in sessions]
        return {
            "total_sessions": len(sessions),
            "total_messages": sum(len(s.messages) for s in sessions),
            "oldest_session": min(created) if created else None,
            "newest_session": max(created) if created else None,
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: str) -> bool:
        return session_id_for(chat_id) in self._sessions
