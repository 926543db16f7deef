"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ReplyKind(StrEnum):
    COMMAND = "command"
    PATTERN = "pattern"
    AI = "ai"


class ReportSource(StrEnum):
    REAL_TIME = "real-time"
    DATABASE = "database"
    DATABASE_FALLBACK = "database (fallback)"
