"""Auto-reply bot, conversation memory and daily reports over a messaging client."""

__version__ = "0.1.0"
