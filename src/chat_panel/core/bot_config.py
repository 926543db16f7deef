"""Persisted auto-reply configuration: on/off switches, patterns, AI persona."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from chat_panel.ai.prompts import DEFAULT_SYSTEM_INSTRUCTION
from chat_panel.core.errors import ValidationError
from chat_panel.log import get_logger
from chat_panel.storage.json_store import StateStore

logger = get_logger(__name__)


class Pattern(BaseModel):
    trigger: str
    response: str


def _default_patterns() -> list[Pattern]:
    return [
        Pattern(trigger="hello", response="Hi there! How can I help you?"),
        Pattern(trigger="hi", response="Hello! 👋"),
        Pattern(trigger="help", response="I'm an auto-reply bot. You can chat with me!"),
    ]


class BotConfig(BaseModel):
    enabled: bool = False
    use_ai: bool = False
    # List order is match priority; duplicates are kept.
    patterns: list[Pattern] = Field(default_factory=_default_patterns)
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION


class BotConfigManager:
    """Owns the live BotConfig and writes it back after every change."""

    def __init__(self, state_store: StateStore):
        self._state_store = state_store
        self._config = self._load()

    @property
    def config(self) -> BotConfig:
        return self._config

    def _load(self) -> BotConfig:
        data = self._state_store.load()
        if data is None:
            logger.info("bot_config_defaults")
            return BotConfig()
        try:
            config = BotConfig.model_validate(data)
        except PydanticValidationError as e:
            logger.error("bot_config_invalid", error=str(e))
            return BotConfig()
        logger.info("bot_config_loaded", enabled=config.enabled, patterns=len(config.patterns))
        return config

    def _persist(self) -> None:
        try:
            self._state_store.save(self._config.model_dump())
        except Exception as e:
            logger.error("bot_config_save_error", error=str(e))

    def update(
        self,
        enabled: Optional[bool] = None,
        use_ai: Optional[bool] = None,
        system_instruction: Optional[str] = None,
    ) -> BotConfig:
        """Shallow merge: only the arguments that are given change."""
        changes = {
            key: value
            for key, value in (
                ("enabled", enabled),
                ("use_ai", use_ai),
                ("system_instruction", system_instruction),
            )
            if value is not None
        }
        self._config = self._config.model_copy(update=changes)
        self._persist()
        logger.info("bot_config_updated", **changes)
        return self._config

    def add_pattern(self, trigger: str, response: str) -> Pattern:
        if not trigger or not response:
            raise ValidationError("Trigger and response are required")
        pattern = Pattern(trigger=trigger, response=response)
        self._config.patterns.append(pattern)
        self._persist()
        logger.info("pattern_added", trigger=trigger)
        return pattern

    def remove_pattern(self, trigger: str) -> int:
        """Remove every pattern with exactly this trigger. Returns how many went."""
        before = len(self._config.patterns)
        self._config.patterns = [p for p in self._config.patterns if p.trigger != trigger]
        removed = before - len(self._config.patterns)
        self._persist()
        logger.info("pattern_removed", trigger=trigger, removed=removed)
        return removed
