"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


class AIConfig(BaseModel):
    backend: str = "anthropic"  # "anthropic" | "claude_code" | "none"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1024
    temperature: float = 0.7
    history_messages: int = 10


class AnthropicConfig(BaseModel):
    # Left empty in .env means the AI backend is off.
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 60


class ClaudeCodeConfig(BaseModel):
    cli_path: str = "claude"
    model: str = "sonnet"
    timeout: int = 120


class TelegramConfig(BaseModel):
    token: Optional[str] = None
    # Recent messages kept per chat so the live report path has something to read.
    buffer_size: int = 200


class MemoryConfig(BaseModel):
    max_messages_per_session: int = 50
    session_timeout_hours: float = 24
    sweep_interval_minutes: int = 60


class ReportsConfig(BaseModel):
    timezone: str = "UTC"
    custom_prompt: Optional[str] = None
    live_fetch_limit: int = 100
    # Whole report, live fetch included.
    timeout_seconds: float = 30
    # AI summary only; must leave room inside timeout_seconds for the fallback.
    ai_timeout_seconds: float = 20

    @model_validator(mode="after")
    def _check_timeouts(self) -> ReportsConfig:
        if self.ai_timeout_seconds >= self.timeout_seconds:
            raise ValueError("reports.ai_timeout_seconds must be smaller than reports.timeout_seconds")
        return self


class WebhookServiceConfig(BaseModel):
    timeout_seconds: float = 30


class StorageConfig(BaseModel):
    db_path: str = "./data/chat_panel.db"
    conversations_path: str = "./data/conversations.json"
    bot_config_path: str = "./data/bot-config.json"
    webhook_config_path: str = "./data/webhook-config.json"


class SchedulerConfig(BaseModel):
    timezone: str = "UTC"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    ai: AIConfig = Field(default_factory=AIConfig)
    anthropic: Optional[AnthropicConfig] = None
    claude_code: ClaudeCodeConfig = Field(default_factory=ClaudeCodeConfig)
    telegram: Optional[TelegramConfig] = None
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    reports: ReportsConfig = Field(default_factory=ReportsConfig)
    webhook: WebhookServiceConfig = Field(default_factory=WebhookServiceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    config = AppConfig(**data)

    # The report prompt can also come straight from the environment.
    if not config.reports.custom_prompt:
        env_prompt = os.environ.get("DAILY_REPORT_PROMPT", "").strip()
        if env_prompt:
            config.reports.custom_prompt = env_prompt

    return config
