"""AI client abstraction with Anthropic API and Claude Code CLI backends."""

from __future__ import annotations

import asyncio
import json
import os
import platform
import shutil
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from chat_panel.ai.prompts import build_summary_prompt, describe_media
from chat_panel.config import AIConfig, AnthropicConfig, AppConfig, ClaudeCodeConfig
from chat_panel.core.errors import AIUnavailable
from chat_panel.log import get_logger
from chat_panel.messenger.models import MediaPayload

if TYPE_CHECKING:
    from chat_panel.storage.models import ArchivedMessage

logger = get_logger(__name__)

# Media types the Messages API accepts as inline blocks.
_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
_DOCUMENT_TYPES = frozenset({"application/pdf"})


class AIClient(ABC):
    """Abstract base class for text generation backends."""

    @property
    def available(self) -> bool:
        return True

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    async def generate_text(self, prompt: str, media: MediaPayload | None = None) -> str:
        """Generate a reply for *prompt*, optionally looking at inline *media*.

        Raises ``AIUnavailable`` when the backend is not configured; any other
        exception means the call itself failed.
        """
        ...

    async def summarize(
        self,
        messages: list[ArchivedMessage],
        custom_prompt: Optional[str] = None,
    ) -> str:
        """Summarize a day's worth of archived messages."""
        return await self.generate_text(build_summary_prompt(messages, custom_prompt))


class DisabledAIClient(AIClient):
    """Stand-in used when no AI backend is configured."""

    def __init__(self, reason: str = "AI is not configured."):
        self._reason = reason

    @property
    def available(self) -> bool:
        return False

    @property
    def model_name(self) -> str:
        return "(none)"

    async def generate_text(self, prompt: str, media: MediaPayload | None = None) -> str:
        raise AIUnavailable(self._reason)


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, ai_config: AIConfig):
        import anthropic

        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._model = ai_config.model
        self._max_tokens = ai_config.max_tokens
        self._temperature = ai_config.temperature

    @property
    def model_name(self) -> str:
        return self._model

    @staticmethod
    def _content_blocks(prompt: str, media: MediaPayload | None) -> list[dict[str, Any]]:
        blocks: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if media is None:
            return blocks

        if media.mime_type in _IMAGE_TYPES:
            blocks.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": media.mime_type, "data": media.to_base64()},
                }
            )
        elif media.mime_type in _DOCUMENT_TYPES:
            blocks.append(
                {
                    "type": "document",
                    "source": {"type": "base64", "media_type": media.mime_type, "data": media.to_base64()},
                }
            )
        else:
            # Audio and video cannot be sent inline; the model only learns they exist.
            blocks.append({"type": "text", "text": describe_media(media)})
        return blocks

    async def generate_text(self, prompt: str, media: MediaPayload | None = None) -> str:
        content = self._content_blocks(prompt, media)
        logger.debug("api_request", model=self._model, blocks=len(content))
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            messages=[{"role": "user", "content": content}],
        )
        logger.debug(
            "api_response",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return "\n".join(b.text for b in response.content if b.type == "text").strip()


class ClaudeCodeClient(AIClient):
    """Claude Code CLI backend using subprocess."""

    def __init__(self, config: ClaudeCodeConfig):
        self._cli_path = self._resolve_cli_path(config.cli_path)
        self._model = config.model
        self._timeout = config.timeout

    @staticmethod
    def _resolve_cli_path(cli_path: str) -> str:
        """Resolve the claude CLI path, checking common install locations."""
        if os.path.isabs(cli_path) and os.path.exists(cli_path):
            return cli_path

        found = shutil.which(cli_path)
        if found:
            return found

        # On Windows, check common npm global locations
        if platform.system() == "Windows":
            for env_var in ("APPDATA", "LOCALAPPDATA"):
                base = os.environ.get(env_var, "")
                if not base:
                    continue
                candidate = os.path.join(base, "npm", "claude.cmd")
                if os.path.exists(candidate):
                    return candidate

        return cli_path

    @property
    def model_name(self) -> str:
        return self._model

    async def generate_text(self, prompt: str, media: MediaPayload | None = None) -> str:
        if media is not None:
            prompt = f"{prompt}\n\n{describe_media(media)}"

        # Pipe the prompt via stdin to avoid Windows encoding issues
        cmd = [self._cli_path, "-p", "--output-format", "json", "--model", self._model]
        logger.info("claude_code_request", cli_path=self._cli_path, prompt_length=len(prompt))

        # Remove ANTHROPIC_API_KEY from subprocess env so CLI uses subscription auth
        env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as e:
            raise AIUnavailable(f"Claude Code CLI not found at '{self._cli_path}'") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=prompt.encode("utf-8")),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            logger.error("claude_code_timeout", timeout=self._timeout)
            raise

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            logger.error(
                "claude_code_error",
                returncode=process.returncode,
                stderr=stderr_text,
                stdout=stdout_text[:500],
            )
            raise RuntimeError(
                f"Claude Code error (exit {process.returncode}): {stderr_text or stdout_text or '(no output)'}"
            )

        return self._parse_response(stdout_text)

    @staticmethod
    def _parse_response(output: str) -> str:
        """Parse Claude Code CLI JSON output."""
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            return output

        # {"result": "...", "cost_usd": ..., ...}
        if isinstance(data, dict):
            return str(data.get("result", "")).strip()
        if isinstance(data, list):
            texts = [
                item.get("result", "")
                for item in data
                if isinstance(item, dict) and item.get("type") == "result"
            ]
            return "\n".join(texts).strip()
        return output


def create_ai_client(config: AppConfig) -> AIClient:
    """Create an AI client based on the configured backend."""
    match config.ai.backend:
        case "anthropic":
            if not config.anthropic or not config.anthropic.api_key or config.anthropic.api_key.startswith("${"):
                logger.warning("ai_disabled", reason="no anthropic api key")
                return DisabledAIClient(
                    "Anthropic API is not configured. Set an api_key in the 'anthropic' section."
                )
            return AnthropicClient(config.anthropic, config.ai)
        case "claude_code":
            return ClaudeCodeClient(config.claude_code)
        case "none" | "":
            return DisabledAIClient()
        case _:
            raise ValueError(f"Unknown AI backend: {config.ai.backend}")
