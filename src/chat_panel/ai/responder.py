"""Auto-reply decision: special commands, fixed patterns, then AI fallback."""

from __future__ import annotations

from dataclasses import dataclass

from chat_panel.ai.client import AIClient
from chat_panel.ai.prompts import build_reply_prompt
from chat_panel.core.bot_config import BotConfigManager
from chat_panel.core.types import ReplyKind, Role
from chat_panel.log import get_logger
from chat_panel.memory.conversation_store import DEFAULT_CONTEXT_MESSAGES, ConversationStore
from chat_panel.messenger.models import InboundMessage

logger = get_logger(__name__)

CLEAR_COMMAND = "/clear"
HISTORY_COMMAND = "/history"
HISTORY_DUMP_MESSAGES = 5


@dataclass(frozen=True, slots=True)
class BotReply:
    text: str
    kind: ReplyKind


class BotResponder:
    """Decides whether and what to reply to one inbound message.

    Storing the user's turn and the reply is left to the caller, so a failed
    AI call still leaves the user's message in the conversation history.
    """

    def __init__(
        self,
        bot_config: BotConfigManager,
        conversations: ConversationStore,
        ai_client: AIClient,
        history_messages: int = DEFAULT_CONTEXT_MESSAGES,
    ):
        self._bot_config = bot_config
        self._conversations = conversations
        self._ai_client = ai_client
        self._history_messages = history_messages

    @property
    def enabled(self) -> bool:
        return self._bot_config.config.enabled

    @staticmethod
    def match_command(text: str) -> str | None:
        command = text.strip().lower()
        if command in (CLEAR_COMMAND, HISTORY_COMMAND):
            return command
        return None

    def match_pattern(self, text: str) -> str | None:
        """First pattern whose trigger occurs in the text wins (case-insensitive)."""
        lowered = text.lower().strip()
        for pattern in self._bot_config.config.patterns:
            if pattern.trigger.lower() in lowered:
                return pattern.response
        return None

    def run_command(self, command: str, chat_id: str) -> BotReply:
        if command == CLEAR_COMMAND:
            self._conversations.clear(chat_id)
            return BotReply("🗑️ Conversation history cleared! Let's start fresh.", ReplyKind.COMMAND)

        history = self._conversations.history(chat_id, HISTORY_DUMP_MESSAGES)
        if not history:
            return BotReply("No conversation history yet.", ReplyKind.COMMAND)
        formatted = "\n\n".join(
            f"{'👤' if m['role'] == Role.USER else '🤖'} {m['content']}" for m in history
        )
        return BotReply(f"📜 Recent messages:\n\n{formatted}", ReplyKind.COMMAND)

    def command_reply(self, message: InboundMessage) -> BotReply | None:
        """Handle /clear and /history; None when the bot is off or it is not a command."""
        if not self.enabled:
            return None
        command = self.match_command(message.text)
        if command is None:
            return None
        return self.run_command(command, message.chat_id)

    async def generate(self, message: InboundMessage) -> BotReply | None:
        config = self._bot_config.config
        if not config.enabled:
            return None

        reply = self.command_reply(message)
        if reply is not None:
            return reply

        text = message.effective_text
        response = self.match_pattern(text)
        if response is not None:
            logger.info("pattern_matched", chat_id=message.chat_id)
            return BotReply(response, ReplyKind.PATTERN)

        if not (config.use_ai and self._ai_client.available):
            return None

        history = self._conversations.format_for_prompt(message.chat_id, self._history_messages)
        prompt = build_reply_prompt(text, history, config.system_instruction, message.media)
        try:
            generated = await self._ai_client.generate_text(prompt, message.media)
        except Exception as e:
            logger.error("ai_reply_failed", chat_id=message.chat_id, error=str(e))
            return None

        generated = generated.strip()
        if not generated:
            return None
        return BotReply(generated, ReplyKind.AI)
