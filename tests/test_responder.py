"""Tests for the auto-reply decision logic."""

import pytest

from chat_panel.ai.responder import BotResponder
from chat_panel.core.types import ReplyKind
from chat_panel.messenger.models import MediaPayload

from conftest import FakeAI, make_inbound


def _responder(bot_config, conversations, ai=None, enabled=True, use_ai=False):
    bot_config.update(enabled=enabled, use_ai=use_ai)
    return BotResponder(bot_config, conversations, ai or FakeAI())


class TestPatterns:
    @pytest.mark.asyncio
    async def test_pattern_match_is_case_insensitive_substring(self, bot_config, conversations):
        responder = _responder(bot_config, conversations)
        reply = await responder.generate(make_inbound("Hi there"))
        assert reply.text == "Hello! 👋"
        assert reply.kind == ReplyKind.PATTERN

    @pytest.mark.asyncio
    async def test_first_matching_pattern_wins(self, bot_config, conversations):
        responder = _responder(bot_config, conversations)
        reply = await responder.generate(make_inbound("hello, can you help?"))
        assert reply.text == "Hi there! How can I help you?"

    @pytest.mark.asyncio
    async def test_no_match_without_ai_is_silent(self, bot_config, conversations):
        responder = _responder(bot_config, conversations)
        assert await responder.generate(make_inbound("xyz")) is None

    @pytest.mark.asyncio
    async def test_disabled_bot_never_replies(self, bot_config, conversations):
        ai = FakeAI()
        responder = _responder(bot_config, conversations, ai, enabled=False, use_ai=True)
        assert await responder.generate(make_inbound("hello")) is None
        assert await responder.generate(make_inbound("/history")) is None
        assert ai.prompts == []

    @pytest.mark.asyncio
    async def test_added_pattern_is_used(self, bot_config, conversations):
        responder = _responder(bot_config, conversations)
        bot_config.add_pattern("price", "Our prices start at $10.")
        reply = await responder.generate(make_inbound("What's the PRICE?"))
        assert reply.text == "Our prices start at $10."


class TestCommands:
    @pytest.mark.asyncio
    async def test_clear_wipes_session(self, bot_config, conversations):
        conversations.append("972501234567@c.us", "user", "old")
        responder = _responder(bot_config, conversations)

        reply = await responder.generate(make_inbound("  /CLEAR "))

        assert reply.kind == ReplyKind.COMMAND
        assert "cleared" in reply.text
        assert conversations.history("972501234567@c.us") == []

    @pytest.mark.asyncio
    async def test_history_with_no_messages(self, bot_config, conversations):
        responder = _responder(bot_config, conversations)
        reply = await responder.generate(make_inbound("/history"))
        assert reply.text == "No conversation history yet."

    @pytest.mark.asyncio
    async def test_history_shows_last_five(self, bot_config, conversations):
        for i in range(7):
            role = "user" if i % 2 == 0 else "assistant"
            conversations.append("972501234567@c.us", role, f"turn {i}")
        responder = _responder(bot_config, conversations)

        reply = await responder.generate(make_inbound("/history"))

        assert reply.text.startswith("📜 Recent messages:\n\n")
        assert "turn 1" not in reply.text
        assert "👤 turn 2" in reply.text
        assert "🤖 turn 3" in reply.text
        assert reply.text.endswith("👤 turn 6")


class TestAIFallback:
    @pytest.mark.asyncio
    async def test_prompt_contains_history(self, bot_config, conversations):
        chat = "972501234567@c.us"
        conversations.append(chat, "user", "My name is Dana")
        conversations.append(chat, "assistant", "Nice to meet you, Dana.")
        ai = FakeAI(reply="  Sure thing.  ")
        responder = _responder(bot_config, conversations, ai, use_ai=True)

        reply = await responder.generate(make_inbound("tell me a joke", chat_id=chat))

        assert reply.text == "Sure thing."
        assert reply.kind == ReplyKind.AI
        prompt = ai.prompts[0]
        assert "Previous conversation:\nUser: My name is Dana\nAssistant: Nice to meet you, Dana." in prompt
        assert "Current message from user: tell me a joke" in prompt

    @pytest.mark.asyncio
    async def test_prompt_without_history(self, bot_config, conversations):
        ai = FakeAI()
        bot_config.update(system_instruction="Be brief.")
        responder = _responder(bot_config, conversations, ai, use_ai=True)

        await responder.generate(make_inbound("tell me a joke"))

        assert ai.prompts[0].startswith("Be brief.\n\nUser message: tell me a joke")

    @pytest.mark.asyncio
    async def test_ai_failure_yields_no_reply(self, bot_config, conversations):
        ai = FakeAI(error=RuntimeError("quota exceeded"))
        responder = _responder(bot_config, conversations, ai, use_ai=True)
        assert await responder.generate(make_inbound("tell me a joke")) is None

    @pytest.mark.asyncio
    async def test_empty_ai_output_yields_no_reply(self, bot_config, conversations):
        responder = _responder(bot_config, conversations, FakeAI(reply="   "), use_ai=True)
        assert await responder.generate(make_inbound("tell me a joke")) is None

    @pytest.mark.asyncio
    async def test_unavailable_ai_is_skipped(self, bot_config, conversations):
        ai = FakeAI(available=False)
        responder = _responder(bot_config, conversations, ai, use_ai=True)
        assert await responder.generate(make_inbound("tell me a joke")) is None
        assert ai.prompts == []

    @pytest.mark.asyncio
    async def test_media_only_message_uses_placeholder(self, bot_config, conversations):
        ai = FakeAI()
        responder = _responder(bot_config, conversations, ai, use_ai=True)
        photo = MediaPayload(data=b"\x89PNG", mime_type="image/png", filename="photo.png")

        await responder.generate(make_inbound("", media=photo))

        assert "User message: [Image]" in ai.prompts[0]
        assert "sent an image" in ai.prompts[0]
        assert ai.media[0] is photo
