"""Tests for ControlPanel request validation and delegation."""

import asyncio

import pytest

from chat_panel.core.errors import BackendUnavailable, ReportTimeout, ValidationError
from chat_panel.core.panel import ControlPanel
from chat_panel.messenger.models import ChatSummary, FetchedMessage, MediaPayload
from chat_panel.reports.assembler import ReportAssembler
from chat_panel.storage.json_store import MemoryStateStore
from chat_panel.storage.models import ArchivedMessage
from chat_panel.webhook.forwarder import WebhookForwarder

from conftest import FIXED_NOW, FakeAI

PHOTO = MediaPayload(data=b"\xff\xd8", mime_type="image/jpeg", filename="p.jpg")


class StalledAssembler:
    async def assemble(self, date=None, use_ai=True):
        await asyncio.sleep(5)


class HangingAI(FakeAI):
    async def generate_text(self, prompt, media=None):
        await asyncio.sleep(5)
        return "never"


def make_panel(messaging, bot_config, conversations, reports, **kwargs):
    webhook = WebhookForwarder(MemoryStateStore())
    return ControlPanel(messaging, bot_config, conversations, webhook, reports, **kwargs)


@pytest.fixture
def panel(messaging, bot_config, conversations):
    return make_panel(messaging, bot_config, conversations, StalledAssembler())


class TestSending:
    @pytest.mark.asyncio
    async def test_send_message(self, panel, messaging):
        result = await panel.send_message(" 972501234567@c.us ", "hi")
        assert result.message_id == "out-1"
        assert messaging.sent == [("972501234567@c.us", "hi")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("number,text", [("", "hi"), ("9725", ""), ("   ", "hi")])
    async def test_send_message_requires_fields(self, panel, number, text):
        with pytest.raises(ValidationError):
            await panel.send_message(number, text)

    @pytest.mark.asyncio
    async def test_send_requires_ready_session(self, panel, messaging):
        messaging.ready = False
        with pytest.raises(BackendUnavailable):
            await panel.send_message("9725", "hi")

    @pytest.mark.asyncio
    async def test_send_media(self, panel, messaging):
        await panel.send_media("9725", PHOTO, "look")
        assert messaging.sent_media == [("9725", PHOTO, "look")]

    @pytest.mark.asyncio
    async def test_send_media_rejects_other_types(self, panel, messaging):
        doc = MediaPayload(data=b"%PDF", mime_type="application/pdf")
        with pytest.raises(ValidationError):
            await panel.send_media("9725", doc)
        with pytest.raises(ValidationError):
            await panel.send_media("9725", None)
        assert messaging.sent_media == []


class TestSessionAndChats:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, panel, messaging):
        messaging.ready = False
        status = await panel.start_session()
        assert status["is_ready"] is True
        await panel.stop_session()
        assert panel.session_status()["is_ready"] is False

    @pytest.mark.asyncio
    async def test_list_chats_and_history(self, panel, messaging):
        chat = ChatSummary(id="1@c.us", name="Dana", unread_count=2, timestamp=0, is_group=False)
        msg = FetchedMessage(id="a", body="yo", timestamp=0, from_me=False, has_media=False)
        messaging.add_chat(chat, [msg])

        assert await panel.list_chats() == [chat]
        assert await panel.chat_history("1@c.us") == [msg]

    @pytest.mark.asyncio
    async def test_list_chats_requires_ready_session(self, panel, messaging):
        messaging.ready = False
        with pytest.raises(BackendUnavailable):
            await panel.list_chats()


class TestConfiguration:
    def test_bot_config_round_trip(self, panel):
        panel.update_bot_config(enabled=True)
        assert panel.get_bot_config().enabled is True
        assert panel.get_bot_config().use_ai is False

    def test_patterns(self, panel):
        panel.add_pattern("bye", "See you!")
        panel.add_pattern("bye", "Later!")
        assert panel.remove_pattern("bye") == 2
        assert panel.remove_pattern("bye") == 0
        with pytest.raises(ValidationError):
            panel.add_pattern("", "nothing")

    def test_webhook_validation(self, panel):
        with pytest.raises(ValidationError):
            panel.update_webhook_config(enabled=True, url="")
        config = panel.update_webhook_config(enabled=True, url="https://x.test")
        assert panel.get_webhook_config() == config

    def test_conversations(self, panel, conversations):
        conversations.append("1@c.us", "user", "hi")
        assert panel.conversation_stats()["total_messages"] == 1
        assert panel.clear_conversation("1@c.us") is True
        with pytest.raises(ValidationError):
            panel.clear_conversation("")


class TestReports:
    @pytest.mark.asyncio
    async def test_daily_report(self, messaging, bot_config, conversations, message_repo):
        reports = ReportAssembler(message_repo, messaging, FakeAI(), clock=lambda: FIXED_NOW)
        panel = make_panel(messaging, bot_config, conversations, reports)
        result = await panel.daily_report("2026-10-18")
        assert result.date == "2026-10-18"

    @pytest.mark.asyncio
    async def test_daily_report_timeout(self, messaging, bot_config, conversations):
        panel = make_panel(messaging, bot_config, conversations, StalledAssembler(), report_timeout=0.05)
        with pytest.raises(ReportTimeout):
            await panel.daily_report()

    @pytest.mark.asyncio
    async def test_hung_ai_summary_falls_back_inside_report_ceiling(
        self, messaging, bot_config, conversations, message_repo
    ):
        yesterday_noon = int(FIXED_NOW.timestamp()) - 24 * 3600
        await message_repo.upsert(
            ArchivedMessage(id="1", timestamp=yesterday_noon, phone="1@c.us", sender_name="Dana", body="hi")
        )
        reports = ReportAssembler(
            message_repo, messaging, HangingAI(), ai_timeout=0.05, clock=lambda: FIXED_NOW
        )
        panel = make_panel(messaging, bot_config, conversations, reports, report_timeout=1.0)

        result = await panel.daily_report("2026-10-18")

        assert result.summary.startswith("AI summary unavailable. 1 messages were exchanged on 2026-10-18.")
