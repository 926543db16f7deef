"""Tests for the inbound-message webhook forwarder."""

import json

import httpx
import pytest

from chat_panel.core.errors import ValidationError
from chat_panel.messenger.models import MediaPayload
from chat_panel.storage.json_store import MemoryStateStore
from chat_panel.webhook.forwarder import WebhookForwarder, build_event

from conftest import FIXED_NOW, make_inbound


class Recorder:
    """httpx.MockTransport handler that records requests."""

    def __init__(self, status_code: int = 200, error: Exception | None = None):
        self.status_code = status_code
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": True})


def make_forwarder(recorder, config=None):
    state = MemoryStateStore(config)
    return WebhookForwarder(state, timeout=5, transport=httpx.MockTransport(recorder)), state


class TestBuildEvent:
    def test_text_event(self):
        event = build_event(make_inbound("hey"))
        assert event == {
            "from": "972501234567@c.us",
            "sender": "972501234567@c.us",
            "body": "hey",
            "hasMedia": False,
            "media": None,
            "timestamp": int(FIXED_NOW.timestamp()),
            "senderName": "Dana",
            "isGroup": False,
            "groupName": None,
        }

    def test_media_is_base64(self):
        voice = MediaPayload(data=b"OggS", mime_type="audio/ogg", filename="voice.ogg")
        event = build_event(make_inbound("", media=voice))
        assert event["hasMedia"] is True
        assert event["media"] == {"mimetype": "audio/ogg", "data": "T2dnUw==", "filename": "voice.ogg"}


class TestConfig:
    def test_defaults_to_disabled(self):
        forwarder, _ = make_forwarder(Recorder())
        assert forwarder.config.enabled is False
        assert forwarder.config.url == ""

    def test_enable_without_url_is_rejected(self):
        forwarder, state = make_forwarder(Recorder())
        with pytest.raises(ValidationError):
            forwarder.update_config(enabled=True)
        assert forwarder.config.enabled is False
        assert state.saves == 0

    def test_update_is_merged_and_persisted(self):
        forwarder, state = make_forwarder(Recorder())
        forwarder.update_config(url=" https://hooks.example.com/in ")
        forwarder.update_config(enabled=True)

        assert forwarder.config.url == "https://hooks.example.com/in"
        assert state.load() == {"enabled": True, "url": "https://hooks.example.com/in"}

    def test_loads_persisted_config(self):
        forwarder, _ = make_forwarder(Recorder(), {"enabled": True, "url": "https://x.test/hook"})
        assert forwarder.config.enabled is True


class TestForward:
    @pytest.mark.asyncio
    async def test_disabled_makes_no_request(self):
        recorder = Recorder()
        forwarder, _ = make_forwarder(recorder, {"enabled": False, "url": "https://x.test/hook"})
        await forwarder.forward(make_inbound())
        assert forwarder.forward_in_background(make_inbound()) is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_empty_url_makes_no_request(self):
        recorder = Recorder()
        forwarder, _ = make_forwarder(recorder, {"enabled": True, "url": ""})
        await forwarder.forward(make_inbound())
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_posts_event_json(self):
        recorder = Recorder()
        forwarder, _ = make_forwarder(recorder, {"enabled": True, "url": "https://x.test/hook"})

        await forwarder.forward(make_inbound("ping"))

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://x.test/hook"
        assert json.loads(request.content)["body"] == "ping"

    @pytest.mark.asyncio
    async def test_non_2xx_does_not_raise(self):
        recorder = Recorder(status_code=500)
        forwarder, _ = make_forwarder(recorder, {"enabled": True, "url": "https://x.test/hook"})
        await forwarder.forward(make_inbound())
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_network_error_does_not_raise(self):
        recorder = Recorder(error=httpx.ConnectError("refused"))
        forwarder, _ = make_forwarder(recorder, {"enabled": True, "url": "https://x.test/hook"})
        await forwarder.forward(make_inbound())

    @pytest.mark.asyncio
    async def test_background_delivery_drains(self):
        recorder = Recorder()
        forwarder, _ = make_forwarder(recorder, {"enabled": True, "url": "https://x.test/hook"})

        task = forwarder.forward_in_background(make_inbound())
        assert task is not None
        await forwarder.drain()

        assert task.done()
        assert len(recorder.requests) == 1
