import json

import httpx
import pytest

from streambot.services.alert_service import alert_warning, format_alert
from streambot.services.whatsapp_service import WhatsAppGateway, is_transient_error, typing_duration_ms

from .conftest import FakeGateway


def _gateway(handler, sleeps=None):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return WhatsAppGateway(
        "http://gateway.test/",
        "secret-token",
        "streambot",
        sleep_func=fake_sleep,
        transport=httpx.MockTransport(handler),
    )


class TestTypingDuration:
    def test_clamped_to_minimum(self):
        assert typing_duration_ms("oi") == 500

    def test_proportional(self):
        assert typing_duration_ms("a" * 20) == 1000

    def test_clamped_to_maximum(self):
        assert typing_duration_ms("a" * 500) == 3000


class TestTransientErrors:
    def test_connection_drop(self):
        assert is_transient_error(httpx.ConnectError("Connection refused")) is True

    def test_stream_error(self):
        assert is_transient_error(RuntimeError("Stream Errored (restart required)")) is True

    def test_other_errors(self):
        assert is_transient_error(ValueError("bad payload")) is False


class TestSendText:
    @pytest.mark.asyncio
    async def test_posts_payload(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        sent = await _gateway(handler).send_text("5511988887777", "Olá!")

        assert sent is True
        assert str(requests[0].url) == "http://gateway.test/send-text"
        assert requests[0].headers["Authorization"] == "Bearer secret-token"
        assert json.loads(requests[0].content) == {
            "instance": "streambot",
            "jid": "5511988887777@s.whatsapp.net",
            "text": "Olá!",
        }

    @pytest.mark.asyncio
    async def test_rejected_by_gateway(self):
        sent = await _gateway(lambda request: httpx.Response(500, text="down")).send_text("5511988887777", "Olá!")
        assert sent is False

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        assert await _gateway(handler).send_text("5511988887777", "Olá!") is False

    @pytest.mark.asyncio
    async def test_missing_text(self):
        assert await _gateway(lambda request: httpx.Response(200)).send_text("5511988887777", "") is False


class TestSimulateTyping:
    @pytest.mark.asyncio
    async def test_composing_then_paused(self):
        presences = []
        sleeps = []

        def handler(request):
            presences.append(json.loads(request.content)["presence"])
            return httpx.Response(200)

        await _gateway(handler, sleeps).simulate_typing("5511988887777", "a" * 20)

        assert presences == ["composing", "paused"]
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        await _gateway(handler).simulate_typing("5511988887777", "oi")


class TestAlerts:
    def test_format_alert_with_context(self):
        text = format_alert("WARNING", "Falha no envio", {"phone": "5511988887777"})
        assert text.startswith("⚠️ *WARNING*")
        assert "phone: 5511988887777" in text

    @pytest.mark.asyncio
    async def test_alert_sent_to_owner(self):
        gateway = FakeGateway()
        assert await alert_warning(gateway, "Cliente pediu humano", owner_phone="5513996069536") is True
        assert gateway.sent[0][0] == "5513996069536"

    @pytest.mark.asyncio
    async def test_alert_without_owner(self):
        gateway = FakeGateway()
        assert await alert_warning(gateway, "Cliente pediu humano", owner_phone="") is False
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_alert_send_failure(self):
        gateway = FakeGateway()
        gateway.fail = True
        assert await alert_warning(gateway, "x", owner_phone="5513996069536") is False
