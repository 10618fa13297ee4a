import asyncio
import json

import httpx

from app.services.alert_service import Alerter, format_alert


def make_alerter(handler, token="test-token", chat="test-chat"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Alerter(token, chat, client=http)


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        alerter = make_alerter(lambda request: httpx.Response(200), token=None, chat=None)
        assert asyncio.run(alerter.error("Test message")) is False

    def test_sends_alert_to_telegram(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        assert asyncio.run(make_alerter(handler).error("Test error message")) is True
        assert "api.telegram.org" in seen["url"]
        assert seen["json"]["chat_id"] == "test-chat"
        assert "ERROR" in seen["json"]["text"]

    def test_transport_failure_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert asyncio.run(make_alerter(handler).critical("oversold")) is False


def test_format_includes_context():
    text = format_alert("WARNING", "Payment mismatch", {"order": "ORD-1"})
    assert "WARNING" in text
    assert "order: ORD-1" in text
