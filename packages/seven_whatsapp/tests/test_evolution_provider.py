"""
Tests for the Evolution API provider.
"""

import asyncio
import json

import httpx
import pytest

from seven_whatsapp.providers.base import ProviderError
from seven_whatsapp.providers.evolution import EvolutionWhatsAppProvider


class Recorder:
    """MockTransport handler that records requests and returns a canned response."""

    def __init__(self, status_code=200, body=None):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.body = body if body is not None else {"key": {"id": "3EB0C3"}}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


def make_provider(handler) -> EvolutionWhatsAppProvider:
    return EvolutionWhatsAppProvider(
        api_url="https://evolution.test/",
        api_key="evo-key",
        instance_name="boutique-awa",
        transport=httpx.MockTransport(handler),
    )


def run(provider, coro):
    """Run a provider coroutine and close the client on the same loop."""

    async def _run():
        try:
            return await coro
        finally:
            await provider.close()

    return asyncio.run(_run())


class TestSendText:
    def test_success(self):
        recorder = Recorder()
        provider = make_provider(recorder)

        response = run(provider, provider.send_text("2250758519080@s.whatsapp.net", "Bonjour"))

        assert response.success is True
        assert response.message_id == "3EB0C3"

        request = recorder.requests[0]
        assert request.url == "https://evolution.test/message/sendText/boutique-awa"
        assert request.headers["apikey"] == "evo-key"
        assert json.loads(request.content) == {"number": "2250758519080", "text": "Bonjour"}

    def test_reply_quotes_message(self):
        recorder = Recorder()
        provider = make_provider(recorder)

        run(provider, provider.send_text("2250758519080", "Oui", reply_to="3EB0A1"))

        body = json.loads(recorder.requests[0].content)
        assert body["quoted"] == {"key": {"id": "3EB0A1"}}

    def test_http_error_returns_failed_response(self):
        provider = make_provider(Recorder(status_code=400, body={"message": "Number not on WhatsApp"}))

        response = run(provider, provider.send_text("2250000000000", "Bonjour"))

        assert response.success is False
        assert response.error_code == "400"
        assert "Number not on WhatsApp" in response.error_message

    def test_network_error_returns_failed_response(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        response = run(provider, provider.send_text("2250758519080", "Bonjour"))

        assert response.success is False
        assert response.error_code == "HTTP_ERROR"


class TestOtherCalls:
    def test_mark_as_read(self):
        recorder = Recorder(body={"read": "success"})
        provider = make_provider(recorder)

        ok = run(provider, provider.mark_as_read("2250758519080@s.whatsapp.net", "3EB0A1"))

        assert ok is True
        body = json.loads(recorder.requests[0].content)
        assert body["readMessages"][0]["id"] == "3EB0A1"

    def test_mark_as_read_failure_is_not_raised(self):
        provider = make_provider(Recorder(status_code=500, body={"error": "boom"}))

        ok = run(provider, provider.mark_as_read("2250758519080@s.whatsapp.net", "3EB0A1"))

        assert ok is False

    def test_connection_state(self):
        recorder = Recorder(body={"instance": {"instanceName": "boutique-awa", "state": "open"}})
        provider = make_provider(recorder)

        state = run(provider, provider.get_connection_state())

        assert state == "open"
        assert recorder.requests[0].method == "GET"
        assert recorder.requests[0].url.path == "/instance/connectionState/boutique-awa"

    def test_server_error_is_retryable(self):
        provider = make_provider(Recorder(status_code=503, body={"error": "unavailable"}))

        with pytest.raises(ProviderError) as exc_info:
            run(provider, provider.get_connection_state())

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "503"


class TestPresence:
    def test_composing_with_delay(self):
        recorder = Recorder(body={"presence": "composing"})
        provider = make_provider(recorder)

        ok = run(provider, provider.send_presence("2250758519080@s.whatsapp.net", "composing", delay_ms=3000))

        assert ok is True
        request = recorder.requests[0]
        assert request.url.path == "/chat/sendPresence/boutique-awa"
        assert json.loads(request.content) == {"number": "2250758519080", "presence": "composing", "delay": 3000}

    def test_failure_is_not_raised(self):
        provider = make_provider(Recorder(status_code=404, body={"response": {"message": ["instance not found"]}}))

        ok = run(provider, provider.send_presence("2250758519080", "composing"))

        assert ok is False

    def test_nested_validation_message(self):
        provider = make_provider(Recorder(status_code=400, body={"response": {"message": ["exists: false"]}}))

        response = run(provider, provider.send_text("2250000000000", "Bonjour"))

        assert response.error_message == "exists: false"
