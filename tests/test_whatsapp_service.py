from __future__ import annotations

import pytest
import requests

import whatsapp_service
from whatsapp_service import (
    WhatsAppAPIError,
    WhatsAppBusinessClient,
    WhatsAppConfigError,
    format_phone_number,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeGraph:
    """Answers Graph API calls from a queue of canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


PHONE = FakeResponse(payload={"id": "123", "display_phone_number": "+47 400 00 000", "verified_name": "Klasse 3B"})


def _client():
    return WhatsAppBusinessClient(
        access_token="token",
        phone_number_id="123",
        recipient_number="+4740000000",
        business_account_id="waba",
    )


def _sent(message_id):
    return FakeResponse(payload={"messages": [{"id": message_id}]})


def test_format_phone_number():
    assert format_phone_number("+4740000000") == "4740000000"
    assert format_phone_number(None) is None


def test_initialize_requires_credentials():
    with pytest.raises(WhatsAppConfigError, match="WHATSAPP_ACCESS_TOKEN"):
        WhatsAppBusinessClient().initialize()
    with pytest.raises(WhatsAppConfigError, match="WHATSAPP_RECIPIENT_NUMBER"):
        WhatsAppBusinessClient(access_token="t", phone_number_id="1").initialize()


def test_send_duties_template(monkeypatch):
    graph = FakeGraph(PHONE, _sent("wamid.1"))
    monkeypatch.setattr(whatsapp_service.requests, "request", graph)
    client = _client()

    result = client.send_duties_template("📍 Elm St: Ada", "fredag 17. oktober")

    assert result["messageId"] == "wamid.1"
    assert result["template"] == "trafikkvakt_dagens_vakter"
    assert client.get_status()["isReady"] is True
    payload = graph.calls[1]["json"]
    assert graph.calls[1]["url"] == "https://graph.facebook.com/v22.0/123/messages"
    assert payload["to"] == "4740000000"
    assert payload["template"]["language"] == {"code": "nb"}
    params = payload["template"]["components"][0]["parameters"]
    assert [p["text"] for p in params] == ["fredag 17. oktober", "📍 Elm St: Ada"]
    assert graph.calls[1]["headers"]["Authorization"] == "Bearer token"


def test_missing_template_falls_back_to_hello_world(monkeypatch):
    rejected = FakeResponse(404, {"error": {"code": 131026, "message": "Template does not exist"}})
    graph = FakeGraph(PHONE, rejected, _sent("wamid.hello"))
    monkeypatch.setattr(whatsapp_service.requests, "request", graph)

    result = _client().send_duties_template("text", "date")

    assert result["template"] == "hello_world"
    assert graph.calls[2]["json"]["template"] == {"name": "hello_world", "language": {"code": "en_US"}}


def test_other_template_errors_propagate(monkeypatch):
    rejected = FakeResponse(400, {"error": {"code": 132000, "message": "Parameter mismatch"}})
    monkeypatch.setattr(whatsapp_service.requests, "request", FakeGraph(PHONE, rejected))

    with pytest.raises(WhatsAppAPIError) as excinfo:
        _client().send_duties_template("text", "date")

    assert excinfo.value.code == 132000
    assert excinfo.value.status_code == 400


def test_network_failure_marks_client_as_error(monkeypatch):
    monkeypatch.setattr(
        whatsapp_service.requests,
        "request",
        FakeGraph(requests.ConnectionError("connection refused")),
    )
    client = _client()

    with pytest.raises(WhatsAppAPIError, match="connection failed"):
        client.send_message("hei")

    assert client.get_status()["status"] == "error"


def test_message_templates(monkeypatch):
    graph = FakeGraph(FakeResponse(payload={"data": [{"name": "hello_world", "status": "APPROVED"}]}))
    monkeypatch.setattr(whatsapp_service.requests, "request", graph)

    templates = _client().get_message_templates()

    assert templates == [{"name": "hello_world", "status": "APPROVED"}]
    assert graph.calls[0]["url"].endswith("/waba/message_templates")
    with pytest.raises(WhatsAppConfigError, match="WHATSAPP_BUSINESS_ACCOUNT_ID"):
        WhatsAppBusinessClient(access_token="t", phone_number_id="1").get_message_templates()
