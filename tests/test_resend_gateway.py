from __future__ import annotations

import pytest
import requests

from kell_briefing.gateways.resend import ResendGateway
from kell_briefing.models import BriefingContent


class FakeResponse:
    def __init__(self, body, text: str = "", status_code: int = 200):
        self._body = body
        self.text = text
        self.status_code = status_code

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json: dict, headers: dict, timeout: float):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


CONTENT = BriefingContent(subject="Daily Intel", html="<p>hi</p>", text="hi")


def _gateway(session: FakeSession) -> ResendGateway:
    return ResendGateway(
        api_key="re_test",
        sender="Kell Briefing <briefings@kell.cx>",
        timeout_sec=5,
        session=session,
    )


def test_send_posts_payload_and_returns_message_id() -> None:
    session = FakeSession(FakeResponse(body={"id": "msg_123"}, text='{"id":"msg_123"}'))

    result = _gateway(session).send("reader@example.com", CONTENT)

    assert result.success is True
    assert result.message_id == "msg_123"
    assert session.calls[0]["url"] == "https://api.resend.com/emails"
    assert session.calls[0]["headers"] == {"Authorization": "Bearer re_test"}
    assert session.calls[0]["json"] == {
        "from": "Kell Briefing <briefings@kell.cx>",
        "to": "reader@example.com",
        "subject": "Daily Intel",
        "html": "<p>hi</p>",
        "text": "hi",
    }


def test_send_reports_provider_message_on_error() -> None:
    session = FakeSession(
        FakeResponse(
            body={"statusCode": 422, "name": "validation_error", "message": "invalid recipient"},
            status_code=422,
        )
    )

    result = _gateway(session).send("bad", CONTENT)

    assert result.success is False
    assert result.error_message == "invalid recipient"


def test_send_reports_transport_error() -> None:
    session = FakeSession(error=requests.ConnectionError("connection refused"))

    result = _gateway(session).send("reader@example.com", CONTENT)

    assert result.success is False
    assert "connection refused" in (result.error_message or "")


def test_send_handles_non_json_error_body() -> None:
    session = FakeSession(FakeResponse(body=ValueError("not json"), text="<html>502</html>", status_code=502))

    result = _gateway(session).send("reader@example.com", CONTENT)

    assert result.success is False
    assert result.error_message == "HTTP 502"


def test_gateway_requires_api_key() -> None:
    with pytest.raises(ValueError):
        ResendGateway(api_key="  ", sender="a@b.c", timeout_sec=5)
