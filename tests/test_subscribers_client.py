from __future__ import annotations

import pytest
import requests

from kell_briefing.subscribers import SubscriberStoreClient, SubscriberStoreError


class FakeResponse:
    def __init__(self, body, status_code: int = 200, text: str = ""):
        self._body = body
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, responses: dict[tuple[str, str], FakeResponse], error: Exception | None = None):
        self.responses = responses
        self.error = error
        self.calls: list[dict] = []

    def request(self, method: str, url: str, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.responses[(method, url)]


BASE = "https://email-api.kell.cx"


def _client(session: FakeSession) -> SubscriberStoreClient:
    return SubscriberStoreClient(base_url=BASE + "/", token="secret", timeout_sec=5, session=session)


def test_list_subscribers_sends_token_and_parses_records() -> None:
    session = FakeSession(
        {
            ("GET", f"{BASE}/subscribers"): FakeResponse(
                [
                    {"email": "a@example.com", "status": "active", "source": "form", "createdAt": "2026-01-01"},
                    {"email": "b@example.com", "status": "Unsubscribed"},
                ]
            )
        }
    )

    subscribers = _client(session).list_subscribers()

    assert [s.email for s in subscribers] == ["a@example.com", "b@example.com"]
    assert subscribers[0].is_active is True
    assert subscribers[0].created_at == "2026-01-01"
    assert subscribers[1].status == "unsubscribed"
    assert session.calls[0]["headers"]["X-Auth-Token"] == "secret"


def test_list_subscribers_warns_on_unknown_status(caplog) -> None:
    session = FakeSession(
        {
            ("GET", f"{BASE}/subscribers"): FakeResponse(
                [
                    {"email": "a@example.com", "status": "active"},
                    {"email": "b@example.com", "status": "Suspended"},
                ]
            )
        }
    )

    with caplog.at_level("WARNING", logger="kell_briefing.subscribers"):
        subscribers = _client(session).list_subscribers()

    assert [s.status for s in subscribers] == ["active", "suspended"]
    assert subscribers[1].is_active is False
    assert subscribers[1].has_known_status is False
    assert "unknown subscriber status" in caplog.text
    assert "a@example.com" not in caplog.text


def test_list_subscribers_raises_on_http_error() -> None:
    session = FakeSession({("GET", f"{BASE}/subscribers"): FakeResponse({"error": "nope"}, status_code=401)})

    with pytest.raises(SubscriberStoreError):
        _client(session).list_subscribers()


def test_list_subscribers_raises_on_transport_error() -> None:
    session = FakeSession({}, error=requests.Timeout("timed out"))

    with pytest.raises(SubscriberStoreError, match="timed out"):
        _client(session).list_subscribers()


def test_create_subscriber_reports_store_error_body() -> None:
    session = FakeSession(
        {("POST", f"{BASE}/subscribers"): FakeResponse({"success": False, "error": "exists"}, status_code=409)}
    )

    result = _client(session).create_subscriber("a@example.com", "kell.cx form")

    assert result.success is False
    assert result.error == "exists"
    assert session.calls[0]["json"] == {"email": "a@example.com", "source": "kell.cx form"}


def test_inbox_and_email_lookups() -> None:
    session = FakeSession(
        {
            ("GET", f"{BASE}/inbox?to=hi%40kell.cx"): FakeResponse(
                [{"id": "m1", "from": "FormSubmit <noreply@formsubmit.co>", "subject": "New signup"}]
            ),
            ("GET", f"{BASE}/email/m1"): FakeResponse({"raw": "Reply-To: x@example.com"}),
        }
    )
    client = _client(session)

    inbox = client.list_inbox("hi@kell.cx")
    message = client.get_email("m1")

    assert inbox[0].id == "m1"
    assert inbox[0].raw is None
    assert message.id == "m1"
    assert message.raw == "Reply-To: x@example.com"


def test_client_requires_token() -> None:
    with pytest.raises(ValueError):
        SubscriberStoreClient(base_url=BASE, token="", timeout_sec=5)
