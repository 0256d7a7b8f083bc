from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from .models import CreateResult, InboundNotification, Subscriber

AUTH_HEADER = "X-Auth-Token"


class SubscriberStoreError(RuntimeError):
    pass


class SubscriberStoreClient:
    """HTTP client for the remote subscriber store and its notification inbox."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_sec: float,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        base = (base_url or "").strip()
        if not base:
            raise ValueError("SUBSCRIBER_API_URL is required for subscriber store client")
        if not (token or "").strip():
            raise ValueError("SUBSCRIBER_API_TOKEN is required for subscriber store client")

        self.base_url = base.rstrip("/")
        self.token = token.strip()
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def list_subscribers(self) -> list[Subscriber]:
        # Unpaginated: the whole audience is expected to fit in one response.
        body = self._request("GET", "/subscribers")
        if not isinstance(body, list):
            raise SubscriberStoreError(f"Subscriber list response is not a list: {str(body)[:200]}")
        subscribers = [Subscriber.from_payload(item) for item in body if isinstance(item, dict)]
        for subscriber in subscribers:
            if not subscriber.has_known_status:
                self.logger.warning(
                    "unknown subscriber status, treating as inactive: email=%s status=%r",
                    subscriber.email,
                    subscriber.status,
                )
        return subscribers

    def create_subscriber(self, email: str, source: str) -> CreateResult:
        body = self._request(
            "POST",
            "/subscribers",
            json={"email": email, "source": source},
            allow_error_status=True,
        )
        if isinstance(body, dict) and body.get("success"):
            return CreateResult(success=True)
        error = body.get("error") if isinstance(body, dict) else None
        return CreateResult(success=False, error=str(error or "unknown error"))

    def stats(self) -> dict[str, Any]:
        body = self._request("GET", "/stats")
        if not isinstance(body, dict):
            raise SubscriberStoreError(f"Stats response is not an object: {str(body)[:200]}")
        return body

    def list_inbox(self, address: str) -> list[InboundNotification]:
        body = self._request("GET", f"/inbox?to={quote(address, safe='')}")
        if not isinstance(body, list):
            raise SubscriberStoreError(f"Inbox response is not a list: {str(body)[:200]}")
        return [InboundNotification.from_payload(item) for item in body if isinstance(item, dict)]

    def get_email(self, notification_id: str) -> InboundNotification:
        body = self._request("GET", f"/email/{quote(notification_id, safe='')}")
        if not isinstance(body, dict):
            raise SubscriberStoreError(f"Email response is not an object: {str(body)[:200]}")
        if not body.get("id"):
            body = {**body, "id": notification_id}
        return InboundNotification.from_payload(body)

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        allow_error_status: bool = False,
    ) -> Any:
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers={AUTH_HEADER: self.token, "Content-Type": "application/json"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise SubscriberStoreError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400 and not allow_error_status:
            raise SubscriberStoreError(
                f"{method} {path} returned HTTP {response.status_code}: {(response.text or '')[:200]}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise SubscriberStoreError(f"{method} {path} returned invalid JSON") from exc
