from __future__ import annotations

from typing import Optional

import requests

from ..models import BriefingContent, SendResult
from .base import EmailGateway


class ResendGateway(EmailGateway):
    name = "resend"

    def __init__(
        self,
        api_key: str,
        sender: str,
        timeout_sec: float,
        api_base: str = "https://api.resend.com",
        session: Optional[requests.Session] = None,
    ):
        key = (api_key or "").strip()
        if not key:
            raise ValueError("RESEND_API_KEY is required for Resend gateway")
        if not (sender or "").strip():
            raise ValueError("BRIEFING_FROM is required for Resend gateway")
        base = api_base.strip() if api_base else "https://api.resend.com"
        if not base:
            base = "https://api.resend.com"

        self.api_key = key
        self.sender = sender.strip()
        self.timeout_sec = timeout_sec
        self.api_base = base.rstrip("/")
        self.session = session or requests.Session()

    def send(self, to: str, content: BriefingContent) -> SendResult:
        payload = {
            "from": self.sender,
            "to": to,
            "subject": content.subject,
            "html": content.html,
            "text": content.text,
        }
        try:
            response = self.session.post(
                f"{self.api_base}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            return SendResult(success=False, error_message=f"HTTP request failed: {exc}")

        return self._parse_response(response)

    def _parse_response(self, response: requests.Response) -> SendResult:
        body: dict
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        excerpt = (response.text or "")[:400]
        message_id = body.get("id")
        if message_id:
            return SendResult(success=True, message_id=str(message_id), response_excerpt=excerpt)

        # Resend reports failures as {"statusCode", "name", "message"}.
        error = body.get("message") or body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        if not error:
            error = f"HTTP {response.status_code}" if response.status_code >= 400 else "Unknown error"
        return SendResult(success=False, error_message=str(error), response_excerpt=excerpt)
