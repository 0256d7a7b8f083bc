from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

ACTIVE_STATUS = "active"
SUBSCRIBER_STATUSES = frozenset({"active", "unsubscribed", "bounced", "pending"})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class Subscriber:
    email: str
    status: str
    source: str = ""
    created_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    @property
    def has_known_status(self) -> bool:
        return self.status in SUBSCRIBER_STATUSES

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Subscriber":
        created_at = payload.get("createdAt") or payload.get("created_at")
        return cls(
            email=str(payload.get("email") or "").strip(),
            status=str(payload.get("status") or "").strip().lower(),
            source=str(payload.get("source") or ""),
            created_at=str(created_at) if created_at else None,
        )


@dataclass(frozen=True)
class BriefingContent:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    response_excerpt: Optional[str] = None


@dataclass(frozen=True)
class DeliveryError:
    email: str
    error: str


@dataclass
class DeliveryResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[DeliveryError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def record_failure(self, email: str, error: str) -> None:
        self.failed += 1
        self.errors.append(DeliveryError(email=email, error=error))


@dataclass(frozen=True)
class InboundNotification:
    id: str
    sender: str
    subject: str
    raw: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "InboundNotification":
        raw = payload.get("raw")
        return cls(
            id=str(payload.get("id") or ""),
            sender=str(payload.get("from") or ""),
            subject=str(payload.get("subject") or ""),
            raw=str(raw) if raw is not None else None,
        )


@dataclass(frozen=True)
class CreateResult:
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class SignupStats:
    found: int = 0
    added: int = 0
    already_subscribed: int = 0
    already_processed: int = 0
    unextractable: int = 0
    failed: int = 0


@dataclass(frozen=True)
class WaitlistEntry:
    email: str
    timestamp: str
    source: str = "website"
