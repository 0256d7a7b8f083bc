from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from .gateways.base import EmailGateway
from .models import BriefingContent, DeliveryResult, SendResult, Subscriber, normalize_email
from .store import SQLiteStore
from .subscribers import SubscriberStoreClient
from .throttle import NoThrottle, Throttle


class BriefingDelivery:
    """Delivers one briefing to every active subscriber, one gateway call each.

    Sends are sequential in store order. A failed recipient is recorded and the
    loop moves on; only a failure to fetch the audience escapes ``run``.
    """

    def __init__(
        self,
        store_client: SubscriberStoreClient,
        gateway: Optional[EmailGateway],
        throttle: Optional[Throttle] = None,
        ledger: Optional[SQLiteStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store_client = store_client
        self.gateway = gateway
        self.throttle = throttle or NoThrottle()
        self.ledger = ledger
        self.logger = logger or logging.getLogger(__name__)

    def fetch_active_subscribers(self, filter_email: Optional[str] = None) -> list[Subscriber]:
        subscribers = self.store_client.list_subscribers()
        active = [subscriber for subscriber in subscribers if subscriber.is_active]
        if filter_email:
            target = normalize_email(filter_email)
            active = [subscriber for subscriber in active if normalize_email(subscriber.email) == target]
            self.logger.info("filtered to: email=%s count=%s", target, len(active))
        else:
            self.logger.info("active subscribers: count=%s total=%s", len(active), len(subscribers))
        return active

    def deliver(
        self,
        subscribers: Sequence[Subscriber],
        content: BriefingContent,
        dry_run: bool = False,
        run_key: Optional[str] = None,
    ) -> DeliveryResult:
        result = DeliveryResult()
        use_ledger = self.ledger is not None and run_key is not None and not dry_run

        for subscriber in subscribers:
            email = subscriber.email
            if dry_run:
                self.logger.info("[dry run] sending to: email=%s", email)
                result.sent += 1
                continue

            if use_ledger and self.ledger.has_sent(run_key, email):
                self.logger.info("already sent for run, skipping: email=%s run_key=%s", email, run_key)
                result.skipped += 1
                continue

            if self.gateway is None:
                raise RuntimeError("No email gateway configured for live delivery")

            self.throttle.wait()
            try:
                outcome = self.gateway.send(email, content)
            except Exception as exc:
                outcome = SendResult(success=False, error_message=str(exc) or exc.__class__.__name__)

            if use_ledger:
                self.ledger.record_send(run_key, email, outcome)

            if outcome.success:
                self.logger.info("delivery sent: email=%s id=%s", email, outcome.message_id)
                result.sent += 1
            else:
                error = outcome.error_message or "Unknown error"
                self.logger.warning("delivery failed: email=%s error=%s", email, error)
                result.record_failure(email, error)

        return result

    def run(
        self,
        content: BriefingContent,
        filter_email: Optional[str] = None,
        dry_run: bool = False,
        run_key: Optional[str] = None,
    ) -> DeliveryResult:
        subscribers = self.fetch_active_subscribers(filter_email)
        result = self.deliver(subscribers, content, dry_run=dry_run, run_key=run_key)
        self.logger.info(
            "delivery complete: sent=%s failed=%s skipped=%s dry_run=%s",
            result.sent,
            result.failed,
            result.skipped,
            dry_run,
        )
        return result
