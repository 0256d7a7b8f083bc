from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .extract import extract_email
from .models import InboundNotification, SignupStats, normalize_email
from .store import SQLiteStore
from .subscribers import SubscriberStoreClient, SubscriberStoreError


class SignupIngestion:
    """Turns forwarded signup-form notifications into subscriber records.

    A notification id is processed at most once across runs (tracked in the
    local store) and each submitter is created at most once per run.
    """

    def __init__(
        self,
        store_client: SubscriberStoreClient,
        processed_store: SQLiteStore,
        inbox_address: str = "hi@kell.cx",
        sender_marker: str = "formsubmit",
        subject_keyword: str = "signup",
        source: str = "kell.cx form",
        max_extract_attempts: int = 5,
        logger: Optional[logging.Logger] = None,
    ):
        self.store_client = store_client
        self.processed_store = processed_store
        self.inbox_address = inbox_address
        self.sender_marker = sender_marker.lower()
        self.subject_keyword = subject_keyword.lower()
        self.source = source
        self.max_extract_attempts = max_extract_attempts
        self.logger = logger or logging.getLogger(__name__)

    def list_signup_notifications(self) -> list[InboundNotification]:
        notifications: list[InboundNotification] = []
        for item in self.store_client.list_inbox(self.inbox_address):
            if self.sender_marker not in item.sender.lower() or self.subject_keyword not in item.subject.lower():
                continue
            if not item.id:
                self.logger.warning("signup notification without id, skipping: subject=%s", item.subject)
                continue
            notifications.append(item)
        return notifications

    def process_signups(self) -> SignupStats:
        notifications = self.list_signup_notifications()
        stats = SignupStats(found=len(notifications))
        if not notifications:
            self.logger.info("no signup notifications found: inbox=%s", self.inbox_address)
            return stats

        self.logger.info("signup notifications found: count=%s", len(notifications))
        existing = {normalize_email(subscriber.email) for subscriber in self.store_client.list_subscribers()}

        for notification in notifications:
            stats = self._process_one(notification, existing, stats)

        self._log_totals()
        self.logger.info(
            "signups complete: found=%s added=%s already_subscribed=%s already_processed=%s "
            "unextractable=%s failed=%s",
            stats.found,
            stats.added,
            stats.already_subscribed,
            stats.already_processed,
            stats.unextractable,
            stats.failed,
        )
        return stats

    def _process_one(
        self,
        notification: InboundNotification,
        existing: set[str],
        stats: SignupStats,
    ) -> SignupStats:
        if self.processed_store.is_processed(notification.id):
            self.logger.debug("skipping already processed: id=%s", notification.id)
            return replace(stats, already_processed=stats.already_processed + 1)

        self.logger.info("processing signup: id=%s subject=%s", notification.id, notification.subject)
        raw = notification.raw
        if raw is None:
            try:
                raw = self.store_client.get_email(notification.id).raw
            except SubscriberStoreError as exc:
                self.logger.warning("fetch notification failed: id=%s error=%s", notification.id, exc)
                return replace(stats, failed=stats.failed + 1)
            if raw is None:
                self.logger.warning("notification has no raw body: id=%s", notification.id)
                return replace(stats, failed=stats.failed + 1)

        email = extract_email(raw)
        if email is None:
            attempts = self.processed_store.record_extract_failure(notification.id)
            if attempts >= self.max_extract_attempts:
                self.processed_store.mark_processed(notification.id, None, "unextractable")
                self.logger.warning(
                    "could not extract email, giving up: id=%s attempts=%s",
                    notification.id,
                    attempts,
                )
            else:
                self.logger.warning(
                    "could not extract email: id=%s attempts=%s",
                    notification.id,
                    attempts,
                )
            return replace(stats, unextractable=stats.unextractable + 1)

        if email in existing:
            self.logger.info("already subscribed, skipping: email=%s", email)
            self.processed_store.mark_processed(notification.id, email, "already_subscribed")
            return replace(stats, already_subscribed=stats.already_subscribed + 1)

        try:
            result = self.store_client.create_subscriber(email, self.source)
        except SubscriberStoreError as exc:
            self.logger.warning("add subscriber failed: email=%s error=%s", email, exc)
            return replace(stats, failed=stats.failed + 1)

        if not result.success:
            self.logger.warning("add subscriber failed: email=%s error=%s", email, result.error)
            return replace(stats, failed=stats.failed + 1)

        self.processed_store.mark_processed(notification.id, email, "added")
        existing.add(email)
        self.logger.info("added subscriber: email=%s", email)
        return replace(stats, added=stats.added + 1)

    def _log_totals(self) -> None:
        try:
            totals = self.store_client.stats()
        except SubscriberStoreError as exc:
            self.logger.warning("subscriber stats unavailable: error=%s", exc)
            return
        counts = totals.get("subscribers")
        active = counts.get("active") if isinstance(counts, dict) else None
        self.logger.info("total subscribers: active=%s", active if active is not None else "unknown")
