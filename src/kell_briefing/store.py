from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional

from .models import SendResult, normalize_email, utc_now_iso


SCHEMA = """
CREATE TABLE IF NOT EXISTS signup_notifications (
    notification_id TEXT PRIMARY KEY,
    email TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    extract_attempts INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_attempt_at TEXT,
    processed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_signup_notifications_status ON signup_notifications(status);

CREATE TABLE IF NOT EXISTS sent_briefings (
    run_key TEXT NOT NULL,
    email TEXT NOT NULL,
    message_id TEXT,
    sent_at TEXT NOT NULL,
    PRIMARY KEY (run_key, email)
);

CREATE TABLE IF NOT EXISTS send_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_key TEXT NOT NULL,
    email TEXT NOT NULL,
    success INTEGER NOT NULL,
    message_id TEXT,
    error_message TEXT,
    response_excerpt TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_send_attempts_run_key ON send_attempts(run_key);
"""

PENDING_STATUS = "pending"
PROCESSED_STATUSES = frozenset({"added", "already_subscribed", "unextractable"})


class SQLiteStore:
    """Local run state: the processed signup-notification set and the briefing send ledger.

    Processed notifications are append-only: once a notification id reaches one of
    ``PROCESSED_STATUSES`` no later call moves it back to pending.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    def is_processed(self, notification_id: str) -> bool:
        return self.get_notification_status(notification_id) in PROCESSED_STATUSES

    def get_notification_status(self, notification_id: str) -> Optional[str]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT status FROM signup_notifications WHERE notification_id = ?",
                (notification_id,),
            ).fetchone()
            if not row:
                return None
            return str(row["status"])

    def mark_processed(self, notification_id: str, email: Optional[str], outcome: str) -> None:
        if outcome not in PROCESSED_STATUSES:
            raise ValueError(f"Unsupported notification outcome '{outcome}'")

        now = utc_now_iso()
        with closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO signup_notifications (
                    notification_id, email, status, created_at, last_attempt_at, processed_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(notification_id) DO UPDATE SET
                    email = COALESCE(excluded.email, signup_notifications.email),
                    status = CASE
                        WHEN signup_notifications.status = 'pending' THEN excluded.status
                        ELSE signup_notifications.status
                    END,
                    last_attempt_at = excluded.last_attempt_at,
                    processed_at = COALESCE(signup_notifications.processed_at, excluded.processed_at)
                """,
                (notification_id, email, outcome, now, now, now),
            )
            conn.commit()

    def record_extract_failure(self, notification_id: str) -> int:
        now = utc_now_iso()
        with closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO signup_notifications (
                    notification_id, status, extract_attempts, created_at, last_attempt_at
                ) VALUES (?, 'pending', 1, ?, ?)
                ON CONFLICT(notification_id) DO UPDATE SET
                    extract_attempts = signup_notifications.extract_attempts + 1,
                    last_attempt_at = excluded.last_attempt_at
                """,
                (notification_id, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT extract_attempts FROM signup_notifications WHERE notification_id = ?",
                (notification_id,),
            ).fetchone()
            return int(row["extract_attempts"])

    def processed_ids(self) -> set[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT notification_id FROM signup_notifications WHERE status != ?",
                (PENDING_STATUS,),
            ).fetchall()
            return {str(row["notification_id"]) for row in rows}

    def list_notifications(self, limit: int = 100) -> list[dict[str, object]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT notification_id, email, status, extract_attempts, created_at, processed_at
                FROM signup_notifications
                ORDER BY COALESCE(processed_at, last_attempt_at, created_at) DESC
                LIMIT ?
                """,
                (max(1, int(limit)),),
            ).fetchall()
        return [
            {
                "notification_id": str(row["notification_id"]),
                "email": row["email"],
                "status": str(row["status"]),
                "extract_attempts": int(row["extract_attempts"]),
                "created_at": str(row["created_at"]),
                "processed_at": row["processed_at"],
            }
            for row in rows
        ]

    def has_sent(self, run_key: str, email: str) -> bool:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT 1 FROM sent_briefings WHERE run_key = ? AND email = ?",
                (run_key, normalize_email(email)),
            ).fetchone()
            return row is not None

    def record_send(self, run_key: str, email: str, result: SendResult) -> None:
        now = utc_now_iso()
        normalized = normalize_email(email)
        with closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO send_attempts (
                    run_key, email, success, message_id,
                    error_message, response_excerpt, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_key,
                    normalized,
                    1 if result.success else 0,
                    result.message_id,
                    (result.error_message or "")[:1000] or None,
                    (result.response_excerpt or "")[:1000] or None,
                    now,
                ),
            )
            if result.success:
                conn.execute(
                    """
                    INSERT INTO sent_briefings (run_key, email, message_id, sent_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(run_key, email) DO NOTHING
                    """,
                    (run_key, normalized, result.message_id, now),
                )
            conn.commit()

    def sent_count(self, run_key: str) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM sent_briefings WHERE run_key = ?",
                (run_key,),
            ).fetchone()
            return int(row["total"])
