from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict
from pathlib import Path
from threading import Lock
from typing import Optional

from .models import WaitlistEntry, normalize_email, utc_now_iso


class WaitlistUnreadableError(RuntimeError):
    pass


class Waitlist:
    """Flat JSON array of ``{email, timestamp, source}`` rows, deduplicated by email.

    The file only grows: ``add`` serializes writers on the instance lock, replaces
    the file atomically and refuses to write over a file it cannot parse.
    """

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = Lock()

    def _read_rows(self) -> list:
        if not self.path.exists():
            return []
        try:
            rows = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise WaitlistUnreadableError(f"waitlist unreadable: {self.path}: {exc}") from exc
        if not isinstance(rows, list):
            raise WaitlistUnreadableError(f"waitlist is not a JSON array: {self.path}")
        return rows

    @staticmethod
    def _to_entries(rows: list) -> list[WaitlistEntry]:
        entries: list[WaitlistEntry] = []
        for row in rows:
            if isinstance(row, dict) and row.get("email"):
                entries.append(
                    WaitlistEntry(
                        email=str(row["email"]),
                        timestamp=str(row.get("timestamp") or ""),
                        source=str(row.get("source") or "website"),
                    )
                )
        return entries

    def entries(self) -> list[WaitlistEntry]:
        try:
            rows = self._read_rows()
        except WaitlistUnreadableError as exc:
            self.logger.warning("%s", exc)
            return []
        return self._to_entries(rows)

    def add(self, email: str, source: str = "website") -> bool:
        normalized = normalize_email(email)
        if "@" not in normalized:
            raise ValueError(f"Invalid email: {email!r}")

        with self._lock:
            rows = self._read_rows()
            if any(isinstance(row, dict) and normalize_email(str(row.get("email") or "")) == normalized for row in rows):
                self.logger.info("already on waitlist: email=%s", normalized)
                return False

            rows.append(asdict(WaitlistEntry(email=normalized, timestamp=utc_now_iso(), source=source)))
            self._write_rows(rows)
            self.logger.info("added to waitlist: email=%s total=%s", normalized, len(rows))
            return True

    def _write_rows(self, rows: list) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(rows, indent=2) + "\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
