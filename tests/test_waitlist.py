import json
import threading
from pathlib import Path

import pytest

from kell_briefing.waitlist import Waitlist, WaitlistUnreadableError


def test_add_writes_normalized_entry(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"

    assert Waitlist(path).add("  Reader@Example.com ") is True

    rows = json.loads(path.read_text(encoding="utf-8"))
    assert len(rows) == 1
    assert rows[0]["email"] == "reader@example.com"
    assert rows[0]["source"] == "website"
    assert rows[0]["timestamp"]


def test_add_deduplicates_case_insensitively(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"
    waitlist = Waitlist(path)
    waitlist.add("reader@example.com")
    before = path.read_text(encoding="utf-8")

    assert waitlist.add("READER@example.com") is False
    assert path.read_text(encoding="utf-8") == before


def test_add_appends_in_order(tmp_path: Path) -> None:
    waitlist = Waitlist(tmp_path / "waitlist.json")
    waitlist.add("a@example.com")
    waitlist.add("b@example.com", source="webhook")

    entries = waitlist.entries()

    assert [entry.email for entry in entries] == ["a@example.com", "b@example.com"]
    assert entries[1].source == "webhook"


def test_add_rejects_value_without_at_sign(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"

    with pytest.raises(ValueError):
        Waitlist(path).add("not-an-email")
    assert not path.exists()


def test_corrupt_file_is_never_overwritten(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"
    path.write_text("{not json", encoding="utf-8")
    waitlist = Waitlist(path)

    assert waitlist.entries() == []
    with pytest.raises(WaitlistUnreadableError):
        waitlist.add("a@example.com")
    assert path.read_text(encoding="utf-8") == "{not json"


def test_non_array_file_is_never_overwritten(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"
    path.write_text('{"email": "a@example.com"}', encoding="utf-8")

    with pytest.raises(WaitlistUnreadableError):
        Waitlist(path).add("b@example.com")
    assert json.loads(path.read_text(encoding="utf-8")) == {"email": "a@example.com"}


def test_concurrent_adds_keep_every_entry(tmp_path: Path) -> None:
    path = tmp_path / "waitlist.json"
    waitlist = Waitlist(path)
    emails = [f"reader{index}@example.com" for index in range(20)]
    threads = [threading.Thread(target=waitlist.add, args=(email,)) for email in emails]

    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    rows = json.loads(path.read_text(encoding="utf-8"))
    assert sorted(row["email"] for row in rows) == sorted(emails)
    assert list(tmp_path.glob("*.tmp")) == []
