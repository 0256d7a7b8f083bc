from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from pathlib import Path

from bs4 import BeautifulSoup

from .models import BriefingContent


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)


def load_briefing(path: Path | str) -> BriefingContent:
    """Read a prepared briefing JSON file with ``subject``, ``html`` and optional ``text``."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Briefing file must contain a JSON object: {path}")

    subject = str(payload.get("subject") or "").strip()
    html = str(payload.get("html") or "")
    text = str(payload.get("text") or "")
    if not subject:
        raise ValueError(f"Briefing file is missing a subject: {path}")
    if not html.strip() and not text.strip():
        raise ValueError(f"Briefing file has neither html nor text: {path}")
    if not text.strip():
        text = html_to_text(html)
    return BriefingContent(subject=subject, html=html, text=text)


def build_test_briefing(now: datetime) -> BriefingContent:
    stamp = now.isoformat()
    return BriefingContent(
        subject=f"Test Briefing - {now.strftime('%Y-%m-%d')}",
        html=(
            "<h1>Test Briefing</h1>"
            "<p>This is a test of the Kell briefing system.</p>"
            f"<p>Time: {stamp}</p>"
        ),
        text=f"Test Briefing\n\nThis is a test of the Kell briefing system.\nTime: {stamp}",
    )


def default_run_key(content: BriefingContent, today: date) -> str:
    digest = hashlib.sha1(content.subject.encode("utf-8")).hexdigest()[:12]
    return f"{today.isoformat()}:{digest}"
