"""Submitter email extraction for form-forwarding signup notifications.

Each strategy is a pure function ``raw -> Optional[str]``. ``extract_email`` tries
them in ``EXTRACTORS`` order and the first hit wins, so a ``Reply-To`` header
always beats any address that merely appears in the body.
"""

from __future__ import annotations

import quopri
import re
from collections.abc import Callable
from typing import Optional

from bs4 import BeautifulSoup

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
REPLY_TO_RE = re.compile(r"^Reply-To:[ \t]*(?:[^\r\n<@]*<)?([^\s<>]+@[^\s<>]+)", re.IGNORECASE | re.MULTILINE)
INLINE_ADDRESS_RE = re.compile(r">\s*([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\s*<")
EMAIL_LABEL = "email"

Extractor = Callable[[str], Optional[str]]


def _normalize(value: str) -> str:
    return value.strip().lower()


def _decode_quoted_printable(raw: str) -> str:
    return quopri.decodestring(raw.encode("utf-8", errors="replace")).decode("utf-8", errors="replace")


def extract_reply_to(raw: str) -> Optional[str]:
    match = REPLY_TO_RE.search(raw)
    if not match:
        return None
    return _normalize(match.group(1))


def extract_table_cell(raw: str) -> Optional[str]:
    if "<td" not in raw.lower():
        return None

    soup = BeautifulSoup(_decode_quoted_printable(raw), "html.parser")
    for cell in soup.find_all("td"):
        if cell.get_text(strip=True).lower() != EMAIL_LABEL:
            continue
        value_cell = cell.find_next_sibling("td")
        if value_cell is None:
            continue
        match = EMAIL_RE.search(value_cell.get_text(" ", strip=True))
        if match:
            return _normalize(match.group(0))
    return None


def extract_inline_address(raw: str) -> Optional[str]:
    match = INLINE_ADDRESS_RE.search(raw)
    if not match:
        return None
    return _normalize(match.group(1))


EXTRACTORS: tuple[Extractor, ...] = (
    extract_reply_to,
    extract_table_cell,
    extract_inline_address,
)


def extract_email(raw: Optional[str], extractors: tuple[Extractor, ...] = EXTRACTORS) -> Optional[str]:
    if not raw:
        return None
    for extractor in extractors:
        email = extractor(raw)
        if email:
            return email
    return None
