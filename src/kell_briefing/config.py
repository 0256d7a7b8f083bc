from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_SUBSCRIBER_API_URL = "https://email-api.kell.cx"
DEFAULT_RESEND_API_BASE = "https://api.resend.com"
DEFAULT_BRIEFING_FROM = "Kell Briefing <briefings@kell.cx>"


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_ini(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    parser = configparser.ConfigParser()
    parser.optionxform = str
    parser.read(path, encoding="utf-8")

    values: dict[str, str] = {}
    for key, value in parser.defaults().items():
        values[key.upper()] = value
    for section in parser.sections():
        for key, value in parser.items(section):
            values[key.upper()] = value
    return values


def _parse_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if (
            len(value) >= 2
            and value[0] == value[-1]
            and value[0] in {"'", '"'}
        ):
            value = value[1:-1]

        if key:
            values[key.upper()] = value
    return values


def _pick(
    values: Mapping[str, str],
    key: str,
    default: Optional[str] = None,
) -> Optional[str]:
    value = values.get(key)
    if value is None:
        return default
    return str(value)


def _optional(values: Mapping[str, str], key: str) -> Optional[str]:
    return (_pick(values, key) or "").strip() or None


def _split_csv(value: Optional[str]) -> tuple[str, ...]:
    raw = (value or "").strip()
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass
class Settings:
    subscriber_api_url: str
    subscriber_api_token: Optional[str]

    resend_api_key: Optional[str]
    resend_api_base: str
    briefing_from: str

    request_timeout_sec: float
    request_user_agent: str
    send_interval_sec: float

    db_path: Path

    signup_inbox_address: str
    signup_sender_marker: str
    signup_subject_keyword: str
    signup_source: str
    signup_max_extract_attempts: int

    waitlist_path: Path
    api_key: Optional[str]
    api_cors_origins: tuple[str, ...]

    dry_run: bool

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "Settings":
        values = {key.upper(): str(value) for key, value in mapping.items() if value is not None}
        return cls(
            subscriber_api_url=(
                _pick(values, "SUBSCRIBER_API_URL", DEFAULT_SUBSCRIBER_API_URL) or DEFAULT_SUBSCRIBER_API_URL
            ).strip().rstrip("/"),
            subscriber_api_token=_optional(values, "SUBSCRIBER_API_TOKEN"),
            resend_api_key=_optional(values, "RESEND_API_KEY"),
            resend_api_base=(
                _pick(values, "RESEND_API_BASE", DEFAULT_RESEND_API_BASE) or DEFAULT_RESEND_API_BASE
            ).strip().rstrip("/"),
            briefing_from=(_pick(values, "BRIEFING_FROM", DEFAULT_BRIEFING_FROM) or DEFAULT_BRIEFING_FROM).strip(),
            request_timeout_sec=float(_pick(values, "REQUEST_TIMEOUT_SEC", "15") or "15"),
            request_user_agent=(_pick(values, "REQUEST_USER_AGENT", "kell-briefing/0.1") or "").strip(),
            send_interval_sec=float(_pick(values, "SEND_INTERVAL_SEC", "0.1") or "0.1"),
            db_path=Path(_pick(values, "DB_PATH", "./data/kell_briefing.db") or "./data/kell_briefing.db").expanduser(),
            signup_inbox_address=(_pick(values, "SIGNUP_INBOX_ADDRESS", "hi@kell.cx") or "hi@kell.cx").strip(),
            signup_sender_marker=(_pick(values, "SIGNUP_SENDER_MARKER", "formsubmit") or "formsubmit").strip(),
            signup_subject_keyword=(_pick(values, "SIGNUP_SUBJECT_KEYWORD", "signup") or "signup").strip(),
            signup_source=(_pick(values, "SIGNUP_SOURCE", "kell.cx form") or "kell.cx form").strip(),
            signup_max_extract_attempts=int(_pick(values, "SIGNUP_MAX_EXTRACT_ATTEMPTS", "5") or "5"),
            waitlist_path=Path(
                _pick(values, "WAITLIST_PATH", "./data/waitlist.json") or "./data/waitlist.json"
            ).expanduser(),
            api_key=_optional(values, "API_KEY"),
            api_cors_origins=_split_csv(_pick(values, "API_CORS_ORIGINS")),
            dry_run=_as_bool(_pick(values, "DRY_RUN", "false"), default=False),
        )

    @classmethod
    def from_files(
        cls,
        *,
        config_file: Path | str = "config.ini",
        env_file: Path | str = ".env",
        base_env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        merged_values: dict[str, str] = {}
        merged_values.update(_parse_ini(Path(config_file)))
        merged_values.update(_parse_dotenv(Path(env_file)))
        if base_env is None:
            base_env = os.environ
        for key, value in base_env.items():
            if value is not None:
                merged_values[key.upper()] = str(value)
        return cls.from_mapping(merged_values)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls.from_mapping(os.environ)

    def ensure_dirs(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.waitlist_path.parent.mkdir(parents=True, exist_ok=True)
