from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import requests

from .api import run_api_server
from .config import Settings
from .content import build_test_briefing, default_run_key, load_briefing
from .delivery import BriefingDelivery
from .gateways.resend import ResendGateway
from .models import BriefingContent, DeliveryResult
from .signups import SignupIngestion
from .store import SQLiteStore
from .subscribers import SubscriberStoreClient, SubscriberStoreError
from .throttle import FixedIntervalThrottle
from .waitlist import Waitlist, WaitlistUnreadableError


def _build_store_client(settings: Settings, session: requests.Session) -> SubscriberStoreClient:
    if not settings.subscriber_api_token:
        raise SystemExit("SUBSCRIBER_API_TOKEN is required to reach the subscriber store.")
    return SubscriberStoreClient(
        base_url=settings.subscriber_api_url,
        token=settings.subscriber_api_token,
        timeout_sec=settings.request_timeout_sec,
        session=session,
    )


def _build_gateway(settings: Settings, session: requests.Session) -> Optional[ResendGateway]:
    if not settings.resend_api_key:
        if settings.dry_run:
            return None
        raise SystemExit("RESEND_API_KEY is required to send briefings, or use --dry-run.")
    return ResendGateway(
        api_key=settings.resend_api_key,
        sender=settings.briefing_from,
        timeout_sec=settings.request_timeout_sec,
        api_base=settings.resend_api_base,
        session=session,
    )


def _resolve_content(args: argparse.Namespace) -> Optional[BriefingContent]:
    if args.briefing_file:
        return load_briefing(Path(args.briefing_file))
    if args.test:
        return build_test_briefing(datetime.now().astimezone())
    return None


def _log_errors(logger: logging.Logger, result: DeliveryResult) -> None:
    if not result.errors:
        return
    logger.info("errors:")
    for error in result.errors:
        logger.info("  - %s: %s", error.email, error.error)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kell briefing delivery and signup ingestion")
    parser.add_argument("--config-file", default="config.ini", help="Path to config.ini file")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--dry-run", action="store_true", help="Don't actually send, just show what would happen")
    parser.add_argument("--verbose", action="store_true", help="Debug logging and per-recipient error list")
    parser.add_argument("--test", action="store_true", help="Send a test briefing to verify setup")
    parser.add_argument("--briefing-file", default=None, help="JSON file with subject, html and text")
    parser.add_argument("--to", default=None, metavar="EMAIL", help="Only deliver to this active subscriber")
    parser.add_argument("--run-key", default=None, help="Send ledger key (default: date + subject hash)")
    parser.add_argument(
        "--process-signups",
        action="store_true",
        help="Turn signup notification emails into subscribers",
    )
    parser.add_argument("--add-waitlist", default=None, metavar="EMAIL", help="Add an email to the local waitlist")
    parser.add_argument("--serve-api", action="store_true", help="Serve the waitlist capture API")
    parser.add_argument("--api-host", default="127.0.0.1", help="API bind host")
    parser.add_argument("--api-port", type=int, default=8000, help="API bind port")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)

    level_name = "DEBUG" if args.verbose else args.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("kell_briefing")

    settings = Settings.from_files(
        config_file=Path(args.config_file),
        env_file=Path(args.env_file),
    )
    if args.dry_run:
        settings.dry_run = True
    settings.ensure_dirs()

    if args.add_waitlist:
        try:
            Waitlist(settings.waitlist_path, logger=logger).add(args.add_waitlist)
        except (ValueError, WaitlistUnreadableError) as exc:
            logger.error("%s", exc)
            return 1
        return 0

    if args.serve_api:
        if not settings.api_key:
            raise SystemExit("API_KEY is required to serve the API.")
        run_api_server(
            settings,
            host=args.api_host,
            port=args.api_port,
            logger=logging.getLogger("kell_briefing.api"),
        )
        return 0

    session = requests.Session()
    session.headers.update({"User-Agent": settings.request_user_agent})
    store = SQLiteStore(settings.db_path)
    store_client = _build_store_client(settings, session)

    if args.process_signups:
        ingestion = SignupIngestion(
            store_client=store_client,
            processed_store=store,
            inbox_address=settings.signup_inbox_address,
            sender_marker=settings.signup_sender_marker,
            subject_keyword=settings.signup_subject_keyword,
            source=settings.signup_source,
            max_extract_attempts=settings.signup_max_extract_attempts,
            logger=logger,
        )
        try:
            stats = ingestion.process_signups()
        except SubscriberStoreError:
            logger.exception("signup processing failed")
            return 1
        return 1 if stats.failed else 0

    try:
        content = _resolve_content(args)
    except (OSError, ValueError) as exc:
        logger.error("could not load briefing: %s", exc)
        return 1
    if content is None:
        logger.info("No content provided. Use --test to send a test briefing or --briefing-file PATH.")
        return 0

    delivery = BriefingDelivery(
        store_client=store_client,
        gateway=_build_gateway(settings, session),
        throttle=FixedIntervalThrottle(settings.send_interval_sec),
        ledger=store,
        logger=logger,
    )
    run_key = args.run_key or default_run_key(content, datetime.now().astimezone().date())
    logger.info("briefing: subject=%s run_key=%s dry_run=%s", content.subject, run_key, settings.dry_run)

    try:
        result = delivery.run(content, filter_email=args.to, dry_run=settings.dry_run, run_key=run_key)
    except Exception:
        logger.exception("fatal error during delivery")
        return 1

    logger.info("results: sent=%s failed=%s skipped=%s", result.sent, result.failed, result.skipped)
    if args.verbose:
        _log_errors(logger, result)
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
