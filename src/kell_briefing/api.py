from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .store import SQLiteStore
from .waitlist import Waitlist, WaitlistUnreadableError

DEFAULT_LIMIT = 50
MAX_LIMIT = 500
API_KEY_HEADER = "X-API-Key"


def build_app(
    *,
    db_path: Path,
    waitlist_path: Path,
    api_key: str,
    cors_origins: tuple[str, ...] = (),
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    normalized_api_key = (api_key or "").strip()
    if not normalized_api_key:
        raise ValueError("API_KEY is required")

    db_file = Path(db_path)
    db_file.parent.mkdir(parents=True, exist_ok=True)
    store = SQLiteStore(db_file)

    app_logger = logger or logging.getLogger("kell_briefing.api")
    waitlist = Waitlist(Path(waitlist_path), logger=app_logger)
    normalized_origins = tuple(origin.strip() for origin in cors_origins if origin.strip())

    app = FastAPI(
        title="Kell Briefing API",
        description="Waitlist capture webhook and signup ingestion state",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(normalized_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[API_KEY_HEADER, "Content-Type"],
    )
    if not normalized_origins:
        app_logger.warning("CORS whitelist is empty; browser cross-origin requests will be rejected")

    @app.middleware("http")
    async def api_key_guard(request: Request, call_next):
        if request.url.path.startswith("/api/"):
            provided = (request.headers.get(API_KEY_HEADER) or "").strip()
            if provided != normalized_api_key:
                return JSONResponse(status_code=401, content={"ok": False, "error": "unauthorized"})
        return await call_next(request)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
        error_message = exc.detail if isinstance(exc.detail, str) else "request_error"
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": error_message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        message = str(exc.errors()[0].get("msg", "validation_error")) if exc.errors() else "validation_error"
        return JSONResponse(status_code=422, content={"ok": False, "error": message})

    @app.exception_handler(sqlite3.Error)
    async def sqlite_exception_handler(_: Request, exc: sqlite3.Error) -> JSONResponse:
        app_logger.exception("api sqlite error")
        return JSONResponse(status_code=500, content={"ok": False, "error": "internal_error"})

    @app.exception_handler(WaitlistUnreadableError)
    async def waitlist_exception_handler(_: Request, exc: WaitlistUnreadableError) -> JSONResponse:
        app_logger.error("refusing waitlist write: %s", exc)
        return JSONResponse(status_code=500, content={"ok": False, "error": "waitlist_unavailable"})

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.post("/waitlist")
    def capture_waitlist(
        email: str = Body(...),
        source: Optional[str] = Body(default=None),
    ) -> dict[str, object]:
        try:
            added = waitlist.add(email, source=(source or "").strip() or "website")
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid_email")
        return {"ok": True, "added": added}

    @app.get("/api/waitlist")
    def list_waitlist() -> dict[str, object]:
        items = [asdict(entry) for entry in waitlist.entries()]
        return {"ok": True, "items": items, "count": len(items)}

    @app.get("/api/signups/processed")
    def list_processed_signups(
        limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    ) -> dict[str, object]:
        items = store.list_notifications(limit=limit)
        return {"ok": True, "items": items, "count": len(items), "limit": limit}

    return app


def build_app_from_settings(settings: Settings, logger: Optional[logging.Logger] = None) -> FastAPI:
    return build_app(
        db_path=settings.db_path,
        waitlist_path=settings.waitlist_path,
        api_key=settings.api_key or "",
        cors_origins=settings.api_cors_origins,
        logger=logger or logging.getLogger("kell_briefing.api"),
    )


def create_app() -> FastAPI:
    """
    Uvicorn factory entrypoint, configured from config.ini, .env and the environment.
    Example:
      python3 -m uvicorn kell_briefing.api:create_app --factory --host 127.0.0.1 --port 8000
    """
    settings = Settings.from_files()
    settings.ensure_dirs()
    return build_app_from_settings(settings)


def run_api_server(
    settings: Settings,
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
    logger: Optional[logging.Logger] = None,
) -> None:
    if port < 1 or port > 65535:
        raise ValueError("port must be in [1, 65535]")

    app_logger = logger or logging.getLogger("kell_briefing.api")
    app = build_app_from_settings(settings, logger=app_logger)
    app_logger.info("api started: http://%s:%s (waitlist=%s)", host, port, settings.waitlist_path)

    uvicorn.run(app, host=host, port=port, log_level="info")
