"""FastAPI application entry point — wires everything together.

Usage:
    python -m bugtracker.main

``create_app()`` builds one independent set of collaborators (repository,
audit trail, token codec, storage, event bus) and hangs them on
``app.state``; nothing is shared between app instances.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from bugtracker.api.auth import router as auth_router
from bugtracker.api.errors import register_exception_handlers
from bugtracker.api.reports import router as reports_router
from bugtracker.config import Settings
from bugtracker.db.repository import Clock, ReportRepository
from bugtracker.events.bus import EventBus
from bugtracker.events.notifications import register_subscribers
from bugtracker.reports.service import ReportService
from bugtracker.security.audit import AuditTrail
from bugtracker.security.capabilities import CapabilityTokens
from bugtracker.security.sessions import SessionAuthenticator
from bugtracker.security.tokens import TokenCodec, load_secret
from bugtracker.storage.files import FileStorage

logger = logging.getLogger(__name__)

# ── Logging setup ────────────────────────────────────────────────────


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    logger.info("Starting bug tracker (env=%s)", settings.environment)

    events: EventBus = app.state.events
    await events.start()
    try:
        yield
    finally:
        logger.info("Shutting down bug tracker...")
        await events.stop()
    logger.info("Bug tracker shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────


def create_app(settings: Settings | None = None, clock: Clock | None = None) -> FastAPI:
    """Build the application and all of its collaborators.

    Args:
        settings: Defaults to Settings() loaded from the environment.
        clock: Epoch-seconds time source shared by tokens and timestamps
               (tests pass a controllable one).
    """
    settings = settings or Settings()
    clock = clock or time.time
    codec = TokenCodec(load_secret(settings.security.jwt_secret), clock=clock)
    repository = ReportRepository(clock=clock)
    audit = AuditTrail(lock=repository.lock)
    capabilities = CapabilityTokens(codec, repository, ttl=settings.security.download_ttl_seconds)
    events = EventBus()
    register_subscribers(events)

    app = FastAPI(
        title="Bug Tracker API",
        description="Bug reports with comments, attachments, signed downloads and an audit trail",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.audit = audit
    app.state.events = events
    app.state.storage = FileStorage(settings.storage.upload_dir)
    app.state.sessions = SessionAuthenticator(codec, ttl=settings.security.session_ttl_seconds)
    app.state.reports = ReportService(repository, audit, capabilities, events)

    register_exception_handlers(app)
    app.include_router(auth_router)
    app.include_router(reports_router)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "Bug Tracker API is running"

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "environment": settings.environment}

    return app


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    _settings = Settings()
    configure_logging(_settings.log_level)
    uvicorn.run(
        create_app(_settings),
        host="0.0.0.0",
        port=8000,
        log_level=_settings.log_level.lower(),
    )
