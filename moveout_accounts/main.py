"""FastAPI application wiring for the accounts service."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.policy import SweepPolicy
from .domain.service import AccountService
from .domain.sweeper import InactivitySweeper
from .logging_config import setup_logging
from .notifications.mailer import LoggingMailer, Mailer, SmtpMailer
from .notifications.notifier import Notifier
from .repository import AccountRepository, ContentRepository, CredentialRepository
from .scheduler import start_scheduler
from .security.lease import InMemoryLease, RedisLease, SweepLease
from .storage import LocalObjectStore

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


def _build_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set, lifecycle emails will only be logged")
        return LoggingMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.smtp_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.operation_timeout_seconds,
    )


def _build_lease(settings: Settings) -> SweepLease:
    if settings.lease_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("sweep lease configured for redis backend at %s", settings.redis_url)
            return RedisLease(client)
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis sweep lease unavailable, falling back to in-memory: %s", exc)
    return InMemoryLease()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services, scheduler) for the app lifecycle."""
    timeout_ms = int(settings.operation_timeout_seconds * 1000)
    pool = ConnectionPool(
        settings.database_url,
        open=False,
        kwargs={"options": f"-c statement_timeout={timeout_ms}"},
    )
    pool.open()
    app.state.pool = pool

    repository = AccountRepository(pool)
    notifier = Notifier(_build_mailer(settings), app_base_url=settings.app_base_url)
    app.state.account_service = AccountService(
        repository,
        ContentRepository(pool),
        CredentialRepository(pool),
        LocalObjectStore(settings.storage_root, settings.storage_prefixes),
        notifier,
        operation_timeout=settings.operation_timeout_seconds,
    )
    sweeper = InactivitySweeper(
        repository,
        notifier,
        _build_lease(settings),
        SweepPolicy(
            inactivity_threshold=settings.inactivity_threshold,
            warn_lead_time=settings.warn_lead_time,
            sweep_interval=settings.sweep_interval,
        ),
    )
    app.state.sweeper = sweeper
    scheduler = start_scheduler(sweeper, settings) if settings.sweep_enabled else None
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", settings.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
