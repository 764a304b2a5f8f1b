# ruff: noqa: I001

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from revas.api.router import api_router
from revas.config import settings
from revas.core.errors import RevasError, request_validation_error_handler, revas_error_handler
from revas.core.observability import (
    global_exception_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from revas.database import POOL_CONFIG, SessionLocal, engine
from revas.services.dev_seed import seed_dev_users

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("revas")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

app.add_exception_handler(RevasError, revas_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import text

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_root / "alembic"))

    try:
        with engine.connect() as connection:
            dialect = str(connection.dialect.name or "").lower()

            # Avoid concurrent migrations across multiple instances.
            lock_acquired = True
            if dialect == "postgresql":
                lock_acquired = bool(
                    connection.execute(text("select pg_try_advisory_lock(:k)"), {"k": 52061207}).scalar()
                )
            if not lock_acquired:
                logger.info("migrations_skipped_lock_not_acquired")
                return

            try:
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
                connection.commit()
                logger.info("migrations_applied")
            finally:
                if dialect == "postgresql":
                    connection.execute(text("select pg_advisory_unlock(:k)"), {"k": 52061207})
                    connection.commit()
    except SQLAlchemyError as e:
        # Don't crash the API; endpoints that need the DB will fail on their own.
        logger.error("migrations_failed", extra={"error": str(e)})


def _seed_dev_users() -> None:
    env = str(settings.environment or "dev").lower()
    if env != "dev":
        return

    db = SessionLocal()
    try:
        created = [u.email for u, was_created in seed_dev_users(db) if was_created]
        db.commit()
        if created:
            logger.info("dev_users_seeded", extra={"emails": created})
    except SQLAlchemyError as e:
        # Database not ready yet (e.g. missing tables); don't block startup.
        logger.warning("dev_user_seed_failed", extra={"error": str(e)})
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def _startup():
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
            "storage_backend": settings.storage_backend,
            "email_enabled": settings.email_enabled,
        },
    )
    _run_migrations_if_configured()
    _seed_dev_users()


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness probe. Keep payload stable for monitoring systems."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
