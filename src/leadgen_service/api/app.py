"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from functools import partial

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from leadgen_service.api.envelope import (
    SuccessEnvelope,
    error_response,
    install_exception_handlers,
)
from leadgen_service.api.middleware import RequestLoggingMiddleware
from leadgen_service.api.routes.agents import router as agents_router
from leadgen_service.api.routes.commissions import router as commissions_router
from leadgen_service.api.routes.prospects import router as prospects_router
from leadgen_service.api.routes.qrcodes import router as qrcodes_router
from leadgen_service.api.routes.scans import router as scans_router
from leadgen_service.auth.jwks import JWKSClient
from leadgen_service.auth.rate_limiter import (
    FixedWindowRateLimiter,
    OperationClass,
    ScanRateLimiter,
)
from leadgen_service.auth.tokens import TokenVerifier
from leadgen_service.config import Settings, settings
from leadgen_service.logging_config import configure_logging
from leadgen_service.metrics import MetricsRegistry
from leadgen_service.services.attribution import AttributionEngine
from leadgen_service.services.idempotency import purge_expired
from leadgen_service.services.scheduling import PeriodicTask
from leadgen_service.storage.bootstrap import bootstrap
from leadgen_service.storage.database import build_engine, build_session_factory

logger = structlog.get_logger()

API_PREFIX = "/v1"
BUCKET_CLEANUP_INTERVAL_SECONDS = 60
HEALTH_CHECK_TIMEOUT = 5.0

MetricsData = dict[str, dict[str, int | float]]
SessionFactory = async_sessionmaker[AsyncSession]


async def _purge_idempotency(factory: SessionFactory, window: timedelta) -> int:
    async with factory() as session:
        return await purge_expired(session, window)


def _maintenance_tasks(app: FastAPI, cfg: Settings) -> list[PeriodicTask]:
    scan_limiter: ScanRateLimiter = app.state.scan_limiter
    rate_limiter: FixedWindowRateLimiter = app.state.rate_limiter
    tasks = [
        PeriodicTask(
            "scan_limiter_sweep", scan_limiter.window_seconds, scan_limiter.sweep
        ),
        PeriodicTask(
            "rate_bucket_cleanup",
            BUCKET_CLEANUP_INTERVAL_SECONDS,
            rate_limiter.cleanup,
        ),
    ]
    if cfg.idempotency_purge_interval_seconds > 0:
        window = cfg.idempotency_window
        tasks.append(
            PeriodicTask(
                "idempotency_purge",
                cfg.idempotency_purge_interval_seconds,
                partial(_purge_idempotency, app.state.session_factory, window),
            )
        )
    return tasks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Configure logging.
        - Bootstrap the service schema (if enabled; failures are logged).
        - Start periodic maintenance tasks.
    Shutdown:
        - Stop maintenance tasks.
        - Dispose database engine (close connection pool).
    """
    cfg: Settings = app.state.settings
    engine: AsyncEngine = app.state.engine
    configure_logging(
        environment=str(cfg.environment),
        log_level=cfg.log_level,
        service=cfg.service_name,
    )

    if cfg.bootstrap_schema:
        try:
            await bootstrap(engine, cfg)
        except (OSError, SQLAlchemyError) as exc:
            logger.error("schema_bootstrap_failed", error=str(exc), exc_info=True)

    tasks = _maintenance_tasks(app, cfg)
    for task in tasks:
        task.start()

    logger.info("app_started", environment=str(cfg.environment))
    yield

    for task in tasks:
        await task.stop()
    await engine.dispose()
    logger.info("app_stopped")


def create_app(cfg: Settings | None = None) -> FastAPI:
    """Build the application with its process-lifetime state objects."""
    cfg = cfg or settings
    app = FastAPI(
        title="Leadgen Service",
        description="Tenant-scoped QR tags, scans, prospects and commissions",
        version="0.1.0",
        lifespan=lifespan,
    )

    metrics = MetricsRegistry()
    app.state.settings = cfg
    app.state.engine = build_engine(cfg)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.metrics = metrics
    app.state.rate_limiter = FixedWindowRateLimiter(
        {
            OperationClass.CREATE: cfg.rate_limit_create_rps,
            OperationClass.LIST: cfg.rate_limit_list_rps,
        }
    )
    app.state.scan_limiter = ScanRateLimiter(
        max_per_window=cfg.scan_rate_limit_per_window,
        window_seconds=cfg.scan_rate_window_seconds,
    )
    app.state.attribution_engine = AttributionEngine(
        timeout_seconds=cfg.attribution_timeout_seconds
    )
    app.state.token_verifier = TokenVerifier(
        JWKSClient(
            cfg.auth_jwks_url,
            ttl_seconds=cfg.jwks_cache_ttl_seconds,
            timeout_seconds=cfg.jwks_timeout_seconds,
        ),
        issuer=cfg.auth_issuer,
        audience=cfg.auth_audience,
        algorithms=cfg.auth_algorithms,
    )

    app.add_middleware(RequestLoggingMiddleware, metrics=metrics)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allowed_origins,
        allow_credentials=cfg.cors_allow_credentials,
        allow_methods=cfg.cors_allowed_methods,
        allow_headers=cfg.cors_allowed_headers,
    )
    install_exception_handlers(app)

    @app.get("/health")
    async def health() -> SuccessEnvelope[dict[str, str]]:
        """Liveness probe; does not touch the database."""
        return SuccessEnvelope(
            data={
                "status": "ok",
                "service": cfg.service_name,
                "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
            }
        )

    @app.get("/health/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe: bounded ``SELECT 1`` against the database."""
        try:
            factory: SessionFactory = request.app.state.session_factory
            async with factory() as session:
                await asyncio.wait_for(
                    session.execute(text("SELECT 1")),
                    timeout=HEALTH_CHECK_TIMEOUT,
                )
        except (TimeoutError, OSError, SQLAlchemyError) as e:
            logger.warning("health_check_db_error", error=type(e).__name__)
            return error_response(503, "unavailable", "Database unreachable")
        body = SuccessEnvelope(data={"db": "ok"})
        return JSONResponse(content=body.model_dump(mode="json"))

    @app.get("/metrics")
    async def metrics_snapshot(request: Request) -> SuccessEnvelope[MetricsData]:
        registry: MetricsRegistry = request.app.state.metrics
        return SuccessEnvelope(data=registry.snapshot())

    app.include_router(qrcodes_router, prefix=API_PREFIX)
    app.include_router(scans_router, prefix=API_PREFIX)
    app.include_router(prospects_router, prefix=API_PREFIX)
    app.include_router(commissions_router, prefix=API_PREFIX)
    app.include_router(agents_router, prefix=API_PREFIX)
    return app


app = create_app()
