"""FastAPI application entry point for the WasteEx deal engine.

Lifecycle:
    1. Startup: logging, database, Redis, ledger and gateway clients, and the
       reconciliation sweep task.
    2. Running: Serve REST API + MCP tools on a single Uvicorn process.
    3. Shutdown: stop the sweep, close the gateway, database and Redis.

The MCP server is mounted at /mcp so operators' agents can query deal state
alongside the REST API at /api/v1/*.

Run with:
    uv run uvicorn wastex.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from wastex import __version__
from wastex.config import get_settings
from wastex.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        ledger_mode=settings.ledger_mode,
        gateway_mode=settings.gateway_mode,
    )

    # 2. Initialize database
    from wastex.infrastructure.database.engine import close_db, get_session_factory, init_db

    await init_db()

    # 3. Initialize Redis
    from wastex.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. External clients
    from wastex.infrastructure.gateway import build_gateway
    from wastex.infrastructure.ledger import build_ledger

    app.state.ledger = build_ledger(settings)
    app.state.gateway = build_gateway(settings)

    # 5. Reconciliation sweep
    sweep_task: asyncio.Task | None = None
    if settings.reconciliation_enabled:
        from wastex.services.reconciliation import EscrowReconciler, run_reconciliation_loop

        reconciler = EscrowReconciler(get_session_factory(), app.state.ledger, settings=settings)
        sweep_task = asyncio.create_task(
            run_reconciliation_loop(reconciler, settings.reconciliation_interval_seconds)
        )

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    await app.state.gateway.aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="WasteEx Deal Engine",
        description=(
            "Matching, negotiation, ledger-backed contracts and escrow payments "
            "for industrial waste trading."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from wastex.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from wastex.api.routes.contracts import router as contracts_router
    from wastex.api.routes.health import router as health_router
    from wastex.api.routes.material_requests import router as material_requests_router
    from wastex.api.routes.negotiations import router as negotiations_router
    from wastex.api.routes.payments import router as payments_router

    app.include_router(health_router)
    app.include_router(material_requests_router)
    app.include_router(negotiations_router)
    app.include_router(contracts_router)
    app.include_router(payments_router)

    # --- MCP Server (mounted as sub-application) ---
    from wastex.mcp_server.tools import mcp

    app.mount("/mcp", mcp.sse_app())

    return app


# The app instance used by Uvicorn
app = create_app()
