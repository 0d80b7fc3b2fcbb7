"""FastAPI application entry point for SafeSwap.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, the chain client, create tables (dev mode).
    2. Running: Serve REST API + MCP tools on a single Uvicorn process.
    3. Shutdown: Close database, Redis and RPC connections gracefully.

The MCP server is mounted at /mcp so AI agents can discover tools
alongside the REST API at /api/v1/*.

Run with:
    uv run uvicorn safeswap.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from safeswap.config import get_settings
from safeswap.logging_config import get_logger, setup_logging

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
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from safeswap.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (idempotency keys only; the app runs without it)
    from safeswap.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Shared JSON-RPC client
    from safeswap.infrastructure.chain_client import ChainClient

    app.state.chain_client = ChainClient()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await app.state.chain_client.aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app(with_lifespan: bool = True) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="SafeSwap",
        description=(
            "Email-addressed token escrow. "
            "Both sides confirm, then funds move."
        ),
        version="0.1.0",
        lifespan=lifespan if with_lifespan else None,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from safeswap.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from safeswap.api.routes.auth import router as auth_router
    from safeswap.api.routes.escrow import router as escrow_router
    from safeswap.api.routes.health import router as health_router
    from safeswap.api.routes.wallet import router as wallet_router

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(escrow_router)
    app.include_router(wallet_router)

    # --- MCP Server (mounted as sub-application) ---
    from safeswap.mcp_server.tools import mcp

    mcp_app = mcp.sse_app()
    app.mount("/mcp", mcp_app)

    return app


# The app instance used by Uvicorn
app = create_app()
