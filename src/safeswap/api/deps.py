"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services, collaborators, the authenticated user, and configuration.

FastAPI caches a dependency per request, so every service in one request
shares the same AsyncSession and the same DeferredEffects queue.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, Depends, Request

from safeswap.config import Settings, get_settings
from safeswap.infrastructure.database.engine import get_async_session, get_session_factory
from safeswap.infrastructure.redis_client import get_optional_redis
from safeswap.services.auth_service import AuthService
from safeswap.services.effects import DeferredEffects
from safeswap.services.escrow_service import EscrowService
from safeswap.services.notification_service import NotificationService
from safeswap.services.settlement_service import SettlementService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from safeswap.infrastructure.chain_client import ChainClient
    from safeswap.infrastructure.database.orm_models import User


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    """Provide the factory background workflows open their own sessions from."""
    return get_session_factory()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_effects() -> DeferredEffects:
    """A fresh side-effect queue for this request."""
    return DeferredEffects()


def get_notifier(settings: Settings = Depends(get_app_settings)) -> NotificationService:
    return NotificationService(settings)


def get_settlement() -> SettlementService:
    return SettlementService()


def get_chain_client(request: Request) -> ChainClient:
    """Provide the shared JSON-RPC client created at startup."""
    return request.app.state.chain_client


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when it is unavailable."""
    return get_optional_redis()


async def get_auth_service(
    session: AsyncSession = Depends(get_db_session),
    effects: DeferredEffects = Depends(get_effects),
    notifier: NotificationService = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(session, effects=effects, notifier=notifier, settings=settings)


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    effects: DeferredEffects = Depends(get_effects),
    notifier: NotificationService = Depends(get_notifier),
    settlement: SettlementService = Depends(get_settlement),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> EscrowService:
    return EscrowService(
        session,
        effects=effects,
        notifier=notifier,
        settlement=settlement,
        session_factory=session_factory,
    )


def get_session_token(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str | None:
    """Read the session token from the cookie, falling back to a Bearer header."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_user(
    token: str | None = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the request's token to the live user, or raise a 401 error."""
    return await auth.verify_token(token)


async def commit_and_defer(
    session: AsyncSession,
    effects: DeferredEffects,
    background_tasks: BackgroundTasks,
) -> None:
    """Commit the request's transaction, then schedule its side effects.

    Effects are only scheduled once the commit succeeded, so an email or a
    settlement never follows a transition that was rolled back.
    """
    await session.commit()
    if len(effects):
        background_tasks.add_task(effects.run)
