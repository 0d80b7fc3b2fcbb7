"""Shared test fixtures for the SafeSwap test suite.

Provides:
    - An in-memory SQLite database (one shared connection per test)
    - Sessions and a session factory bound to it
    - Signed-in users and an escrow factory
    - An httpx client against the FastAPI app with collaborators overridden
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from safeswap.config import Settings
from safeswap.infrastructure.database.orm_models import Base, User
from safeswap.services.auth_service import AuthService
from safeswap.services.effects import DeferredEffects
from safeswap.services.escrow_service import EscrowService
from safeswap.services.notification_service import NotificationService

USDC_ADDRESS = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared across every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def notifier() -> AsyncMock:
    """A NotificationService stand-in that records calls and always succeeds."""
    mock = AsyncMock(spec=NotificationService)
    for name in (
        "send_login_code",
        "send_welcome_email",
        "send_escrow_created_email",
        "send_escrow_received_email",
        "send_escrow_confirmation_email",
    ):
        getattr(mock, name).return_value = True
    return mock


@pytest.fixture
def effects() -> DeferredEffects:
    return DeferredEffects()


@pytest.fixture
def auth_service(session, effects, notifier) -> AuthService:
    return AuthService(session, effects=effects, notifier=notifier)


@pytest.fixture
def escrow_service(session, effects, notifier, session_factory) -> EscrowService:
    return EscrowService(
        session,
        effects=effects,
        notifier=notifier,
        session_factory=session_factory,
    )


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


async def _make_user(session: AsyncSession, email: str, name: str) -> User:
    user = User(email=email, name=name, is_verified=True)
    session.add(user)
    await session.flush()
    return user


@pytest_asyncio.fixture
async def alice(session) -> User:
    """The creator (seller) in most tests."""
    return await _make_user(session, "alice@example.com", "Alice")


@pytest_asyncio.fixture
async def bob(session) -> User:
    """The invited recipient (buyer) in most tests."""
    return await _make_user(session, "bob@example.com", "Bob")


@pytest_asyncio.fixture
async def mallory(session) -> User:
    """Signed in, but party to nothing."""
    return await _make_user(session, "mallory@example.com", "Mallory")


@pytest.fixture
def sample_escrow_data() -> dict:
    """Return valid escrow creation arguments (creator excluded)."""
    return {
        "token_address": USDC_ADDRESS,
        "token_symbol": "USDC",
        "amount": "100.00",
        "recipient_email": "bob@example.com",
        "description": "Logo design, three concepts",
        "terms": "Delivered as SVG",
    }


@pytest_asyncio.fixture
async def escrow(session, escrow_service, alice, bob, sample_escrow_data):
    """A committed PENDING escrow from Alice to bob@example.com, effects drained.

    Committed so a test can roll back a rejected operation without losing it.
    """
    created = await escrow_service.create_escrow(creator=alice, **sample_escrow_data)
    await session.commit()
    escrow_service.effects.clear()
    return created


@pytest.fixture
def sample_escrow_id() -> uuid.UUID:
    """Return a deterministic UUID for testing."""
    return uuid.UUID("12345678-1234-5678-1234-567812345678")


# ---------------------------------------------------------------------------
# API Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def chain_client() -> AsyncMock:
    from safeswap.infrastructure.chain_client import ChainClient

    return AsyncMock(spec=ChainClient)


@pytest.fixture
def app_settings() -> Settings:
    """Development settings without SMTP, so send-code echoes the code."""
    return Settings(app_env="development", smtp_user="", smtp_password="")


@pytest_asyncio.fixture
async def api_client(session_factory, notifier, chain_client, app_settings):
    """httpx client against the app; no lifespan, every collaborator overridden."""
    from safeswap.api import deps
    from safeswap.main import create_app

    app = create_app(with_lifespan=False)
    app.dependency_overrides[deps.get_app_settings] = lambda: app_settings

    async def _db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[deps.get_db_session] = _db_session
    app.dependency_overrides[deps.get_db_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_chain_client] = lambda: chain_client
    app.dependency_overrides[deps.get_redis_client] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sign_in(api_client):
    """Run the send-code / login flow; returns Authorization headers for the user."""

    async def _sign_in(email: str, name: str | None = None) -> dict[str, str]:
        sent = await api_client.post("/api/v1/auth/send-code", json={"email": email})
        assert sent.status_code == 200, sent.text
        body = {"email": email, "code": sent.json()["code"]}
        if name:
            body["name"] = name
        logged_in = await api_client.post("/api/v1/auth/login", json=body)
        assert logged_in.status_code == 200, logged_in.text
        # Authenticate explicitly per request rather than through the cookie jar.
        api_client.cookies.clear()
        return {"Authorization": f"Bearer {logged_in.json()['token']}"}

    return _sign_in
