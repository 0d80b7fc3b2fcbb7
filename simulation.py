#!/usr/bin/env python3
"""SafeSwap — End-to-End Simulation.

Drives the service layer directly with two people, Alice (creator / seller)
and Bob (recipient / buyer), through five scenarios:

    Scenario 1: Happy Path
        - Alice signs in with a code and creates an escrow for bob@example.com
        - Bob signs in, opens the escrow (binding him as recipient)
        - Both set wallets and confirm -> COMPLETED + settlement recorded

    Scenario 2: Missing Wallet
        - Both confirm before Bob set a wallet -> MISSING_WALLET, nothing saved
        - Bob sets his wallet and confirms again -> COMPLETED

    Scenario 3: Dispute
        - Alice confirms, Bob raises a dispute -> DISPUTED
        - Further confirmations are refused

    Scenario 4: Outsider
        - Mallory (not a party) tries to read and confirm -> FORBIDDEN

    Scenario 5: Lazy Binding
        - Carol is invited before she has an account
        - Her first sign-in and list call finds the escrow; opening it binds her

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from safeswap.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

USDC_SEPOLIA = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"

# Module-level state
_sqlite_engine = None
_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False):
    """Initialize database engine and create tables."""
    global _sqlite_engine, _session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
        from sqlalchemy.pool import StaticPool

        from safeswap.infrastructure.database.orm_models import Base

        # One shared connection, so the completion workflow's own session
        # sees the same in-memory database.
        _sqlite_engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from safeswap.infrastructure.database.engine import get_session_factory, init_db

        await init_db()
        _session_factory = get_session_factory()


def get_session():
    """Get a fresh database session."""
    return _session_factory()


async def shutdown_database():
    """Close database connections."""
    global _sqlite_engine, _session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
    else:
        from safeswap.infrastructure.database.engine import close_db

        await close_db()
    _session_factory = None


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------
@dataclass
class Person:
    """A simulated user who signs in by email code and acts on escrows."""

    label: str
    email: str
    wallet: str
    name: str = ""
    token: str = field(default="", repr=False)

    async def sign_in(self) -> None:
        """Request a code and exchange it for a session token."""
        from safeswap.services.auth_service import AuthService
        from safeswap.services.effects import DeferredEffects

        effects = DeferredEffects()
        async with get_session() as session:
            auth = AuthService(session, effects=effects)
            issued = await auth.request_code(self.email)
            await session.commit()
        await effects.run()

        async with get_session() as session:
            auth = AuthService(session, effects=effects)
            result = await auth.verify_code(self.email, issued.code, self.name or None)
            await session.commit()
        await effects.run()

        self.token = result.token
        logger.info(
            f"{self.label}: signed in",
            email=self.email,
            purpose=issued.purpose.value,
            new_user=issued.is_new_user,
        )

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Authenticate, call an EscrowService method, commit, run effects."""
        from safeswap.services.auth_service import AuthService
        from safeswap.services.effects import DeferredEffects
        from safeswap.services.escrow_service import EscrowService

        effects = DeferredEffects()
        async with get_session() as session:
            user = await AuthService(session).verify_token(self.token)
            svc = EscrowService(session, effects=effects, session_factory=_session_factory)
            try:
                result = await getattr(svc, method)(*args, caller=user, **kwargs)
            except Exception:
                await session.rollback()
                raise
            await session.commit()
        await effects.run()
        return result

    async def create_escrow(self, recipient_email: str, amount: str, description: str) -> str:
        from safeswap.services.auth_service import AuthService
        from safeswap.services.effects import DeferredEffects
        from safeswap.services.escrow_service import EscrowService

        effects = DeferredEffects()
        async with get_session() as session:
            user = await AuthService(session).verify_token(self.token)
            escrow = await EscrowService(session, effects=effects).create_escrow(
                creator=user,
                token_address=USDC_SEPOLIA,
                token_symbol="USDC",
                amount=amount,
                recipient_email=recipient_email,
                description=description,
            )
            await session.commit()
        await effects.run()
        logger.info(f"{self.label}: escrow created", escrow_id=str(escrow.id), amount=escrow.amount)
        return str(escrow.id)

    async def view(self, escrow_id: str) -> dict:
        import uuid

        status = await self._call("get_status", uuid.UUID(escrow_id))
        logger.info(f"{self.label}: status", status=status["status"], roles=status["roles"])
        return status

    async def list_escrows(self) -> list:
        from safeswap.services.auth_service import AuthService
        from safeswap.services.escrow_service import EscrowService

        async with get_session() as session:
            user = await AuthService(session).verify_token(self.token)
            escrows, stats = await EscrowService(session).list_escrows(user)
        logger.info(f"{self.label}: listed escrows", total=stats.total, active=stats.active)
        return escrows

    async def set_wallet(self, escrow_id: str) -> None:
        import uuid

        await self._call("set_wallet", uuid.UUID(escrow_id), wallet_address=self.wallet)
        logger.info(f"{self.label}: wallet set", wallet=self.wallet)

    async def confirm(self, escrow_id: str) -> str:
        import uuid

        escrow = await self._call("confirm", uuid.UUID(escrow_id))
        logger.info(f"{self.label}: confirmed", status=escrow.status)
        return escrow.status

    async def dispute(self, escrow_id: str, reason: str) -> str:
        import uuid

        escrow = await self._call("dispute", uuid.UUID(escrow_id), reason=reason)
        logger.info(f"{self.label}: dispute raised", status=escrow.status)
        return escrow.status


def _people() -> tuple[Person, Person]:
    alice = Person("ALICE", "alice@example.com", "0x" + "a1" * 20, name="Alice")
    bob = Person("BOB", "bob@example.com", "0x" + "b2" * 20, name="Bob")
    return alice, bob


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_audit_trail(person: Person, escrow_id: str) -> None:
    """Print the full audit trail for an escrow."""
    import uuid

    events = await person._call("get_events", uuid.UUID(escrow_id))
    print("\n  Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {old} -> {evt.new_status} (by {evt.actor})")
    print()


async def print_settlement(person: Person, escrow_id: str) -> None:
    import uuid

    escrow = await person._call("get_escrow", uuid.UUID(escrow_id))
    print(f"  Status: {escrow.status}")
    print(f"  Settlement TX: {escrow.settlement_tx_hash or '(pending)'}")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path")
    alice, bob = _people()

    section("Step 1: Both sign in")
    await alice.sign_in()
    await bob.sign_in()

    section("Step 2: Alice creates an escrow for Bob")
    escrow_id = await alice.create_escrow("bob@example.com", "100.00", "Logo design, 3 concepts")

    section("Step 3: Bob opens it (binds him as recipient)")
    await bob.view(escrow_id)

    section("Step 4: Both set wallets")
    await alice.set_wallet(escrow_id)
    await bob.set_wallet(escrow_id)

    section("Step 5: Both confirm")
    await alice.confirm(escrow_id)
    status = await bob.confirm(escrow_id)
    assert status == "COMPLETED", f"Expected COMPLETED, got {status}"

    await print_settlement(alice, escrow_id)
    await print_audit_trail(alice, escrow_id)


# ===========================================================================
# Scenario 2: Missing Wallet
# ===========================================================================
async def scenario_2_missing_wallet() -> None:
    from safeswap.domain.exceptions import MissingWalletError

    banner("SCENARIO 2: Missing Wallet — completion waits for both wallets")
    alice, bob = _people()
    await alice.sign_in()
    await bob.sign_in()

    escrow_id = await alice.create_escrow("bob@example.com", "25", "Translation, 2 pages")
    await alice.set_wallet(escrow_id)
    await alice.confirm(escrow_id)

    section("Step 1: Bob confirms without a wallet")
    try:
        await bob.confirm(escrow_id)
        raise AssertionError("Expected MISSING_WALLET")
    except MissingWalletError as exc:
        print(f"  Refused: {exc.code} (missing: {exc.missing})")

    status = await bob.view(escrow_id)
    assert status["buyer_confirmed"] is False, "Refused confirmation must not be saved"
    print("  buyer_confirmed is still False")

    section("Step 2: Bob sets his wallet and confirms again")
    await bob.set_wallet(escrow_id)
    status_value = await bob.confirm(escrow_id)
    assert status_value == "COMPLETED", f"Expected COMPLETED, got {status_value}"

    await print_settlement(bob, escrow_id)
    await print_audit_trail(bob, escrow_id)


# ===========================================================================
# Scenario 3: Dispute
# ===========================================================================
async def scenario_3_dispute() -> None:
    from safeswap.domain.exceptions import EscrowDisputedError

    banner("SCENARIO 3: Dispute")
    alice, bob = _people()
    await alice.sign_in()
    await bob.sign_in()

    escrow_id = await alice.create_escrow("bob@example.com", "0.5", "Used laptop")
    await alice.confirm(escrow_id)

    section("Step 1: Bob disputes")
    status = await bob.dispute(escrow_id, "Laptop arrived with a cracked screen")
    assert status == "DISPUTED"

    section("Step 2: Confirming a disputed escrow is refused")
    try:
        await bob.confirm(escrow_id)
        raise AssertionError("Expected DISPUTED")
    except EscrowDisputedError as exc:
        print(f"  Refused: {exc.code}")

    await print_audit_trail(alice, escrow_id)


# ===========================================================================
# Scenario 4: Outsider
# ===========================================================================
async def scenario_4_outsider() -> None:
    from safeswap.domain.exceptions import ForbiddenError

    banner("SCENARIO 4: Outsider — not a party")
    alice, _ = _people()
    mallory = Person("MALLORY", "mallory@example.com", "0x" + "c3" * 20)
    await alice.sign_in()
    await mallory.sign_in()

    escrow_id = await alice.create_escrow("bob@example.com", "10", "Consulting call")

    for action in ("view", "confirm"):
        try:
            await getattr(mallory, action)(escrow_id)
            raise AssertionError("Expected FORBIDDEN")
        except ForbiddenError as exc:
            print(f"  Mallory {action}: {exc.code}")


# ===========================================================================
# Scenario 5: Lazy Binding
# ===========================================================================
async def scenario_5_lazy_binding() -> None:
    banner("SCENARIO 5: Lazy Binding — invited before signing up")
    alice, _ = _people()
    carol = Person("CAROL", "carol@example.com", "0x" + "d4" * 20, name="Carol")
    await alice.sign_in()

    escrow_id = await alice.create_escrow("Carol@Example.com", "42", "Photography session")

    section("Step 1: Carol signs up and lists her escrows")
    await carol.sign_in()
    escrows = await carol.list_escrows()
    assert any(str(e.id) == escrow_id for e in escrows), "Invited escrow must be listed"
    assert all(e.recipient_id is None for e in escrows if str(e.id) == escrow_id)
    print("  Listed by email, not yet bound")

    section("Step 2: Carol opens it")
    status = await carol.view(escrow_id)
    assert status["roles"] == ["RECIPIENT"]
    await print_audit_trail(carol, escrow_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_missing_wallet,
    3: scenario_3_dispute,
    4: scenario_4_outsider,
    5: scenario_5_lazy_binding,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "=" * 70)
        print("  SAFESWAP — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("=" * 70 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="SafeSwap Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-5). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
