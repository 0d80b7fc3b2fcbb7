"""MCP Tool definitions for SafeSwap.

These tools expose the escrow functionality via the Model Context Protocol,
allowing AI agents to discover and call them programmatically.

Tools:
    - request_login_code: Email a one-time code
    - login: Exchange the code for a session token
    - create_escrow: Create a new escrow
    - list_escrows: List the caller's escrows with stats
    - check_status: Status, flags and allowed next events
    - set_wallet: Set the caller's wallet on an escrow
    - confirm_escrow: Confirm as creator or recipient
    - raise_dispute: Raise a dispute
    - post_message: Leave a note on an escrow

Authenticated tools take the session token returned by `login`.
The MCP server is mounted into FastAPI at /mcp via app.mount().
Each tool manages its own database session (no FastAPI Depends available)
and runs its deferred effects itself once the session has committed.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from safeswap.config import get_settings
from safeswap.domain.exceptions import SafeSwapError
from safeswap.infrastructure.database.engine import get_session_factory
from safeswap.logging_config import get_logger, setup_logging
from safeswap.services.auth_service import AuthService
from safeswap.services.effects import DeferredEffects
from safeswap.services.escrow_service import EscrowService

if TYPE_CHECKING:
    from safeswap.infrastructure.database.orm_models import Escrow

logger = get_logger(__name__)

# Initialize the MCP server
# This will be mounted into the FastAPI app in main.py
mcp = FastMCP(
    "SafeSwap Escrow",
    json_response=True,
)


def _error(tool: str, exc: Exception) -> dict:
    """Tool-call failures are returned, never raised, so agents can read them."""
    if isinstance(exc, SafeSwapError):
        logger.warning("mcp.tool_rejected", tool=tool, code=exc.code)
        return {"error": exc.code, "message": exc.message}
    logger.exception("mcp.tool_error", tool=tool)
    return {"error": "INTERNAL_ERROR", "message": str(exc)}


def _escrow_summary(escrow: Escrow) -> dict:
    return {
        "escrow_id": str(escrow.id),
        "status": escrow.status,
        "amount": escrow.amount,
        "token_symbol": escrow.token_symbol,
        "recipient_email": escrow.recipient_email,
        "buyer_confirmed": escrow.buyer_confirmed,
        "seller_confirmed": escrow.seller_confirmed,
        "disputed": escrow.disputed,
        "creator_wallet": escrow.creator_wallet,
        "recipient_wallet": escrow.recipient_wallet,
        "settlement_tx_hash": escrow.settlement_tx_hash,
    }


@mcp.tool()
async def request_login_code(email: str) -> dict:
    """Email a one-time 6-digit sign-in code.

    Args:
        email: The email address to sign in with.

    Returns:
        The code purpose and its expiry. Next step: call `login` with the code.
    """
    settings = get_settings()
    effects = DeferredEffects()
    try:
        async with get_session_factory()() as session:
            auth = AuthService(session, effects=effects)
            issued = await auth.request_code(email)
            await session.commit()
        await effects.run()

        result = {
            "purpose": issued.purpose.value,
            "expires_at": issued.expires_at.isoformat(),
            "message": "Code sent. Next step: call login with the code.",
        }
        if settings.is_development and not settings.smtp_configured:
            result["code"] = issued.code
        return result
    except Exception as exc:
        return _error("request_login_code", exc)


@mcp.tool()
async def login(email: str, code: str, name: str = "") -> dict:
    """Exchange a sign-in code for a session token.

    Args:
        email: The email the code was sent to.
        code: The 6-digit code.
        name: Display name, applied on first sign-in.

    Returns:
        session_token to pass to every other tool, plus the user profile.
    """
    effects = DeferredEffects()
    try:
        async with get_session_factory()() as session:
            auth = AuthService(session, effects=effects)
            result = await auth.verify_code(email, code, name or None)
            await session.commit()
        await effects.run()

        return {
            "session_token": result.token,
            "expires_at": result.session_expires_at.isoformat(),
            "user": {
                "id": str(result.user.id),
                "email": result.user.email,
                "name": result.user.name,
                "is_verified": result.user.is_verified,
            },
        }
    except Exception as exc:
        return _error("login", exc)


@mcp.tool()
async def create_escrow(
    session_token: str,
    token_address: str,
    token_symbol: str,
    amount: str,
    recipient_email: str,
    description: str,
    terms: str = "",
) -> dict:
    """Create an escrow that sends tokens to a recipient identified by email.

    Args:
        session_token: Token returned by `login`.
        token_address: ERC-20 contract address, or the zero address for ETH.
        token_symbol: e.g. "USDC".
        amount: Decimal amount as a string, e.g. "100" or "0.25".
        recipient_email: Who receives the funds.
        description: What the trade is about.
        terms: Optional free-text terms.

    Returns:
        Escrow details including the escrow_id you'll need for future calls.
    """
    effects = DeferredEffects()
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            svc = EscrowService(session, effects=effects)
            escrow = await svc.create_escrow(
                creator=user,
                token_address=token_address,
                token_symbol=token_symbol,
                amount=amount,
                recipient_email=recipient_email,
                description=description,
                terms=terms or None,
            )
            await session.commit()
        await effects.run()

        return {
            **_escrow_summary(escrow),
            "message": "Escrow created. Next step: set your wallet, then confirm.",
        }
    except Exception as exc:
        return _error("create_escrow", exc)


@mcp.tool()
async def list_escrows(session_token: str) -> dict:
    """List escrows you created or were invited to, newest first.

    Args:
        session_token: Token returned by `login`.
    """
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            escrows, stats = await EscrowService(session).list_escrows(user)
            return {
                "escrows": [_escrow_summary(e) for e in escrows],
                "stats": {
                    "total": stats.total,
                    "active": stats.active,
                    "completed": stats.completed,
                    "disputed": stats.disputed,
                    "total_value": str(stats.total_value),
                },
            }
    except Exception as exc:
        return _error("list_escrows", exc)


@mcp.tool()
async def check_status(session_token: str, escrow_id: str) -> dict:
    """Check the current status of an escrow.

    Args:
        session_token: Token returned by `login`.
        escrow_id: UUID of the escrow.

    Returns:
        Status, confirmation flags, missing wallets and allowed next events.
    """
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            status = await EscrowService(session).get_status(uuid.UUID(escrow_id), user)
            # Viewing may bind the invited recipient.
            await session.commit()
            return status
    except Exception as exc:
        return _error("check_status", exc)


@mcp.tool()
async def set_wallet(session_token: str, escrow_id: str, wallet_address: str) -> dict:
    """Set the wallet you send from (creator) or receive into (recipient).

    Args:
        session_token: Token returned by `login`.
        escrow_id: UUID of the escrow.
        wallet_address: EVM address, 0x-prefixed, 42 chars.
    """
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            escrow = await EscrowService(session).set_wallet(
                uuid.UUID(escrow_id), user, wallet_address
            )
            await session.commit()
            return {**_escrow_summary(escrow), "message": "Wallet saved."}
    except Exception as exc:
        return _error("set_wallet", exc)


@mcp.tool()
async def confirm_escrow(session_token: str, escrow_id: str) -> dict:
    """Confirm the trade. Once both parties confirm (with wallets set) it completes.

    Args:
        session_token: Token returned by `login`.
        escrow_id: UUID of the escrow.

    Returns:
        Updated escrow; settlement_tx_hash is filled in once it completes.
    """
    effects = DeferredEffects()
    try:
        factory = get_session_factory()
        async with factory() as session:
            user = await AuthService(session).verify_token(session_token)
            svc = EscrowService(session, effects=effects, session_factory=factory)
            escrow = await svc.confirm(uuid.UUID(escrow_id), user)
            await session.commit()
        await effects.run()

        async with factory() as session:
            escrow = await EscrowService(session).get_escrow(uuid.UUID(escrow_id), user)
            return {
                **_escrow_summary(escrow),
                "message": (
                    "Escrow completed and settled."
                    if escrow.status == "COMPLETED"
                    else "Confirmation recorded. Waiting for the other party."
                ),
            }
    except Exception as exc:
        return _error("confirm_escrow", exc)


@mcp.tool()
async def raise_dispute(session_token: str, escrow_id: str, reason: str = "") -> dict:
    """Raise a dispute. The escrow stops until it is resolved outside SafeSwap.

    Args:
        session_token: Token returned by `login`.
        escrow_id: UUID of the escrow.
        reason: Why you are disputing.
    """
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            escrow = await EscrowService(session).dispute(
                uuid.UUID(escrow_id), user, reason or None
            )
            await session.commit()
            return {
                **_escrow_summary(escrow),
                "dispute_reason": escrow.dispute_reason,
                "message": f"Dispute raised. Escrow is now {escrow.status}.",
            }
    except Exception as exc:
        return _error("raise_dispute", exc)


@mcp.tool()
async def post_message(session_token: str, escrow_id: str, content: str) -> dict:
    """Leave a message on an escrow for the other party.

    Args:
        session_token: Token returned by `login`.
        escrow_id: UUID of the escrow.
        content: Message text (1-5000 characters).
    """
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).verify_token(session_token)
            message = await EscrowService(session).post_message(
                uuid.UUID(escrow_id), user, content
            )
            await session.commit()
            return {
                "message_id": str(message.id),
                "escrow_id": str(message.escrow_id),
                "created_at": message.created_at.isoformat(),
            }
    except Exception as exc:
        return _error("post_message", exc)


if __name__ == "__main__":
    # Standalone server, e.g. stdio for a local agent host.
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    mcp.run(transport=settings.mcp_transport)
