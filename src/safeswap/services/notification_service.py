"""Notification Service — transactional email for auth and escrow events.

Without SMTP credentials every message is logged instead of sent, so local
development and tests never need a mail server. Sending runs the blocking
smtplib client in a worker thread.

Every public method returns True on success (or when logged instead of sent)
and False on failure. None of them raise: a lost email must never undo a
committed escrow transition.
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

from safeswap.config import Settings, get_settings
from safeswap.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

logger = get_logger(__name__)

BRAND = "SafeSwap"


class EscrowSummary(Protocol):
    """Escrow fields used in email bodies. The ORM model satisfies it."""

    id: uuid.UUID
    amount: str
    token_symbol: str
    description: str


class NotificationService:
    """Sends (or logs) the five transactional emails."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Auth emails
    # ------------------------------------------------------------------

    async def send_login_code(self, email: str, code: str, name: str | None = None) -> bool:
        greeting = f"Hi {name}," if name else "Hi,"
        body = (
            f"{greeting}\n\n"
            f"Your {BRAND} verification code is: {code}\n\n"
            f"It expires in {self._settings.verification_code_ttl_minutes} minutes. "
            "If you did not request it, you can ignore this email.\n"
        )
        return await self._deliver(
            kind="login_code",
            to=email,
            subject=f"Your {BRAND} login code: {code}",
            body=body,
        )

    async def send_welcome_email(self, email: str, name: str | None = None) -> bool:
        greeting = f"Welcome {name}!" if name else "Welcome!"
        body = (
            f"{greeting}\n\n"
            f"Your email is verified. You can now create escrows and trade securely "
            f"on {BRAND}:\n{self._settings.app_public_url}\n"
        )
        return await self._deliver(
            kind="welcome",
            to=email,
            subject=f"Welcome to {BRAND}",
            body=body,
        )

    # ------------------------------------------------------------------
    # Escrow emails
    # ------------------------------------------------------------------

    async def send_escrow_created_email(self, email: str, escrow: EscrowSummary) -> bool:
        body = (
            f"Your escrow for {escrow.amount} {escrow.token_symbol} was created.\n\n"
            f"Description: {escrow.description}\n"
            f"Track it here: {self._escrow_url(escrow)}\n"
        )
        return await self._deliver(
            kind="escrow_created",
            to=email,
            subject=f"Escrow Created: {escrow.amount} {escrow.token_symbol}",
            body=body,
            escrow_id=str(escrow.id),
        )

    async def send_escrow_received_email(
        self, email: str, escrow: EscrowSummary, creator_email: str
    ) -> bool:
        body = (
            f"{creator_email} sent you {escrow.amount} {escrow.token_symbol} "
            f"through a {BRAND} escrow.\n\n"
            f"Description: {escrow.description}\n"
            f"Sign in with this email address to view and confirm it:\n"
            f"{self._escrow_url(escrow)}\n"
        )
        return await self._deliver(
            kind="escrow_received",
            to=email,
            subject=f"You received {escrow.amount} {escrow.token_symbol} on {BRAND}",
            body=body,
            escrow_id=str(escrow.id),
        )

    async def send_escrow_confirmation_email(
        self,
        email: str,
        escrow: EscrowSummary,
        confirmer_role: str,
        is_completed: bool,
        waiting_for: str | None = None,
    ) -> bool:
        if is_completed:
            subject = f"Trade Completed: {escrow.amount} {escrow.token_symbol}"
            status_line = "Both parties confirmed. The funds are being released."
        else:
            subject = f"{confirmer_role.title()} Confirmed: {escrow.amount} {escrow.token_symbol}"
            status_line = f"The {confirmer_role.lower()} confirmed."
            if waiting_for:
                status_line += f" Waiting for the {waiting_for.lower()}."

        body = (
            f"{status_line}\n\n"
            f"Escrow: {escrow.description}\n"
            f"Details: {self._escrow_url(escrow)}\n"
        )
        return await self._deliver(
            kind="escrow_confirmation",
            to=email,
            subject=subject,
            body=body,
            escrow_id=str(escrow.id),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _escrow_url(self, escrow: EscrowSummary) -> str:
        return f"{self._settings.app_public_url.rstrip('/')}/escrow/{escrow.id}"

    async def _deliver(
        self,
        kind: str,
        to: str,
        subject: str,
        body: str,
        **log_fields: str,
    ) -> bool:
        if not self._settings.smtp_configured:
            logger.info("email.logged", kind=kind, to=to, subject=subject, **log_fields)
            return True

        message = self._build_message(to, subject, body)
        try:
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email.send_failed", kind=kind, to=to, error=str(exc), **log_fields)
            return False

        logger.info("email.sent", kind=kind, to=to, **log_fields)
        return True

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        sender = self._settings.smtp_from or self._settings.smtp_user
        message = EmailMessage()
        message["From"] = f"{BRAND} <{sender}>"
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        ) as smtp:
            smtp.starttls()
            smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
