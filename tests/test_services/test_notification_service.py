"""Tests for NotificationService delivery behaviour."""

from __future__ import annotations

import smtplib
import uuid
from dataclasses import dataclass, field
from unittest.mock import MagicMock, patch

import pytest

from safeswap.config import Settings
from safeswap.services.notification_service import NotificationService


@dataclass
class FakeEscrow:
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    amount: str = "100"
    token_symbol: str = "USDC"
    description: str = "Logo design"


def _smtp_settings() -> Settings:
    return Settings(
        smtp_host="smtp.test",
        smtp_port=2525,
        smtp_user="mailer@safeswap.test",
        smtp_password="secret",
        smtp_from="no-reply@safeswap.test",
        app_public_url="https://safeswap.test",
    )


class TestWithoutSmtp:
    @pytest.mark.asyncio
    async def test_logs_instead_of_sending(self) -> None:
        svc = NotificationService(Settings(smtp_user="", smtp_password=""))
        with patch("smtplib.SMTP") as smtp:
            assert await svc.send_login_code("bob@example.com", "123456") is True
            smtp.assert_not_called()


class TestWithSmtp:
    @pytest.mark.asyncio
    async def test_sends_message(self) -> None:
        svc = NotificationService(_smtp_settings())
        escrow = FakeEscrow()

        with patch("smtplib.SMTP") as smtp_cls:
            client = MagicMock()
            smtp_cls.return_value.__enter__.return_value = client

            sent = await svc.send_escrow_received_email("bob@example.com", escrow, "alice@example.com")

        assert sent is True
        smtp_cls.assert_called_once_with("smtp.test", 2525, timeout=15)
        client.starttls.assert_called_once()
        client.login.assert_called_once_with("mailer@safeswap.test", "secret")
        message = client.send_message.call_args.args[0]
        assert message["To"] == "bob@example.com"
        assert message["Subject"] == "You received 100 USDC on SafeSwap"
        assert f"https://safeswap.test/escrow/{escrow.id}" in message.get_content()

    @pytest.mark.asyncio
    async def test_failure_returns_false(self) -> None:
        svc = NotificationService(_smtp_settings())

        with patch("smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, b"busy")):
            assert await svc.send_welcome_email("bob@example.com", "Bob") is False

    @pytest.mark.asyncio
    async def test_confirmation_subjects(self) -> None:
        svc = NotificationService(_smtp_settings())
        escrow = FakeEscrow()

        with patch("smtplib.SMTP") as smtp_cls:
            client = MagicMock()
            smtp_cls.return_value.__enter__.return_value = client

            await svc.send_escrow_confirmation_email("a@example.com", escrow, "CREATOR", True)
            await svc.send_escrow_confirmation_email(
                "b@example.com", escrow, "CREATOR", False, waiting_for="RECIPIENT"
            )

        subjects = [c.args[0]["Subject"] for c in client.send_message.call_args_list]
        assert subjects == ["Trade Completed: 100 USDC", "Creator Confirmed: 100 USDC"]
