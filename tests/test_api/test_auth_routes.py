"""Tests for the /api/v1/auth routes."""

from __future__ import annotations

import pytest

WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"


class TestSendCode:
    @pytest.mark.asyncio
    async def test_new_user_gets_verification_code(self, api_client, notifier) -> None:
        response = await api_client.post("/api/v1/auth/send-code", json={"email": "Bob@Example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["is_new_user"] is True
        assert body["purpose"] == "EMAIL_VERIFICATION"
        assert len(body["code"]) == 6
        notifier.send_login_code.assert_awaited_once()
        assert notifier.send_login_code.await_args.args[:2] == ("bob@example.com", body["code"])

    @pytest.mark.asyncio
    async def test_invalid_email_is_rejected(self, api_client) -> None:
        response = await api_client.post("/api/v1/auth/send-code", json={"email": "not-an-email"})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_sets_cookie(self, api_client, notifier) -> None:
        sent = await api_client.post("/api/v1/auth/send-code", json={"email": "bob@example.com"})
        code = sent.json()["code"]

        response = await api_client.post(
            "/api/v1/auth/login",
            json={"email": "bob@example.com", "code": code, "name": "Bob"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == "bob@example.com"
        assert body["user"]["name"] == "Bob"
        assert body["user"]["is_verified"] is True
        assert "safeswap_token" in response.headers["set-cookie"]
        assert "httponly" in response.headers["set-cookie"].lower()
        notifier.send_welcome_email.assert_awaited_once_with("bob@example.com", "Bob")

    @pytest.mark.asyncio
    async def test_wrong_code(self, api_client) -> None:
        sent = await api_client.post("/api/v1/auth/send-code", json={"email": "bob@example.com"})
        wrong = "000000" if sent.json()["code"] != "000000" else "111111"

        response = await api_client.post(
            "/api/v1/auth/login", json={"email": "bob@example.com", "code": wrong}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_CODE"

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, api_client) -> None:
        sent = await api_client.post("/api/v1/auth/send-code", json={"email": "bob@example.com"})
        body = {"email": "bob@example.com", "code": sent.json()["code"]}

        assert (await api_client.post("/api/v1/auth/login", json=body)).status_code == 200
        again = await api_client.post("/api/v1/auth/login", json=body)
        assert again.status_code == 400


class TestSession:
    @pytest.mark.asyncio
    async def test_me_with_bearer(self, api_client, sign_in) -> None:
        headers = await sign_in("alice@example.com", "Alice")

        response = await api_client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_me_with_cookie(self, api_client) -> None:
        sent = await api_client.post("/api/v1/auth/send-code", json={"email": "bob@example.com"})
        await api_client.post(
            "/api/v1/auth/login", json={"email": "bob@example.com", "code": sent.json()["code"]}
        )

        response = await api_client.get("/api/v1/auth/me")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_me_without_token(self, api_client) -> None:
        response = await api_client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_garbage_token(self, api_client) -> None:
        response = await api_client.get(
            "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_logout_ends_session(self, api_client, sign_in) -> None:
        headers = await sign_in("alice@example.com")

        response = await api_client.post("/api/v1/auth/logout", headers=headers)
        assert response.status_code == 200

        after = await api_client.get("/api/v1/auth/me", headers=headers)
        assert after.status_code == 401
        assert after.json()["error"] == "INVALID_SESSION"

    @pytest.mark.asyncio
    async def test_logout_without_session_still_succeeds(self, api_client) -> None:
        response = await api_client.post("/api/v1/auth/logout")
        assert response.status_code == 200


class TestLinkWallet:
    @pytest.mark.asyncio
    async def test_link_wallet(self, api_client, sign_in) -> None:
        headers = await sign_in("alice@example.com")

        response = await api_client.post(
            "/api/v1/auth/link-wallet", json={"wallet_address": WALLET}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["user"]["wallet_address"] == WALLET

    @pytest.mark.asyncio
    async def test_wallet_taken_by_another_account(self, api_client, sign_in) -> None:
        alice = await sign_in("alice@example.com")
        bob = await sign_in("bob@example.com")
        await api_client.post("/api/v1/auth/link-wallet", json={"wallet_address": WALLET}, headers=alice)

        response = await api_client.post(
            "/api/v1/auth/link-wallet", json={"wallet_address": WALLET}, headers=bob
        )

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_invalid_wallet(self, api_client, sign_in) -> None:
        headers = await sign_in("alice@example.com")

        response = await api_client.post(
            "/api/v1/auth/link-wallet", json={"wallet_address": "0x123"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
