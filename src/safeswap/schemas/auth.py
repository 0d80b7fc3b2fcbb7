"""Pydantic schemas for the Auth API."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from safeswap.domain.enums import CodePurpose


class SendCodeRequest(BaseModel):
    """Request body for asking a verification code by email."""

    email: EmailStr = Field(..., examples=["bob@example.com"])
    purpose: CodePurpose | None = Field(
        default=None,
        description="LOGIN or EMAIL_VERIFICATION. Defaults by the user's verified flag.",
    )


class SendCodeResponse(BaseModel):
    message: str = "Verification code sent"
    purpose: CodePurpose
    is_new_user: bool
    expires_at: datetime
    code: str | None = Field(
        default=None,
        description="Echoed back in development only, when no SMTP server is configured",
    )


class LoginRequest(BaseModel):
    """Request body for exchanging a code for a session."""

    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$", examples=["042917"])
    name: str | None = Field(
        default=None,
        max_length=100,
        description="Display name, applied on first (email verification) sign-in",
    )


class LinkWalletRequest(BaseModel):
    wallet_address: str = Field(
        ...,
        description="EVM wallet address (0x-prefixed, 42 chars)",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )


class UserPublic(BaseModel):
    """Public user projection. Never exposes internal fields."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    wallet_address: str | None = None
    is_verified: bool


class LoginResponse(BaseModel):
    message: str = "Signed in"
    token: str = Field(..., description="Session token, also set as an HTTP-only cookie")
    expires_at: datetime
    user: UserPublic


class MeResponse(BaseModel):
    user: UserPublic


class LogoutResponse(BaseModel):
    message: str = "Logged out"
