"""Authentication REST API routes.

Routes:
    POST   /api/v1/auth/send-code    — Email a one-time verification code
    POST   /api/v1/auth/login        — Exchange a code for a session cookie
    GET    /api/v1/auth/me           — The signed-in user
    POST   /api/v1/auth/logout       — End the session and clear the cookie
    POST   /api/v1/auth/link-wallet  — Link a wallet address to the account
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from safeswap.api.deps import (
    commit_and_defer,
    get_app_settings,
    get_auth_service,
    get_current_user,
    get_db_session,
    get_session_token,
)
from safeswap.config import Settings
from safeswap.infrastructure.database.orm_models import User
from safeswap.logging_config import get_logger
from safeswap.schemas.auth import (
    LinkWalletRequest,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    MeResponse,
    SendCodeRequest,
    SendCodeResponse,
    UserPublic,
)
from safeswap.services.auth_service import AuthService

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])
logger = get_logger(__name__)


@router.post(
    "/send-code",
    response_model=SendCodeResponse,
    summary="Send a verification code",
)
async def send_code(
    request: SendCodeRequest,
    background_tasks: BackgroundTasks,
    auth: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> SendCodeResponse:
    """Create the user if new and email them a fresh 6-digit code."""
    issued = await auth.request_code(request.email, request.purpose)
    await commit_and_defer(session, auth.effects, background_tasks)

    # Without a mail server there is no other way to read the code locally.
    echo_code = settings.is_development and not settings.smtp_configured
    return SendCodeResponse(
        purpose=issued.purpose,
        is_new_user=issued.is_new_user,
        expires_at=issued.expires_at,
        code=issued.code if echo_code else None,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Sign in with a verification code",
)
async def login(
    request: LoginRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    auth: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> LoginResponse:
    """Verify the code, start a session and set the session cookie."""
    result = await auth.verify_code(request.email, request.code, request.name)
    await commit_and_defer(session, auth.effects, background_tasks)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=result.token,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
        path="/",
    )
    return LoginResponse(
        token=result.token,
        expires_at=result.session_expires_at,
        user=UserPublic.model_validate(result.user),
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current user",
)
async def me(user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(user=UserPublic.model_validate(user))


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Sign out",
)
async def logout(
    response: Response,
    token: str | None = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> LogoutResponse:
    """Delete the session if there is one. Always succeeds."""
    await auth.logout(token)
    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return LogoutResponse()


@router.post(
    "/link-wallet",
    response_model=MeResponse,
    summary="Link a wallet to the account",
)
async def link_wallet(
    request: LinkWalletRequest,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> MeResponse:
    """Overwrite the account's wallet. 409 if another account already has it."""
    updated = await auth.link_wallet(user.id, request.wallet_address)
    return MeResponse(user=UserPublic.model_validate(updated))
