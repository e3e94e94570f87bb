from __future__ import annotations

import uuid
from typing import Optional, Protocol

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_auth_service, get_user_repository
from flowdesk.api.identity import Identity
from flowdesk.api.responses import respond_ok
from flowdesk.api.schemas import (
    Envelope,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from flowdesk.api.validation import validate_login, validate_refresh
from flowdesk.config import get_settings
from flowdesk.logging import get_logger
from flowdesk.service.errors import NotFoundError, SessionNotFoundError
from flowdesk.storage.models import LoginResult, TokenPair, User

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])


class AuthService(Protocol):
    async def login(self, code: str, redirect_uri: str) -> LoginResult: ...

    async def logout(self, user_id: uuid.UUID) -> None: ...

    async def refresh_token(self, token: str) -> TokenPair: ...


class UserRepository(Protocol):
    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...

    async def find_by_external_id(self, external_id: str) -> Optional[User]: ...


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )


def _set_session_cookie(response: JSONResponse, tokens: TokenPair) -> None:
    response.set_cookie(
        get_settings().session_cookie_name,
        tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        samesite="lax",
        path="/",
    )


@router.post("/auth/login", response_model=Envelope)
async def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Exchange an identity-provider authorization code for a token pair.

    Also sets the session cookie so page routes are authenticated.
    """
    code, redirect_uri = validate_login(body.code, body.redirect_uri)
    with translate_errors(fallback_code="LOGIN_FAILED"):
        result = await auth.login(code, redirect_uri)
    response = respond_ok(
        LoginResponse(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            expires_in=result.tokens.expires_in,
            user=user_to_response(result.user),
        )
    )
    _set_session_cookie(response, result.tokens)
    return response


@router.post("/auth/logout", response_model=Envelope)
async def logout(
    identity: Identity = Depends(require_identity),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke the caller's sessions. A caller with no session is already logged out."""
    with translate_errors(fallback_code="LOGOUT_FAILED"):
        try:
            await auth.logout(identity.user_id)
        except SessionNotFoundError:
            logger.info("logout_without_session", user_id=str(identity.user_id))
    response = respond_ok(LogoutResponse(message="Logged out successfully"))
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return response


@router.get("/auth/me", response_model=Envelope)
async def me(
    identity: Identity = Depends(require_identity),
    users: UserRepository = Depends(get_user_repository),
):
    with translate_errors("user", "GET_USER_FAILED"):
        user = await users.find_by_id(identity.user_id)
        if user is None:
            raise NotFoundError("user not found", family="user")
    return respond_ok(user_to_response(user))


@router.post("/auth/refresh", response_model=Envelope)
async def refresh(body: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    token = validate_refresh(body.refresh_token)
    with translate_errors(fallback_code="REFRESH_FAILED"):
        tokens = await auth.refresh_token(token)
    response = respond_ok(
        TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
        )
    )
    _set_session_cookie(response, tokens)
    return response
