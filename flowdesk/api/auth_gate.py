from __future__ import annotations

import uuid
from typing import Optional, Protocol

from fastapi import Depends, Request

from flowdesk.api.deps import get_token_validator, get_user_resolver
from flowdesk.api.identity import Identity, materialize_identity
from flowdesk.config import get_settings
from flowdesk.logging import get_logger
from flowdesk.service.errors import AuthenticationError, ServiceError
from flowdesk.storage.models import ZERO_ID, TokenClaims

logger = get_logger(__name__)

HTMX_REQUEST_HEADER = "HX-Request"


class TokenValidator(Protocol):
    async def validate_token(self, token: str) -> TokenClaims: ...


class UserResolver(Protocol):
    async def resolve_user(self, external_id: str, username: str, email: str) -> uuid.UUID: ...


class LoginRequired(Exception):
    """Raised by the page gate; rendered as a login redirect."""

    def __init__(self, *, clear_session: bool = False) -> None:
        super().__init__("login required")
        self.clear_session = clear_session


def is_htmx(request: Request) -> bool:
    return request.headers.get(HTMX_REQUEST_HEADER, "").lower() == "true"


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    header = request.headers.get("Authorization")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("invalid authorization header format")
        return token.strip()
    return request.cookies.get(get_settings().session_cookie_name) or None


async def authenticate(
    request: Request, validator: TokenValidator, resolver: UserResolver
) -> Identity:
    token = extract_token(request)
    if not token:
        raise AuthenticationError("authentication required")
    try:
        claims = await validator.validate_token(token)
    except ServiceError:
        raise
    except Exception as exc:
        logger.warning("token_validation_failed", error_type=type(exc).__name__)
        raise AuthenticationError("invalid token") from exc

    user_id = claims.user_id
    if user_id == ZERO_ID:
        if not claims.external_user_id:
            raise AuthenticationError("invalid token")
        try:
            user_id = await resolver.resolve_user(
                claims.external_user_id, claims.username, claims.email
            )
        except Exception as exc:
            logger.warning("user_resolution_failed", external_user_id=claims.external_user_id)
            raise AuthenticationError("user not found", code="USER_NOT_FOUND") from exc

    identity = Identity(
        user_id=user_id,
        external_user_id=claims.external_user_id,
        username=claims.username,
        email=claims.email,
        roles=tuple(claims.roles),
        is_system_admin=claims.is_system_admin,
    )
    materialize_identity(request, identity)
    return identity


async def require_identity(
    request: Request,
    validator: TokenValidator = Depends(get_token_validator),
    resolver: UserResolver = Depends(get_user_resolver),
) -> Identity:
    """API gate: failures surface as a 401 envelope."""
    return await authenticate(request, validator, resolver)


async def optional_identity(
    request: Request,
    validator: TokenValidator = Depends(get_token_validator),
    resolver: UserResolver = Depends(get_user_resolver),
) -> Identity:
    try:
        return await authenticate(request, validator, resolver)
    except ServiceError:
        identity = Identity()
        materialize_identity(request, identity)
        return identity


async def require_page_identity(
    request: Request,
    validator: TokenValidator = Depends(get_token_validator),
    resolver: UserResolver = Depends(get_user_resolver),
) -> Identity:
    """Page and fragment gate: failures become a login redirect."""
    try:
        return await authenticate(request, validator, resolver)
    except ServiceError as exc:
        had_cookie = bool(request.cookies.get(get_settings().session_cookie_name))
        logger.info("page_login_required", path=request.url.path, reason=exc.message)
        raise LoginRequired(clear_session=had_cookie) from exc
