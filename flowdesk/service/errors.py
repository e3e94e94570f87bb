from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds a collaborator can report.

    The HTTP status and error code for each kind are decided in exactly one
    place, ``flowdesk.api.classifier.classify``.
    """

    INVALID_INPUT = "invalid_input"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_EXPIRED = "token_expired"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"
    INVALID_STATE = "invalid_state"
    SESSION_NOT_FOUND = "session_not_found"
    INTERNAL = "internal"


class ServiceError(Exception):
    """Base class for errors raised by services and request validators.

    ``kind`` selects the classification; ``family`` names the entity involved
    (``workspace``, ``chat``...) so not-found and already-exists errors get a
    family-specific code; ``code`` overrides the derived code entirely.
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        code: Optional[str] = None,
        family: Optional[str] = None,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.code = code
        self.family = family
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request shape or value is invalid (400)."""
    kind = ErrorKind.INVALID_INPUT


class InvalidCredentialsError(ServiceError):
    """Identity provider rejected the supplied credentials (401)."""
    kind = ErrorKind.INVALID_CREDENTIALS


class AuthenticationError(ServiceError):
    """Caller is not authenticated (401)."""
    kind = ErrorKind.UNAUTHENTICATED


class TokenExpiredError(AuthenticationError):
    """Access token is past its expiry (401)."""
    kind = ErrorKind.TOKEN_EXPIRED


class InvalidRefreshTokenError(ServiceError):
    """Refresh token is unknown, revoked or expired (401)."""
    kind = ErrorKind.INVALID_REFRESH_TOKEN


class ForbiddenError(ServiceError):
    """Caller lacks the role or ownership the operation needs (403)."""
    kind = ErrorKind.FORBIDDEN


class NotFoundError(ServiceError):
    """Requested entity does not exist (404)."""
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(ServiceError):
    """Entity being created already exists (409)."""
    kind = ErrorKind.ALREADY_EXISTS


class ConflictError(ServiceError):
    """Operation conflicts with the current state of the entity (409)."""
    kind = ErrorKind.CONFLICT


class InvalidStateError(ServiceError):
    """Operation is not valid for the entity's lifecycle state (422)."""
    kind = ErrorKind.INVALID_STATE


class SessionNotFoundError(ServiceError):
    """No active session exists for the user."""
    kind = ErrorKind.SESSION_NOT_FOUND


class ServerError(ServiceError):
    """Collaborator failed internally (500)."""
    kind = ErrorKind.INTERNAL


__all__ = [
    "ErrorKind",
    "ServiceError",
    "ValidationError",
    "InvalidCredentialsError",
    "AuthenticationError",
    "TokenExpiredError",
    "InvalidRefreshTokenError",
    "ForbiddenError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "InvalidStateError",
    "SessionNotFoundError",
    "ServerError",
]
