from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from fastapi import Request

from flowdesk.service.errors import AuthenticationError, ValidationError
from flowdesk.storage.models import ZERO_ID

# Keys under which the gate stores the caller in the request context map.
USER_ID_KEY = "user_id"
EXTERNAL_USER_ID_KEY = "external_user_id"
USERNAME_KEY = "username"
EMAIL_KEY = "email"
ROLES_KEY = "roles"
SYSTEM_ADMIN_KEY = "is_system_admin"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as seen by handlers for one request."""

    user_id: uuid.UUID = ZERO_ID
    external_user_id: str = ""
    username: str = ""
    email: str = ""
    roles: Tuple[str, ...] = field(default_factory=tuple)
    is_system_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id != ZERO_ID

    def require(self) -> "Identity":
        if not self.is_authenticated:
            raise AuthenticationError("authentication required")
        return self


def request_context(request: Request) -> Dict[str, Any]:
    """The request-scoped context map, created on first use."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = {}
        request.state.context = context
    return context


def materialize_identity(request: Request, identity: Identity) -> None:
    context = request_context(request)
    context[USER_ID_KEY] = identity.user_id
    context[EXTERNAL_USER_ID_KEY] = identity.external_user_id
    context[USERNAME_KEY] = identity.username
    context[EMAIL_KEY] = identity.email
    context[ROLES_KEY] = identity.roles
    context[SYSTEM_ADMIN_KEY] = identity.is_system_admin


def identity_from_scope(request: Request) -> Identity:
    """Read the caller back out of the context map; empty when absent."""
    context = request_context(request)
    user_id = context.get(USER_ID_KEY)
    if not isinstance(user_id, uuid.UUID):
        return Identity()
    return Identity(
        user_id=user_id,
        external_user_id=context.get(EXTERNAL_USER_ID_KEY, ""),
        username=context.get(USERNAME_KEY, ""),
        email=context.get(EMAIL_KEY, ""),
        roles=tuple(context.get(ROLES_KEY, ())),
        is_system_admin=bool(context.get(SYSTEM_ADMIN_KEY, False)),
    )


def parse_id(raw: str, field_name: str) -> uuid.UUID:
    """Parse a path or body identifier; failures carry ``INVALID_<FIELD>_ID``."""
    try:
        return uuid.UUID(str(raw))
    except ValueError as exc:
        raise ValidationError(
            f"invalid {field_name.replace('_', ' ')} ID format",
            code=f"INVALID_{field_name.upper()}_ID",
        ) from exc
