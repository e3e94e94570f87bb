from __future__ import annotations

import secrets
import uuid
from datetime import timedelta
from typing import Optional

from flowdesk.config import Settings
from flowdesk.logging import get_logger
from flowdesk.service.errors import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    SessionNotFoundError,
    TokenExpiredError,
)
from flowdesk.storage.memory import MemoryStore
from flowdesk.storage.models import (
    LoginResult,
    Session,
    TokenClaims,
    TokenPair,
    User,
    utcnow,
)

logger = get_logger(__name__)


class MemoryAuthService:
    """Identity provider stand-in backed by the in-memory store.

    Authorization codes are registered up front and exchanged once for an
    opaque access/refresh token pair. The same object validates access
    tokens, resolves external identities and looks users up, so it can be
    wired as every auth-related collaborator at once.
    """

    def __init__(self, store: MemoryStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def register_code(self, code: str, user: User) -> None:
        """Make ``code`` exchangeable for a session of ``user``."""
        with self.store.lock:
            self.store.auth_codes[code] = user.id

    def issue_session(self, user_id: uuid.UUID, previous: Optional[Session] = None) -> Session:
        """New token pair carrying the user's identity as of now.

        When the user record is gone the identity of ``previous`` is carried over.
        """
        now = utcnow()
        session = Session(
            user_id=user_id,
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(48),
            access_expires_at=now + timedelta(seconds=self.settings.access_token_ttl_seconds),
            refresh_expires_at=now + timedelta(seconds=self.settings.refresh_token_ttl_seconds),
        )
        source = self.store.get_user(user_id) or previous
        if source is not None:
            session.username = source.username
            session.email = source.email
            session.external_id = source.external_id
            session.is_system_admin = source.is_system_admin
        self.store.save_session(session)
        return session

    def _pair(self, session: Session) -> TokenPair:
        return TokenPair(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=self.settings.access_token_ttl_seconds,
        )

    async def login(self, code: str, redirect_uri: str) -> LoginResult:
        with self.store.lock:
            user_id = self.store.auth_codes.get(code)
            user = self.store.get_user(user_id) if user_id is not None else None
        if user is None:
            logger.info("login_rejected", redirect_uri=redirect_uri)
            raise InvalidCredentialsError("invalid credentials")
        session = self.issue_session(user.id)
        logger.info("login_succeeded", user_id=str(user.id))
        return LoginResult(user=user, tokens=self._pair(session))

    async def logout(self, user_id: uuid.UUID) -> None:
        removed = self.store.delete_user_sessions(user_id)
        if not removed:
            raise SessionNotFoundError("session not found")
        logger.info("logout_succeeded", user_id=str(user_id), sessions=removed)

    async def refresh_token(self, token: str) -> TokenPair:
        session = self.store.get_session_by_refresh(token)
        if session is None or session.refresh_expires_at <= utcnow():
            raise InvalidRefreshTokenError("invalid refresh token")
        self.store.delete_session(session)
        rotated = self.issue_session(session.user_id, previous=session)
        return self._pair(rotated)

    async def validate_token(self, token: str) -> TokenClaims:
        session = self.store.get_session_by_access(token)
        if session is None:
            raise AuthenticationError("invalid token")
        if session.access_expires_at <= utcnow():
            raise TokenExpiredError("token has expired")
        return TokenClaims(
            user_id=session.user_id,
            external_user_id=session.external_id,
            username=session.username,
            email=session.email,
            roles=["admin"] if session.is_system_admin else ["user"],
            is_system_admin=session.is_system_admin,
            expires_at=session.access_expires_at,
        )

    async def resolve_user(self, external_id: str, username: str, email: str) -> uuid.UUID:
        user = self.store.get_user_by_external_id(external_id)
        if user is None:
            user = self.store.create_user(username or external_id, email, external_id=external_id)
        return user.id

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self.store.get_user(user_id)

    async def find_by_external_id(self, external_id: str) -> Optional[User]:
        return self.store.get_user_by_external_id(external_id)
