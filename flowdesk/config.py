from __future__ import annotations

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowdesk.logging import get_logger

logger = get_logger(__name__)


class Environment(str, Enum):
    """Deployment environments the service knows how to run in."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


class Settings(BaseModel):
    """Runtime settings for the HTTP layer.

    Each field is read from the environment variable named by its alias,
    falling back to a ``.env`` file in the working directory.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    app_name: str = Field("Flowdesk", alias="APP_NAME")
    environment: Environment = Field(Environment.DEVELOPMENT, alias="ENVIRONMENT")
    test_mode: bool = Field(
        False,
        alias="TEST_MODE",
        description="Deterministic behaviour for the test suite",
    )
    seed_demo_data: bool = Field(
        False,
        alias="SEED_DEMO_DATA",
        description="Populate the in-memory services with a demo user and workspace",
    )

    # Session handling
    session_cookie_name: str = Field("flowdesk_session", alias="SESSION_COOKIE_NAME")
    redirect_cookie_name: str = Field("flowdesk_redirect", alias="REDIRECT_COOKIE_NAME")
    redirect_cookie_max_age: int = Field(300, alias="REDIRECT_COOKIE_MAX_AGE")
    login_path: str = Field("/login", alias="LOGIN_PATH")
    access_token_ttl_seconds: int = Field(3600, alias="ACCESS_TOKEN_TTL_SECONDS")
    refresh_token_ttl_seconds: int = Field(30 * 24 * 3600, alias="REFRESH_TOKEN_TTL_SECONDS")

    # Pagination
    default_page_size: int = Field(20, ge=1, alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(100, ge=1, alias="MAX_PAGE_SIZE")
    default_message_page_size: int = Field(50, ge=1, alias="DEFAULT_MESSAGE_PAGE_SIZE")

    # Board and task detail views
    board_column_limit: int = Field(20, ge=1, alias="BOARD_COLUMN_LIMIT")
    activity_limit: int = Field(50, ge=1, alias="ACTIVITY_LIMIT")
    due_soon_days: int = Field(3, ge=0, alias="DUE_SOON_DAYS")
    template_dir: Optional[str] = Field(
        None,
        alias="TEMPLATE_DIR",
        description="Override for the packaged fragment templates",
    )

    cors_allow_origins: List[str] = Field(default_factory=list, alias="CORS_ALLOW_ORIGINS")

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        """Process environment first, then the dotenv file, then defaults."""
        file_values = dotenv_values(env_file)
        values: Dict[str, Any] = {}
        for field_info in cls.model_fields.values():
            key = field_info.alias
            raw = os.environ.get(key, file_values.get(key))
            if raw is not None:
                values[key] = raw
        return cls.model_validate(values)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


_cached: Optional[Settings] = None


def get_settings() -> Settings:
    global _cached
    if _cached is None:
        _cached = Settings.from_env()
        logger.debug(
            "settings_loaded",
            environment=_cached.environment.value,
            test_mode=_cached.test_mode,
        )
    return _cached


def reset_settings_cache() -> None:
    global _cached
    _cached = None
