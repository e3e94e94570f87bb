from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Any, MutableMapping, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

# Keys whose values are credentials: access/refresh tokens, auth codes, cookies.
_SECRET_KEYS = ("token", "authorization", "cookie", "secret", "password", "code_verifier")
# Keys whose values identify a person; kept partially for debugging.
_CONTACT_KEYS = ("email",)


def bind_request_context(request_id: Optional[str], method: str, path: str) -> str:
    """Start a fresh log context for one request; returns the request id in use."""
    rid = request_id or uuid.uuid4().hex
    clear_contextvars()
    bind_contextvars(request_id=rid, method=method, path=path)
    return rid


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "***"
    return value[:2] + "***" + value[-2:]


def _redact(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in list(event_dict.items()):
        if not isinstance(value, str):
            continue
        lowered = key.lower()
        if any(marker in lowered for marker in _SECRET_KEYS):
            event_dict[key] = "[redacted]"
        elif any(marker in lowered for marker in _CONTACT_KEYS):
            event_dict[key] = _mask(value)
    return event_dict


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the structlog pipeline.

    ``fmt`` is ``json`` for one JSON object per line, or ``console`` for
    coloured key/value output while developing.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact,
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            _level(level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FORMAT", "json").lower())


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


_LEAKY_PATTERNS = [
    re.compile(p)
    for p in (
        r"(?i)\b(select|insert|update|delete)\b\s+.{0,60}",
        r"(?i)(?:/[\w.-]+){2,}\.(?:py|html|go)\b",
        r"(?i)(token|secret|password|cookie)\s*[:=]\s*\S+",
        r"(?i)traceback \(most recent call last\).*",
    )
]


def sanitize_error_message(message: str, *, limit: int = 300) -> str:
    """Make an internal error message safe to echo to a client."""
    if not message:
        return "An error occurred"
    cleaned = message
    for pattern in _LEAKY_PATTERNS:
        cleaned = pattern.sub("[redacted]", cleaned)
    return cleaned if len(cleaned) <= limit else cleaned[: limit - 3] + "..."
