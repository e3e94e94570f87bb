from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Protocol

from fastapi import Request
from fastapi.responses import HTMLResponse

from flowdesk.api.classifier import classify
from flowdesk.logging import get_logger
from flowdesk.service.errors import ErrorKind, ServiceError

logger = get_logger(__name__)

HTML_CONTENT_TYPE = "text/html; charset=utf-8"


class TemplateRenderer(Protocol):
    def render(self, name: str, data: Mapping[str, Any], request: Any = None) -> str: ...


class FragmentError(Exception):
    """A fragment failure answered with a plain-text body."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


_FRAGMENT_STATUS = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 404,
}


@contextmanager
def fragment_errors(not_found: str = "Page not found") -> Iterator[None]:
    """Turn service failures inside a fragment handler into ``FragmentError``.

    Not-found and forbidden errors both read as ``not_found``, invalid input
    keeps the service message and everything else is an opaque 500.
    """
    try:
        yield
    except FragmentError:
        raise
    except ServiceError as exc:
        status_code = _FRAGMENT_STATUS.get(exc.kind, 500)
        if status_code == 404:
            raise FragmentError(404, not_found) from exc
        if status_code == 500:
            logger.error("fragment_failed", error_type=type(exc).__name__, exc_info=exc)
            raise FragmentError(500, "Internal server error") from exc
        raise FragmentError(status_code, classify(exc).message) from exc
    except Exception as exc:
        logger.error("fragment_failed", error_type=type(exc).__name__, exc_info=exc)
        raise FragmentError(500, "Internal server error") from exc


def render_fragment(
    renderer: TemplateRenderer,
    name: str,
    data: Mapping[str, Any],
    request: Request,
    *,
    status_code: int = 200,
    headers: Optional[Mapping[str, str]] = None,
) -> HTMLResponse:
    try:
        body = renderer.render(name, data, request)
    except Exception as exc:
        logger.error("template_render_failed", template=name, exc_info=exc)
        raise FragmentError(500, "Internal server error") from exc
    response = HTMLResponse(body, status_code=status_code, headers=dict(headers or {}))
    response.headers["Content-Type"] = HTML_CONTENT_TYPE
    return response
