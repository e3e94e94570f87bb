from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, NamedTuple, Optional, Tuple

from flowdesk.logging import sanitize_error_message
from flowdesk.service.errors import ErrorKind, ServiceError


class Classification(NamedTuple):
    status: int
    code: str
    message: str


# The error taxonomy: kind -> (HTTP status, default code).
_KIND_TABLE: Dict[ErrorKind, Tuple[int, str]] = {
    ErrorKind.INVALID_INPUT: (400, "VALIDATION_ERROR"),
    ErrorKind.INVALID_CREDENTIALS: (401, "INVALID_CREDENTIALS"),
    ErrorKind.UNAUTHENTICATED: (401, "UNAUTHORIZED"),
    ErrorKind.TOKEN_EXPIRED: (401, "TOKEN_EXPIRED"),
    ErrorKind.INVALID_REFRESH_TOKEN: (401, "INVALID_REFRESH_TOKEN"),
    ErrorKind.FORBIDDEN: (403, "ACCESS_DENIED"),
    ErrorKind.NOT_FOUND: (404, "NOT_FOUND"),
    ErrorKind.ALREADY_EXISTS: (409, "ALREADY_EXISTS"),
    ErrorKind.CONFLICT: (409, "CONFLICT"),
    ErrorKind.INVALID_STATE: (422, "INVALID_STATE"),
    ErrorKind.SESSION_NOT_FOUND: (404, "SESSION_NOT_FOUND"),
    ErrorKind.INTERNAL: (500, "INTERNAL_ERROR"),
}

GENERIC_MESSAGE = "internal server error"


class ClassifiedError(Exception):
    """An error that has already been classified for one handler."""

    def __init__(self, classification: Classification) -> None:
        super().__init__(classification.message)
        self.classification = classification


def classify(
    err: BaseException,
    *,
    family: Optional[str] = None,
    fallback_code: Optional[str] = None,
) -> Classification:
    """Map an error to ``(status, code, message)``.

    An explicit code on the error wins; otherwise not-found and already-exists
    errors get ``<FAMILY>_NOT_FOUND``/``<FAMILY>_ALREADY_EXISTS`` and internal
    errors the handler's ``fallback_code``. Anything that is not a
    ``ServiceError`` is an unexpected 500 with a generic message.
    """
    if isinstance(err, ClassifiedError):
        return err.classification
    if not isinstance(err, ServiceError):
        return Classification(500, fallback_code or "INTERNAL_ERROR", GENERIC_MESSAGE)

    status, code = _KIND_TABLE.get(err.kind, (500, "INTERNAL_ERROR"))
    entity = err.family or family
    if err.code:
        code = err.code
    elif err.kind is ErrorKind.NOT_FOUND and entity:
        code = f"{entity.upper()}_NOT_FOUND"
    elif err.kind is ErrorKind.ALREADY_EXISTS and entity:
        code = f"{entity.upper()}_ALREADY_EXISTS"
    elif status >= 500 and fallback_code:
        code = fallback_code

    message = err.message
    if status >= 500:
        message = sanitize_error_message(message)
    return Classification(status, code, message)


@contextmanager
def translate_errors(
    family: Optional[str] = None, fallback_code: Optional[str] = None
) -> Iterator[None]:
    """Classify any failure of the wrapped service call for this handler.

    Only ``Exception`` is caught, so task cancellation propagates untouched.
    """
    try:
        yield
    except ClassifiedError:
        raise
    except Exception as exc:
        raise ClassifiedError(
            classify(exc, family=family, fallback_code=fallback_code)
        ) from exc
