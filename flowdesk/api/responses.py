from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from flowdesk.api.classifier import classify
from flowdesk.api.schemas import Envelope, ErrorBody


def respond_ok(data: Any = None, *, status_code: int = 200) -> JSONResponse:
    envelope = Envelope(success=True, data=data)
    return JSONResponse(status_code=status_code, content=envelope.to_payload())


def respond_created(data: Any = None) -> JSONResponse:
    return respond_ok(data, status_code=201)


def respond_no_content() -> Response:
    """204 with an empty body; no envelope."""
    return Response(status_code=204)


def respond_error_with_code(
    status_code: int,
    code: str,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    envelope = Envelope(success=False, error=ErrorBody(code=code, message=message))
    return JSONResponse(
        status_code=status_code,
        content=envelope.to_payload(),
        headers=dict(headers) if headers else None,
    )


def respond_error(err: BaseException, *, family: Optional[str] = None) -> JSONResponse:
    """Failure envelope with status and code taken from the classifier."""
    status_code, code, message = classify(err, family=family)
    return respond_error_with_code(status_code, code, message)
