from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flowdesk.api.auth_gate import LoginRequired, is_htmx
from flowdesk.api.classifier import GENERIC_MESSAGE, ClassifiedError, classify
from flowdesk.api.rendering import FragmentError
from flowdesk.api.responses import respond_error, respond_error_with_code
from flowdesk.config import get_settings
from flowdesk.logging import get_logger
from flowdesk.service.errors import ServiceError

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "INVALID_REQUEST",
    401: "UNAUTHORIZED",
    403: "ACCESS_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "INVALID_STATE",
}


def _error_code_for_status(status_code: int) -> str:
    return _STATUS_TO_CODE.get(status_code, "INTERNAL_ERROR")


def _log_error(status_code: int, code: str, message: str, exc: Exception) -> None:
    if status_code >= 500:
        logger.error(
            "request_failed",
            status_code=status_code,
            error_code=code,
            message=message,
            exc_info=exc,
        )
    else:
        logger.warning(
            "request_rejected",
            status_code=status_code,
            error_code=code,
            message=message,
        )


def login_redirect(request: Request, *, clear_session: bool = False):
    """HTMX callers get a 401 envelope naming the login path; others a 302."""
    settings = get_settings()
    if is_htmx(request):
        return respond_error_with_code(
            401,
            "UNAUTHORIZED",
            "authentication required",
            headers={"HX-Redirect": settings.login_path},
        )
    response = RedirectResponse(settings.login_path, status_code=302)
    if request.method == "GET":
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        response.set_cookie(
            settings.redirect_cookie_name,
            target,
            max_age=settings.redirect_cookie_max_age,
            httponly=True,
            samesite="lax",
            path="/",
        )
    if clear_session:
        response.delete_cookie(settings.session_cookie_name, path="/")
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure through the single error envelope."""

    @app.exception_handler(ClassifiedError)
    async def handle_classified_error(request: Request, exc: ClassifiedError):
        status_code, code, message = exc.classification
        _log_error(status_code, code, message, exc.__cause__ or exc)
        return respond_error_with_code(status_code, code, message)

    # Raised outside a translate_errors block: validators and the gate.
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        _log_error(*classify(exc), exc)
        return respond_error(exc)

    @app.exception_handler(FragmentError)
    async def handle_fragment_error(request: Request, exc: FragmentError):
        _log_error(exc.status_code, "FRAGMENT_ERROR", exc.message, exc)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(LoginRequired)
    async def handle_login_required(request: Request, exc: LoginRequired):
        return login_redirect(request, clear_session=exc.clear_session)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_body_invalid",
            errors=len(exc.errors()),
        )
        return respond_error_with_code(400, "INVALID_REQUEST", "invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _error_code_for_status(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else "http error"
        if exc.status_code >= 500:
            message = GENERIC_MESSAGE
        _log_error(exc.status_code, code, message, exc)
        return respond_error_with_code(exc.status_code, code, message, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return respond_error_with_code(500, "INTERNAL_ERROR", GENERIC_MESSAGE)
