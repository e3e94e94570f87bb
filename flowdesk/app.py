from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from flowdesk.api.auth_gate import optional_identity
from flowdesk.api.deps import get_renderer
from flowdesk.api.error_handling import register_exception_handlers
from flowdesk.api.identity import Identity
from flowdesk.api.rendering import TemplateRenderer, render_fragment
from flowdesk.api.routes import API_PREFIX, api_router, page_router
from flowdesk.config import get_settings
from flowdesk.logging import bind_request_context, get_logger

logger = get_logger(__name__)

_settings = get_settings()

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    from flowdesk.service.runtime import get_runtime

    runtime = get_runtime()
    logger.info("app_started", environment=runtime.settings.environment.value)
    yield
    logger.info("app_stopped")


app = FastAPI(title="Flowdesk", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    if _settings.cors_allow_origins:
        return _settings.cors_allow_origins
    return [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Request-ID",
        "HX-Request",
        "HX-Current-URL",
        "HX-Target",
        "HX-Trigger",
    ],
    expose_headers=["X-Request-ID", "HX-Redirect", "HX-Trigger"],
    max_age=3600,
)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    """Reuse the client's X-Request-ID or mint one, and echo it back."""
    request_id = bind_request_context(
        request.headers.get("X-Request-ID"), request.method, request.url.path
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if request.url.path.startswith(API_PREFIX):
        response.headers.setdefault("Cache-Control", "no-store")
    return response


register_exception_handlers(app)
app.include_router(api_router)
app.include_router(page_router)


@app.get("/login")
async def login_page(
    request: Request,
    identity: Identity = Depends(optional_identity),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    """Login form; the redirect cookie set by the page gate names where to go next."""
    next_path = request.cookies.get(_settings.redirect_cookie_name) or "/"
    if not next_path.startswith("/") or next_path.startswith("//"):
        next_path = "/"
    return render_fragment(
        renderer,
        "login",
        {"next_path": next_path, "identity": identity, "api_prefix": API_PREFIX},
        request,
    )


@app.get("/healthz")
async def health() -> Dict[str, str]:
    return {"status": "ok", "version": __version__}
