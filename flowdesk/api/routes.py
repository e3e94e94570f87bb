from __future__ import annotations

from fastapi import APIRouter

from flowdesk.api.handlers import (
    actions,
    auth,
    board,
    chats,
    inbox,
    messages,
    notifications,
    tasks,
    workspaces,
)

API_PREFIX = "/api/v1"

# JSON API: envelope responses, 401 on missing credentials.
api_router = APIRouter(prefix=API_PREFIX)
for _module in (auth, workspaces, chats, messages, notifications, actions):
    api_router.include_router(_module.router)

# HTML pages and HTMX fragments: login redirects instead of 401 envelopes.
page_router = APIRouter()
page_router.include_router(board.router)
page_router.include_router(tasks.router)
page_router.include_router(inbox.router)
