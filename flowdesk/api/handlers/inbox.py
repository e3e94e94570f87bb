from __future__ import annotations

import uuid
from typing import List, Optional, Protocol, Tuple

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from flowdesk.api.auth_gate import is_htmx, require_page_identity
from flowdesk.api.deps import get_notification_service, get_renderer
from flowdesk.api.handlers.notifications import notification_link
from flowdesk.api.identity import Identity
from flowdesk.api.pagination import parse_pagination
from flowdesk.api.rendering import TemplateRenderer, fragment_errors, render_fragment
from flowdesk.api.views import NotificationListView, notification_to_view
from flowdesk.logging import get_logger
from flowdesk.service.errors import ServiceError
from flowdesk.storage.models import Notification

logger = get_logger(__name__)

router = APIRouter(tags=["inbox"])

INBOX_PATH = "/notifications"
DROPDOWN_LIMIT = 10
LIST_LIMIT = 20
MAX_LIMIT = 100


class InboxService(Protocol):
    async def list(
        self,
        user_id: uuid.UUID,
        *,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]: ...

    async def count_unread(self, user_id: uuid.UUID) -> int: ...

    async def get(self, notification_id: uuid.UUID) -> Notification: ...

    async def mark_as_read(self, notification_id: uuid.UUID) -> Notification: ...


def _link(notification: Notification) -> str:
    if not notification.resource_id:
        return INBOX_PATH
    return notification_link(notification)


def _go(request: Request, target: str) -> Response:
    """HTMX callers follow ``HX-Redirect``; browsers get a 302."""
    if is_htmx(request):
        return Response(status_code=200, headers={"HX-Redirect": target})
    return RedirectResponse(target, status_code=302)


@router.get("/notifications")
async def inbox_page(
    request: Request,
    list_filter: str = Query("", alias="filter"),
    identity: Identity = Depends(require_page_identity),
    notifications: InboxService = Depends(get_notification_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    """Full notifications page; the list itself loads as a fragment."""
    with fragment_errors():
        unread = await notifications.count_unread(identity.user_id)
    data = {"unread_count": unread, "filter": list_filter, "identity": identity}
    return render_fragment(renderer, "notification/index", data, request)


@router.get("/notifications/{notification_id}/redirect")
async def open_notification(
    request: Request,
    notification_id: str,
    identity: Identity = Depends(require_page_identity),
    notifications: InboxService = Depends(get_notification_service),
):
    """Mark a notification read and send the caller to what it points at.

    Anything that cannot be resolved lands on the notifications page.
    """
    try:
        nid = uuid.UUID(notification_id)
    except ValueError:
        return _go(request, INBOX_PATH)
    try:
        notification = await notifications.get(nid)
    except ServiceError as exc:
        logger.info(
            "notification_redirect_failed", notification_id=notification_id, reason=exc.message
        )
        return _go(request, INBOX_PATH)
    if notification.user_id != identity.user_id:
        logger.warning(
            "notification_redirect_forbidden",
            notification_id=notification_id,
            user_id=str(identity.user_id),
        )
        return _go(request, INBOX_PATH)
    if not notification.is_read:
        try:
            await notifications.mark_as_read(nid)
        except ServiceError as exc:
            logger.warning(
                "notification_mark_read_failed",
                notification_id=notification_id,
                reason=exc.message,
            )
    return _go(request, _link(notification))


def _limit(raw: Optional[str], default: int) -> int:
    return parse_pagination(raw, default_limit=default, max_limit=MAX_LIMIT).limit


@router.get("/partials/notifications")
async def notifications_dropdown(
    request: Request,
    limit: Optional[str] = Query(None),
    identity: Identity = Depends(require_page_identity),
    notifications: InboxService = Depends(get_notification_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    """Most recent notifications for the header dropdown, read or not."""
    with fragment_errors():
        items, total = await notifications.list(
            identity.user_id, limit=_limit(limit, DROPDOWN_LIMIT)
        )
        unread = await notifications.count_unread(identity.user_id)
    view = NotificationListView(
        notifications=[notification_to_view(n, _link(n)) for n in items],
        total_count=total,
        unread_count=unread,
        next_offset=len(items),
    )
    return render_fragment(renderer, "notification/dropdown", {"inbox": view}, request)


@router.get("/partials/notifications/count")
async def notifications_badge(
    request: Request,
    identity: Identity = Depends(require_page_identity),
    notifications: InboxService = Depends(get_notification_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    with fragment_errors():
        count = await notifications.count_unread(identity.user_id)
    return render_fragment(renderer, "notification/badge", {"count": count}, request)


@router.get("/partials/notifications/list")
async def notifications_list(
    request: Request,
    list_filter: str = Query("", alias="filter"),
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    page: Optional[str] = Query(None),
    identity: Identity = Depends(require_page_identity),
    notifications: InboxService = Depends(get_notification_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    """One page of the inbox; ``filter=unread`` hides read notifications."""
    pagination = parse_pagination(
        limit, offset, page, default_limit=LIST_LIMIT, max_limit=MAX_LIMIT
    )
    with fragment_errors():
        items, total = await notifications.list(
            identity.user_id,
            unread_only=list_filter == "unread",
            offset=pagination.offset,
            limit=pagination.limit,
        )
    view = NotificationListView(
        notifications=[notification_to_view(n, _link(n)) for n in items],
        total_count=total,
        next_offset=pagination.offset + len(items),
        filter=list_filter,
    )
    return render_fragment(renderer, "notification/list", {"inbox": view}, request)
