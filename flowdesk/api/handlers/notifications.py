from __future__ import annotations

import uuid
from typing import List, Optional, Protocol, Tuple

from fastapi import APIRouter, Depends, Query, Response

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_notification_service
from flowdesk.api.identity import Identity, parse_id
from flowdesk.api.pagination import Pagination, has_more, paginate
from flowdesk.api.responses import respond_no_content, respond_ok
from flowdesk.api.schemas import (
    Envelope,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from flowdesk.service.errors import ForbiddenError
from flowdesk.storage.models import Notification, NotificationType

router = APIRouter(tags=["notifications"])

FAMILY = "notification"


class NotificationService(Protocol):
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

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int: ...

    async def delete(self, notification_id: uuid.UUID) -> None: ...


_LINK_PREFIXES = {
    NotificationType.TASK_ASSIGNED: "/tasks/",
    NotificationType.TASK_CREATED: "/tasks/",
    NotificationType.TASK_STATUS_CHANGED: "/tasks/",
    NotificationType.CHAT_MENTION: "/chats/",
    NotificationType.CHAT_MESSAGE: "/chats/",
    NotificationType.WORKSPACE_INVITE: "/workspaces/",
    NotificationType.SYSTEM: "/notifications/",
}


def notification_link(notification: Notification) -> str:
    prefix = _LINK_PREFIXES.get(notification.type, "/notifications/")
    return f"{prefix}{notification.resource_id}"


def notification_to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(notification.id),
        type=notification.type.value,
        title=notification.title,
        message=notification.message,
        resource_id=notification.resource_id,
        link=notification_link(notification),
        is_read=notification.is_read,
        created_at=notification.created_at,
        read_at=notification.read_at,
    )


async def _owned(
    notifications: NotificationService, notification_id: uuid.UUID, identity: Identity
) -> Notification:
    notification = await notifications.get(notification_id)
    if notification.user_id != identity.user_id:
        raise ForbiddenError("notification belongs to another user")
    return notification


@router.get("/notifications", response_model=Envelope)
async def list_notifications(
    unread_only: Optional[str] = Query(None),
    identity: Identity = Depends(require_identity),
    pagination: Pagination = Depends(paginate),
    notifications: NotificationService = Depends(get_notification_service),
):
    only_unread = (unread_only or "").lower() in ("true", "1")
    with translate_errors(FAMILY, "LIST_FAILED"):
        items, total = await notifications.list(
            identity.user_id,
            unread_only=only_unread,
            offset=pagination.offset,
            limit=pagination.limit,
        )
    return respond_ok(
        NotificationListResponse(
            notifications=[notification_to_response(n) for n in items],
            total=total,
            has_more=has_more(pagination, len(items), total),
        )
    )


@router.get("/notifications/unread/count", response_model=Envelope)
async def unread_count(
    identity: Identity = Depends(require_identity),
    notifications: NotificationService = Depends(get_notification_service),
):
    with translate_errors(FAMILY, "COUNT_FAILED"):
        count = await notifications.count_unread(identity.user_id)
    return respond_ok(UnreadCountResponse(count=count))


@router.put("/notifications/mark-all-read", response_model=Envelope)
async def mark_all_read(
    identity: Identity = Depends(require_identity),
    notifications: NotificationService = Depends(get_notification_service),
):
    with translate_errors(FAMILY, "MARK_ALL_READ_FAILED"):
        marked = await notifications.mark_all_as_read(identity.user_id)
    return respond_ok(MarkAllReadResponse(marked_count=marked))


@router.get("/notifications/{notification_id}", response_model=Envelope)
async def get_notification(
    notification_id: str,
    identity: Identity = Depends(require_identity),
    notifications: NotificationService = Depends(get_notification_service),
):
    nid = parse_id(notification_id, "notification")
    with translate_errors(FAMILY, "GET_FAILED"):
        notification = await _owned(notifications, nid, identity)
    return respond_ok(notification_to_response(notification))


@router.put("/notifications/{notification_id}/read", response_model=Envelope)
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(require_identity),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Unread to read, once. A second call is a conflict."""
    nid = parse_id(notification_id, "notification")
    with translate_errors(FAMILY, "MARK_READ_FAILED"):
        await _owned(notifications, nid, identity)
        notification = await notifications.mark_as_read(nid)
    return respond_ok(notification_to_response(notification))


@router.delete("/notifications/{notification_id}", status_code=204, response_class=Response)
async def delete_notification(
    notification_id: str,
    identity: Identity = Depends(require_identity),
    notifications: NotificationService = Depends(get_notification_service),
):
    nid = parse_id(notification_id, "notification")
    with translate_errors(FAMILY, "DELETE_FAILED"):
        await _owned(notifications, nid, identity)
        await notifications.delete(nid)
    return respond_no_content()
