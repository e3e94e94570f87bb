from __future__ import annotations

import uuid
from typing import List, Tuple

from flowdesk.logging import get_logger
from flowdesk.service.errors import ConflictError, NotFoundError
from flowdesk.storage.memory import MemoryStore, page
from flowdesk.storage.models import Notification, NotificationType, new_id, utcnow

logger = get_logger(__name__)


class MemoryNotificationService:
    """Per-user notification inbox.

    Read state only moves forward: a notification becomes read once and
    stays read until it is deleted.
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def notify(
        self,
        user_id: uuid.UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        resource_id: str = "",
    ) -> Notification:
        notification = Notification(
            id=new_id(),
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            resource_id=resource_id,
        )
        self.store.save_notification(notification)
        logger.debug(
            "notification_created",
            notification_id=str(notification.id),
            user_id=str(user_id),
            type=notification_type.value,
        )
        return notification

    async def list(
        self,
        user_id: uuid.UUID,
        *,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]:
        items = self.store.list_notifications(user_id, unread_only=unread_only)
        return page(items, offset, limit)

    async def count_unread(self, user_id: uuid.UUID) -> int:
        return len(self.store.list_notifications(user_id, unread_only=True))

    async def get(self, notification_id: uuid.UUID) -> Notification:
        notification = self.store.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("notification not found", family="notification")
        return notification

    async def mark_as_read(self, notification_id: uuid.UUID) -> Notification:
        with self.store.lock:
            notification = await self.get(notification_id)
            if notification.is_read:
                raise ConflictError("notification already read", code="ALREADY_READ")
            notification.is_read = True
            notification.read_at = utcnow()
            self.store.save_notification(notification)
        return notification

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        now = utcnow()
        with self.store.lock:
            unread = self.store.list_notifications(user_id, unread_only=True)
            for notification in unread:
                notification.is_read = True
                notification.read_at = now
        logger.info("notifications_marked_read", user_id=str(user_id), count=len(unread))
        return len(unread)

    async def delete(self, notification_id: uuid.UUID) -> None:
        if not self.store.delete_notification(notification_id):
            raise NotFoundError("notification not found", family="notification")
