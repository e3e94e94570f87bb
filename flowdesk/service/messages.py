from __future__ import annotations

import uuid
from typing import List, Optional, Tuple

from flowdesk.logging import get_logger
from flowdesk.service.errors import ConflictError, NotFoundError, ValidationError
from flowdesk.storage.memory import MemoryStore, page
from flowdesk.storage.models import Message, new_id, utcnow

logger = get_logger(__name__)


class MemoryMessageService:
    """Chat messages. Deletion leaves a tombstone with the content cleared."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def send(
        self,
        chat_id: uuid.UUID,
        author_id: uuid.UUID,
        content: str,
        reply_to_id: Optional[uuid.UUID] = None,
    ) -> Message:
        with self.store.lock:
            if self.store.get_chat(chat_id) is None:
                raise NotFoundError("chat not found", family="chat")
            if reply_to_id is not None:
                parent = self.store.get_message(reply_to_id)
                if parent is None:
                    raise NotFoundError("reply target not found", code="PARENT_NOT_FOUND")
                if parent.chat_id != chat_id:
                    raise ValidationError(
                        "reply target belongs to another chat",
                        code="PARENT_IN_DIFFERENT_CHAT",
                    )
            message = Message(
                id=new_id(),
                chat_id=chat_id,
                author_id=author_id,
                content=content,
                reply_to_id=reply_to_id,
            )
            self.store.save_message(message)
        logger.debug("message_sent", message_id=str(message.id), chat_id=str(chat_id))
        return message

    async def list(
        self, chat_id: uuid.UUID, *, offset: int = 0, limit: int = 50
    ) -> Tuple[List[Message], int]:
        if self.store.get_chat(chat_id) is None:
            raise NotFoundError("chat not found", family="chat")
        return page(self.store.list_messages(chat_id), offset, limit)

    async def get(self, message_id: uuid.UUID) -> Message:
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("message not found", family="message")
        return message

    async def edit(self, message_id: uuid.UUID, content: str) -> Message:
        with self.store.lock:
            message = await self.get(message_id)
            if message.is_deleted:
                raise ConflictError("message was deleted", code="MESSAGE_DELETED")
            message.content = content
            message.edited_at = utcnow()
            self.store.save_message(message)
        return message

    async def delete(self, message_id: uuid.UUID) -> None:
        with self.store.lock:
            message = await self.get(message_id)
            if message.is_deleted:
                raise ConflictError("message was deleted", code="MESSAGE_DELETED")
            message.content = ""
            message.is_deleted = True
            self.store.save_message(message)
        logger.debug("message_deleted", message_id=str(message_id))
