from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Tuple

from flowdesk.logging import get_logger
from flowdesk.service.errors import (
    AlreadyExistsError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from flowdesk.storage.memory import MemoryStore, page
from flowdesk.storage.models import (
    Chat,
    ChatBasicInfo,
    ChatType,
    EntityType,
    Participant,
    ParticipantRole,
    Task,
    TaskPriority,
    TaskStatus,
    new_id,
)

logger = get_logger(__name__)


def attach_task(store: MemoryStore, chat: Chat, actor_id: uuid.UUID) -> Task:
    """Give a task-family chat its task read model and record its creation."""
    chat.status = chat.status or TaskStatus.TODO
    chat.priority = chat.priority or TaskPriority.MEDIUM
    task = Task(
        id=new_id(),
        chat_id=chat.id,
        workspace_id=chat.workspace_id,
        title=chat.title,
        entity_type=EntityType(chat.type.value),
        status=chat.status,
        priority=chat.priority,
        assignee_id=chat.assignee_id,
        due_date=chat.due_date,
        created_by=chat.created_by,
    )
    store.save_task(task)
    store.append_task_event(task.id, "task.created", actor_id, new_value=task.title)
    return task


class MemoryChatService:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create(
        self,
        workspace_id: uuid.UUID,
        creator_id: uuid.UUID,
        chat_type: ChatType,
        title: str = "",
        *,
        is_public: bool = False,
        participant_ids: Iterable[uuid.UUID] = (),
    ) -> Chat:
        chat = Chat(
            id=new_id(),
            workspace_id=workspace_id,
            type=chat_type,
            created_by=creator_id,
            title=title,
            is_public=is_public,
            participants=[Participant(user_id=creator_id, role=ParticipantRole.ADMIN)],
        )
        with self.store.lock:
            if self.store.get_workspace(workspace_id) is None:
                raise NotFoundError("workspace not found", family="workspace")
            for user_id in participant_ids:
                if user_id == creator_id or chat.is_participant(user_id):
                    continue
                if self.store.get_user(user_id) is None:
                    raise NotFoundError("user not found", family="user")
                chat.participants.append(Participant(user_id=user_id, role=ParticipantRole.MEMBER))
            self.store.save_chat(chat)
            if chat_type.is_task_family:
                attach_task(self.store, chat, creator_id)
        logger.info(
            "chat_created",
            chat_id=str(chat.id),
            workspace_id=str(workspace_id),
            type=chat_type.value,
        )
        return chat

    async def get(self, chat_id: uuid.UUID) -> Chat:
        chat = self.store.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("chat not found", family="chat")
        return chat

    async def get_chat_basic_info(self, chat_id: uuid.UUID) -> ChatBasicInfo:
        chat = await self.get(chat_id)
        return ChatBasicInfo(id=chat.id, workspace_id=chat.workspace_id, type=chat.type)

    async def list(
        self,
        workspace_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        chat_type: Optional[ChatType] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Chat], int]:
        """Chats of a workspace the user can see: public ones and those they take part in."""
        visible = [
            chat
            for chat in self.store.list_chats(workspace_id)
            if (chat.is_public or chat.is_participant(user_id))
            and (chat_type is None or chat.type is chat_type)
        ]
        return page(visible, offset, limit)

    async def update(
        self,
        chat_id: uuid.UUID,
        name: str,
        chat_type: Optional[ChatType],
        actor_id: uuid.UUID,
    ) -> Chat:
        with self.store.lock:
            chat = await self.get(chat_id)
            if chat.type.is_task_family:
                if chat_type is not None and chat_type is not chat.type:
                    raise ValidationError(
                        "task chats cannot change type", code="INVALID_CHAT_TYPE"
                    )
                old_title = chat.title
                chat.title = name
                task = self.store.get_task_by_chat(chat.id)
                if task is not None:
                    task.title = name
                    task.version += 1
                    self.store.append_task_event(
                        task.id, "task.title_updated", actor_id,
                        old_value=old_title, new_value=name,
                    )
            else:
                if chat_type is None or not chat_type.is_task_family:
                    raise ValidationError(
                        "only task chats can be renamed", code="INVALID_CHAT_TYPE"
                    )
                chat.type = chat_type
                chat.title = name
                attach_task(self.store, chat, actor_id)
                logger.info("chat_converted", chat_id=str(chat.id), type=chat_type.value)
            self.store.save_chat(chat)
        return chat

    async def delete(self, chat_id: uuid.UUID) -> None:
        if self.store.delete_chat(chat_id) is None:
            raise NotFoundError("chat not found", family="chat")
        logger.info("chat_deleted", chat_id=str(chat_id))

    async def add_participant(
        self, chat_id: uuid.UUID, user_id: uuid.UUID, role: ParticipantRole
    ) -> Participant:
        with self.store.lock:
            chat = await self.get(chat_id)
            if self.store.get_user(user_id) is None:
                raise NotFoundError("user not found", family="user")
            if chat.is_participant(user_id):
                raise AlreadyExistsError(
                    "user is already a participant", code="PARTICIPANT_EXISTS"
                )
            participant = Participant(user_id=user_id, role=role)
            chat.participants.append(participant)
        return participant

    async def remove_participant(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> None:
        with self.store.lock:
            chat = await self.get(chat_id)
            participant = chat.participant(user_id)
            if participant is None:
                raise NotFoundError("participant not found", code="PARTICIPANT_NOT_FOUND")
            if user_id == chat.created_by:
                raise ForbiddenError(
                    "chat creator cannot be removed", code="CANNOT_REMOVE_CREATOR"
                )
            chat.participants.remove(participant)
