from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from flowdesk.logging import get_logger
from flowdesk.service.chats import MemoryChatService
from flowdesk.service.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from flowdesk.service.notifications import MemoryNotificationService
from flowdesk.storage.memory import MemoryStore
from flowdesk.storage.models import (
    ActionResult,
    Chat,
    ChatType,
    CreateTaskCommand,
    NotificationType,
    Task,
    TaskEvent,
    TaskFilters,
    TaskPriority,
    TaskStatus,
)

logger = get_logger(__name__)


def _matches(task: Task, filters: TaskFilters) -> bool:
    if filters.workspace_id is not None and task.workspace_id != filters.workspace_id:
        return False
    if filters.status is not None and task.status is not filters.status:
        return False
    if filters.entity_type is not None and task.entity_type is not filters.entity_type:
        return False
    if filters.priority is not None and task.priority is not filters.priority:
        return False
    if filters.unassigned and task.assignee_id is not None:
        return False
    if filters.assignee_id is not None and task.assignee_id != filters.assignee_id:
        return False
    if filters.search and filters.search.lower() not in task.title.lower():
        return False
    return True


def _date_value(value: Optional[datetime]) -> Optional[str]:
    return value.date().isoformat() if value is not None else None


class MemoryTaskService:
    """Read side of tasks plus task creation from the board."""

    def __init__(self, store: MemoryStore, chats: MemoryChatService) -> None:
        self.store = store
        self.chats = chats

    def _filtered(self, filters: TaskFilters) -> List[Task]:
        return [t for t in self.store.list_tasks(filters.workspace_id) if _matches(t, filters)]

    async def list_tasks(self, filters: TaskFilters) -> List[Task]:
        tasks = self._filtered(filters)
        return tasks[filters.offset:filters.offset + filters.limit]

    async def count_tasks(self, filters: TaskFilters) -> int:
        return len(self._filtered(filters))

    async def get_task(self, task_id: uuid.UUID) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task not found", family="task")
        return task

    async def get_task_by_chat_id(self, chat_id: uuid.UUID) -> Task:
        task = self.store.get_task_by_chat(chat_id)
        if task is None:
            raise NotFoundError("task not found", family="task")
        return task

    async def get_events(self, task_id: uuid.UUID) -> List[TaskEvent]:
        return self.store.list_task_events(task_id)

    async def create_task(self, command: CreateTaskCommand) -> Task:
        chat = await self.chats.create(
            command.workspace_id,
            command.created_by,
            ChatType(command.entity_type.value),
            command.title,
            participant_ids=[command.assignee_id] if command.assignee_id else (),
        )
        with self.store.lock:
            task = self.store.get_task_by_chat(chat.id)
            chat.priority = task.priority = command.priority
            if command.assignee_id is not None:
                chat.assignee_id = task.assignee_id = command.assignee_id
                self.store.append_task_event(
                    task.id, "task.assigned", command.created_by,
                    new_value=str(command.assignee_id),
                )
            if command.due_date is not None:
                chat.due_date = task.due_date = command.due_date
                self.store.append_task_event(
                    task.id, "task.due_date_set", command.created_by,
                    new_value=_date_value(command.due_date),
                )
        logger.info("task_created", task_id=str(task.id), workspace_id=str(command.workspace_id))
        return task


class MemoryActionService:
    """Commands that change a task-family chat and its task read model together."""

    def __init__(
        self,
        store: MemoryStore,
        notifications: Optional[MemoryNotificationService] = None,
    ) -> None:
        self.store = store
        self.notifications = notifications

    def _load(self, chat_id: uuid.UUID, actor_id: uuid.UUID) -> Tuple[Chat, Task]:
        chat = self.store.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("chat not found", family="chat")
        if not chat.is_participant(actor_id) and (
            self.store.get_member(chat.workspace_id, actor_id) is None
        ):
            raise ForbiddenError("not a workspace member", code="NOT_MEMBER")
        task = self.store.get_task_by_chat(chat_id)
        if not chat.type.is_task_family or task is None:
            raise InvalidStateError("chat is not a task")
        return chat, task

    def _record(
        self,
        task: Task,
        event_type: str,
        actor_id: uuid.UUID,
        old_value: Optional[str],
        new_value: Optional[str],
    ) -> None:
        task.version += 1
        self.store.append_task_event(
            task.id, event_type, actor_id, old_value=old_value, new_value=new_value
        )

    def _notify_assignee(
        self, task: Task, actor_id: uuid.UUID, kind: NotificationType, message: str
    ) -> None:
        if self.notifications is None or task.assignee_id is None or task.assignee_id == actor_id:
            return
        self.notifications.notify(task.assignee_id, kind, task.title, message, str(task.id))

    async def change_status(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, status: TaskStatus
    ) -> ActionResult:
        with self.store.lock:
            chat, task = self._load(chat_id, actor_id)
            old = task.status
            if old is not status:
                chat.status = task.status = status
                self._record(task, "task.status_changed", actor_id, old.value, status.value)
        if old is not status:
            self._notify_assignee(
                task, actor_id, NotificationType.TASK_STATUS_CHANGED,
                f"Status changed to {status.value}",
            )
        return ActionResult(chat_id=chat_id, action="status", task=task)

    async def set_priority(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, priority: TaskPriority
    ) -> ActionResult:
        with self.store.lock:
            chat, task = self._load(chat_id, actor_id)
            old = task.priority
            if old is not priority:
                chat.priority = task.priority = priority
                self._record(task, "task.priority_changed", actor_id, old.value, priority.value)
        return ActionResult(chat_id=chat_id, action="priority", task=task)

    async def assign_user(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, assignee_id: Optional[uuid.UUID]
    ) -> ActionResult:
        with self.store.lock:
            chat, task = self._load(chat_id, actor_id)
            if assignee_id is not None and (
                self.store.get_member(chat.workspace_id, assignee_id) is None
            ):
                raise ValidationError(
                    "assignee is not a workspace member", code="INVALID_ASSIGNEE_ID"
                )
            old = task.assignee_id
            chat.assignee_id = task.assignee_id = assignee_id
            old_value = str(old) if old is not None else None
            if assignee_id is None:
                self._record(task, "task.unassigned", actor_id, old_value, None)
            else:
                self._record(task, "task.assigned", actor_id, old_value, str(assignee_id))
        if assignee_id is not None:
            self._notify_assignee(
                task, actor_id, NotificationType.TASK_ASSIGNED, "You were assigned a task"
            )
        return ActionResult(chat_id=chat_id, action="assignee", task=task)

    async def set_due_date(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, due_date: Optional[datetime]
    ) -> ActionResult:
        with self.store.lock:
            chat, task = self._load(chat_id, actor_id)
            old = _date_value(task.due_date)
            chat.due_date = task.due_date = due_date
            if due_date is None:
                self._record(task, "task.due_date_cleared", actor_id, old, None)
            else:
                self._record(task, "task.due_date_set", actor_id, old, _date_value(due_date))
        return ActionResult(chat_id=chat_id, action="due-date", task=task)

    async def close(self, chat_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult:
        with self.store.lock:
            _, task = self._load(chat_id, actor_id)
            if task.status is TaskStatus.DONE:
                raise InvalidStateError("task is already closed")
        result = await self.change_status(chat_id, actor_id, TaskStatus.DONE)
        result.action = "close"
        return result

    async def reopen(self, chat_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult:
        with self.store.lock:
            _, task = self._load(chat_id, actor_id)
            if task.status is not TaskStatus.DONE:
                raise InvalidStateError("task is not closed")
        result = await self.change_status(chat_id, actor_id, TaskStatus.TODO)
        result.action = "reopen"
        return result

    async def rename(self, chat_id: uuid.UUID, actor_id: uuid.UUID, title: str) -> ActionResult:
        with self.store.lock:
            chat, task = self._load(chat_id, actor_id)
            old = task.title
            if old != title:
                chat.title = task.title = title
                self._record(task, "task.title_updated", actor_id, old, title)
        return ActionResult(chat_id=chat_id, action="rename", task=task)

    async def set_description(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, description: str
    ) -> ActionResult:
        with self.store.lock:
            _, task = self._load(chat_id, actor_id)
            old = task.description
            if old != description:
                task.description = description
                self._record(task, "task.description_updated", actor_id, None, None)
        return ActionResult(chat_id=chat_id, action="description", task=task)
