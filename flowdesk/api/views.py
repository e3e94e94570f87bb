from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlencode

from flowdesk.storage.models import (
    EntityType,
    Member,
    Notification,
    Task,
    TaskEvent,
    TaskFilters,
    TaskPriority,
    TaskStatus,
)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class BoardColumn:
    key: str
    status: TaskStatus
    title: str


BOARD_COLUMNS = (
    BoardColumn("todo", TaskStatus.TODO, "To Do"),
    BoardColumn("in_progress", TaskStatus.IN_PROGRESS, "In Progress"),
    BoardColumn("review", TaskStatus.IN_REVIEW, "Review"),
    BoardColumn("done", TaskStatus.DONE, "Done"),
)


def parse_status_key(key: str) -> Optional[TaskStatus]:
    for column in BOARD_COLUMNS:
        if column.key == key:
            return column.status
    return None


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str


STATUS_OPTIONS = (
    SelectOption(TaskStatus.TODO.value, "To Do"),
    SelectOption(TaskStatus.IN_PROGRESS.value, "In Progress"),
    SelectOption(TaskStatus.IN_REVIEW.value, "In Review"),
    SelectOption(TaskStatus.DONE.value, "Done"),
)

PRIORITY_OPTIONS = (
    SelectOption(TaskPriority.LOW.value, "Low"),
    SelectOption(TaskPriority.MEDIUM.value, "Medium"),
    SelectOption(TaskPriority.HIGH.value, "High"),
    SelectOption(TaskPriority.CRITICAL.value, "Critical"),
)


@dataclass
class BoardFilters:
    type: str = ""
    assignee: str = ""
    priority: str = ""
    search: str = ""

    def query(self) -> str:
        """Filters as a query string for follow-up fragment requests."""
        return urlencode([(name, value) for name, value in vars(self).items() if value])


def build_task_filters(
    workspace_id: uuid.UUID, filters: BoardFilters, user_id: uuid.UUID
) -> TaskFilters:
    """Translate board filters; unknown values are ignored rather than rejected."""
    task_filters = TaskFilters(workspace_id=workspace_id, search=filters.search)
    try:
        task_filters.entity_type = EntityType(filters.type.lower()) if filters.type else None
    except ValueError:
        pass
    try:
        task_filters.priority = TaskPriority(filters.priority.lower()) if filters.priority else None
    except ValueError:
        pass
    if filters.assignee == "unassigned":
        task_filters.unassigned = True
    elif filters.assignee == "me":
        task_filters.assignee_id = user_id
    elif filters.assignee:
        try:
            task_filters.assignee_id = uuid.UUID(filters.assignee)
        except ValueError:
            pass
    return task_filters


@dataclass
class MemberView:
    user_id: str
    username: str


def members_to_views(members: Iterable[Member]) -> List[MemberView]:
    return [MemberView(str(m.user_id), m.username or str(m.user_id)) for m in members]


@dataclass
class TaskCardView:
    id: str
    workspace_id: str
    chat_id: str
    title: str
    type: str
    priority: str
    status: str
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    due_date: Optional[datetime] = None
    is_overdue: bool = False


def task_to_card(
    task: Task, now: datetime, names: Optional[Mapping[uuid.UUID, str]] = None
) -> TaskCardView:
    card = TaskCardView(
        id=str(task.id),
        workspace_id=str(task.workspace_id),
        chat_id=str(task.chat_id),
        title=task.title,
        type=task.entity_type.value,
        priority=task.priority.value,
        status=task.status.value,
        due_date=task.due_date,
    )
    if task.due_date is not None and task.status is not TaskStatus.DONE:
        card.is_overdue = task.due_date < now
    if task.assignee_id is not None:
        card.assignee_id = str(task.assignee_id)
        card.assignee_name = (names or {}).get(task.assignee_id, "user")
    return card


@dataclass
class ColumnView:
    status: str
    title: str
    workspace_id: str
    tasks: List[TaskCardView] = field(default_factory=list)
    total_count: int = 0

    @property
    def count(self) -> int:
        return len(self.tasks)

    @property
    def has_more(self) -> bool:
        return self.count < self.total_count


@dataclass
class TaskDetailView:
    id: str
    workspace_id: str
    chat_id: str
    title: str
    description: str
    type: str
    status: str
    priority: str
    created_at: datetime
    assignee_id: str = ""
    due_date: Optional[datetime] = None
    is_overdue: bool = False
    is_due_soon: bool = False
    overdue_days: int = 0
    days_until_due: int = 0


def task_to_detail(task: Task, now: datetime, due_soon_days: int = 3) -> TaskDetailView:
    """Detail view with due-date flags computed against ``now``.

    Days are whole 24-hour periods, truncated. Done tasks are never overdue
    or due soon.
    """
    view = TaskDetailView(
        id=str(task.id),
        workspace_id=str(task.workspace_id),
        chat_id=str(task.chat_id),
        title=task.title,
        description=task.description,
        type=task.entity_type.value,
        status=task.status.value,
        priority=task.priority.value,
        created_at=task.created_at,
        assignee_id=str(task.assignee_id) if task.assignee_id else "",
        due_date=task.due_date,
    )
    if task.due_date is not None and task.status is not TaskStatus.DONE:
        if task.due_date < now:
            view.is_overdue = True
            view.overdue_days = int((now - task.due_date).total_seconds() // SECONDS_PER_DAY)
        else:
            view.days_until_due = int((task.due_date - now).total_seconds() // SECONDS_PER_DAY)
            view.is_due_soon = view.days_until_due <= due_soon_days
    return view


_ACTIVITY_TEXT: Dict[str, tuple] = {
    # event type: (action text, show old/new details)
    "task.created": ("created this task", False),
    "task.status_changed": ("changed status", True),
    "task.priority_changed": ("changed priority", True),
    "task.assigned": ("assigned this task", True),
    "task.unassigned": ("removed assignee", False),
    "task.due_date_set": ("set due date", True),
    "task.due_date_cleared": ("cleared due date", False),
    "task.title_updated": ("updated title", False),
    "task.description_updated": ("updated description", False),
}


@dataclass
class ActivityView:
    actor_id: str
    actor_name: str
    action_text: str
    details: bool
    old_value: str
    new_value: str
    created_at: datetime


def events_to_activities(
    events: Iterable[TaskEvent],
    *,
    limit: int = 50,
    names: Optional[Mapping[uuid.UUID, str]] = None,
) -> List[ActivityView]:
    """Newest first, at most ``limit`` items; unknown event types are skipped."""
    activities = []
    for event in events:
        known = _ACTIVITY_TEXT.get(event.event_type)
        if known is None:
            continue
        action_text, details = known
        activities.append(
            ActivityView(
                actor_id=str(event.actor_id),
                actor_name=(names or {}).get(event.actor_id, "user"),
                action_text=action_text,
                details=details,
                old_value=event.old_value or "",
                new_value=event.new_value or "",
                created_at=event.occurred_at,
            )
        )
    activities.reverse()
    return activities[:limit]


@dataclass
class NotificationView:
    id: str
    type: str
    title: str
    message: str
    is_read: bool
    resource_id: str
    link: str
    created_at: datetime
    read_at: Optional[datetime] = None


def notification_to_view(notification: Notification, link: str) -> NotificationView:
    return NotificationView(
        id=str(notification.id),
        type=notification.type.value,
        title=notification.title,
        message=notification.message,
        is_read=notification.is_read,
        resource_id=notification.resource_id,
        link=link,
        created_at=notification.created_at,
        read_at=notification.read_at,
    )


@dataclass
class NotificationListView:
    notifications: List[NotificationView] = field(default_factory=list)
    total_count: int = 0
    unread_count: int = 0
    next_offset: int = 0
    filter: str = ""

    @property
    def has_more(self) -> bool:
        return self.next_offset < self.total_count
