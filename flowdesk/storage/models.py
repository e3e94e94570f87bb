from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

# Identifier whose every bit is zero; stands for "no identifier".
ZERO_ID = uuid.UUID(int=0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> uuid.UUID:
    return uuid.uuid4()


class WorkspaceRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def can_administer(self) -> bool:
        return self in (WorkspaceRole.OWNER, WorkspaceRole.ADMIN)


class ChatType(str, Enum):
    DISCUSSION = "discussion"
    TASK = "task"
    BUG = "bug"
    EPIC = "epic"

    @property
    def is_task_family(self) -> bool:
        return self is not ChatType.DISCUSSION


# Chat types accepted from older clients, all stored as discussions.
LEGACY_CHAT_TYPES = frozenset({"direct", "group", "channel"})


class ParticipantRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task.assigned"
    TASK_CREATED = "task.created"
    TASK_STATUS_CHANGED = "task.status_changed"
    CHAT_MENTION = "chat.mention"
    CHAT_MESSAGE = "chat.message"
    WORKSPACE_INVITE = "workspace.invite"
    SYSTEM = "system"


class EntityType(str, Enum):
    TASK = "task"
    BUG = "bug"
    EPIC = "epic"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class User:
    id: uuid.UUID
    external_id: str
    username: str
    email: str
    display_name: str = ""
    avatar_url: Optional[str] = None
    is_system_admin: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Workspace:
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    member_count: int = 0


@dataclass
class Member:
    workspace_id: uuid.UUID
    user_id: uuid.UUID
    role: WorkspaceRole
    joined_at: datetime = field(default_factory=utcnow)
    username: Optional[str] = None
    email: Optional[str] = None


@dataclass
class Participant:
    user_id: uuid.UUID
    role: ParticipantRole
    joined_at: datetime = field(default_factory=utcnow)


@dataclass
class Chat:
    id: uuid.UUID
    workspace_id: uuid.UUID
    type: ChatType
    created_by: uuid.UUID
    title: str = ""
    is_public: bool = False
    created_at: datetime = field(default_factory=utcnow)
    participants: List[Participant] = field(default_factory=list)
    # Task-family chats only
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None

    def participant(self, user_id: uuid.UUID) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def is_participant(self, user_id: uuid.UUID) -> bool:
        return self.participant(user_id) is not None

    def is_admin(self, user_id: uuid.UUID) -> bool:
        participant = self.participant(user_id)
        return participant is not None and participant.role is ParticipantRole.ADMIN


@dataclass
class Message:
    id: uuid.UUID
    chat_id: uuid.UUID
    author_id: uuid.UUID
    content: str
    reply_to_id: Optional[uuid.UUID] = None
    created_at: datetime = field(default_factory=utcnow)
    edited_at: Optional[datetime] = None
    is_deleted: bool = False


@dataclass
class Notification:
    id: uuid.UUID
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    resource_id: str = ""
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)
    read_at: Optional[datetime] = None


@dataclass
class Task:
    """Read model of a task-family chat."""

    id: uuid.UUID
    chat_id: uuid.UUID
    workspace_id: uuid.UUID
    title: str
    entity_type: EntityType
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    description: str = ""
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 1


@dataclass
class TaskEvent:
    id: uuid.UUID
    task_id: uuid.UUID
    event_type: str
    actor_id: uuid.UUID
    occurred_at: datetime = field(default_factory=utcnow)
    old_value: Optional[str] = None
    new_value: Optional[str] = None


@dataclass
class Session:
    """Issued token pair for one user."""

    user_id: uuid.UUID
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    # Identity snapshot taken at issue time.
    username: str = ""
    email: str = ""
    external_id: str = ""
    is_system_admin: bool = False
    created_at: datetime = field(default_factory=utcnow)
    meta: Dict | None = None


@dataclass
class TokenClaims:
    """Verified contents of an access token."""

    user_id: uuid.UUID = ZERO_ID
    external_user_id: str = ""
    username: str = ""
    email: str = ""
    roles: List[str] = field(default_factory=list)
    is_system_admin: bool = False
    expires_at: Optional[datetime] = None


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass
class LoginResult:
    user: User
    tokens: TokenPair


@dataclass
class ChatBasicInfo:
    id: uuid.UUID
    workspace_id: uuid.UUID
    type: ChatType


@dataclass
class TaskFilters:
    workspace_id: Optional[uuid.UUID] = None
    status: Optional[TaskStatus] = None
    entity_type: Optional[EntityType] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[uuid.UUID] = None
    unassigned: bool = False
    search: str = ""
    offset: int = 0
    limit: int = 20


@dataclass
class CreateTaskCommand:
    workspace_id: uuid.UUID
    title: str
    created_by: uuid.UUID
    entity_type: EntityType = EntityType.TASK
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None


@dataclass
class ActionResult:
    chat_id: uuid.UUID
    action: str
    task: Optional[Task] = None
