from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Type, TypeVar

from flowdesk.api.identity import parse_id
from flowdesk.service.errors import ValidationError
from flowdesk.storage.models import (
    LEGACY_CHAT_TYPES,
    ChatType,
    ParticipantRole,
    TaskPriority,
    TaskStatus,
    WorkspaceRole,
)

MAX_WORKSPACE_NAME = 100
MAX_WORKSPACE_DESCRIPTION = 500
MAX_CHAT_NAME = 100
MAX_PARTICIPANTS = 100
MAX_MESSAGE_CONTENT = 10_000
MAX_TASK_TITLE = 100
MAX_TASK_DESCRIPTION = 5000

E = TypeVar("E")


def parse_enum(enum_cls: Type[E], raw: Optional[str]) -> Optional[E]:
    """Total, case-sensitive parse of an enum value; None when unknown."""
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def require_value(value: Optional[str], message: str) -> str:
    """Missing, null and empty values all fail the same way."""
    if not value:
        raise ValidationError(message)
    return value


# Auth


def validate_login(code: Optional[str], redirect_uri: Optional[str]) -> Tuple[str, str]:
    return (
        require_value(code, "code is required"),
        require_value(redirect_uri, "redirect_uri is required"),
    )


def validate_refresh(refresh_token: Optional[str]) -> str:
    return require_value(refresh_token, "refresh_token is required")


# Workspaces


def validate_workspace(name: str, description: str) -> Tuple[str, str]:
    if not name:
        raise ValidationError("workspace name is required")
    if len(name) > MAX_WORKSPACE_NAME:
        raise ValidationError(f"workspace name must be at most {MAX_WORKSPACE_NAME} characters")
    if len(description) > MAX_WORKSPACE_DESCRIPTION:
        raise ValidationError(
            f"workspace description must be at most {MAX_WORKSPACE_DESCRIPTION} characters"
        )
    return name, description


def validate_member_role(raw: str) -> WorkspaceRole:
    """Roles assignable through the member API: ``admin`` and ``member``."""
    role = parse_enum(WorkspaceRole, raw)
    if role is None:
        raise ValidationError("role must be one of: admin, member")
    if role is WorkspaceRole.OWNER:
        raise ValidationError("cannot assign owner role through this endpoint")
    return role


def validate_user_ref(raw: str) -> uuid.UUID:
    if not raw:
        raise ValidationError("user_id is required")
    return parse_id(raw, "user")


# Chats


def parse_chat_type(raw: str) -> ChatType:
    """Empty means discussion; legacy types map to discussion."""
    if not raw or raw in LEGACY_CHAT_TYPES:
        return ChatType.DISCUSSION
    chat_type = parse_enum(ChatType, raw)
    if chat_type is None:
        raise ValidationError("invalid chat type", code="INVALID_CHAT_TYPE")
    return chat_type


def validate_create_chat(
    name: str, raw_type: str, participant_ids: List[str]
) -> Tuple[str, ChatType, List[uuid.UUID]]:
    chat_type = parse_chat_type(raw_type)
    if chat_type.is_task_family and not name:
        raise ValidationError("chat name is required", code="TITLE_REQUIRED")
    if len(name) > MAX_CHAT_NAME:
        raise ValidationError("chat name is too long")
    if len(participant_ids) > MAX_PARTICIPANTS:
        raise ValidationError("too many participants")
    parsed = [parse_id(raw, "participant") for raw in participant_ids]
    return name, chat_type, parsed


def validate_update_chat(name: str, raw_type: Optional[str]) -> Tuple[str, Optional[ChatType]]:
    if not name:
        raise ValidationError("chat name is required")
    if len(name) > MAX_CHAT_NAME:
        raise ValidationError("chat name is too long")
    if raw_type is None or raw_type == "":
        return name, None
    chat_type = parse_enum(ChatType, raw_type)
    if chat_type is None:
        raise ValidationError("invalid chat type", code="INVALID_CHAT_TYPE")
    return name, chat_type


def validate_participant_role(raw: str) -> ParticipantRole:
    role = parse_enum(ParticipantRole, raw or ParticipantRole.MEMBER.value)
    if role is None:
        raise ValidationError("role must be one of: admin, member")
    return role


# Messages


def validate_content(content: str) -> str:
    if not content:
        raise ValidationError("message content cannot be empty")
    if len(content) > MAX_MESSAGE_CONTENT:
        raise ValidationError("message content is too long")
    return content


def validate_reply_to(raw: Optional[str]) -> Optional[uuid.UUID]:
    if not raw:
        return None
    return parse_id(raw, "reply_to")


# Task actions


def validate_status(raw: str) -> TaskStatus:
    status = parse_enum(TaskStatus, raw)
    if status is None:
        raise ValidationError("invalid status", code="INVALID_STATUS")
    return status


def validate_priority(raw: str) -> TaskPriority:
    priority = parse_enum(TaskPriority, raw)
    if priority is None:
        raise ValidationError("invalid priority", code="INVALID_PRIORITY")
    return priority


def validate_assignee(raw: str) -> Optional[uuid.UUID]:
    """Empty clears the assignee."""
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise ValidationError("invalid assignee ID", code="INVALID_ASSIGNEE_ID") from exc


def validate_due_date(raw: str) -> Optional[datetime]:
    """``YYYY-MM-DD`` as midnight UTC; empty clears the due date."""
    if not raw:
        return None
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d")
    except ValueError as exc:
        raise ValidationError("date must be YYYY-MM-DD", code="INVALID_DATE") from exc
    return parsed.replace(tzinfo=timezone.utc)


def validate_title(raw: str) -> str:
    title = raw.strip()
    if not title or len(title) > MAX_TASK_TITLE:
        raise ValidationError(
            f"title must be 1 to {MAX_TASK_TITLE} characters", code="INVALID_TITLE"
        )
    return title


def validate_description(raw: str) -> str:
    description = raw.strip()
    if len(description) > MAX_TASK_DESCRIPTION:
        raise ValidationError(
            f"description must be at most {MAX_TASK_DESCRIPTION} characters",
            code="INVALID_DESCRIPTION",
        )
    return description
