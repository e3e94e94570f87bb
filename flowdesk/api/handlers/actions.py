from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Protocol

from fastapi import APIRouter, Depends, Response

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_action_service
from flowdesk.api.identity import Identity, parse_id
from flowdesk.api.schemas import (
    AssigneeActionRequest,
    DescriptionActionRequest,
    DueDateActionRequest,
    PriorityActionRequest,
    RenameActionRequest,
    StatusActionRequest,
)
from flowdesk.api.validation import (
    validate_assignee,
    validate_description,
    validate_due_date,
    validate_priority,
    validate_status,
    validate_title,
)
from flowdesk.logging import get_logger
from flowdesk.storage.models import ActionResult, TaskPriority, TaskStatus

logger = get_logger(__name__)

router = APIRouter(tags=["actions"])

CHAT_UPDATED_TRIGGER = "chatUpdated"


class ActionService(Protocol):
    async def change_status(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, status: TaskStatus
    ) -> ActionResult: ...

    async def set_priority(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, priority: TaskPriority
    ) -> ActionResult: ...

    async def assign_user(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, assignee_id: Optional[uuid.UUID]
    ) -> ActionResult: ...

    async def set_due_date(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, due_date: Optional[datetime]
    ) -> ActionResult: ...

    async def close(self, chat_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult: ...

    async def reopen(self, chat_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult: ...

    async def rename(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, title: str
    ) -> ActionResult: ...

    async def set_description(
        self, chat_id: uuid.UUID, actor_id: uuid.UUID, description: str
    ) -> ActionResult: ...


def _updated(result: ActionResult, identity: Identity) -> Response:
    """Empty 200 that tells the client to refresh the chat."""
    logger.info(
        "chat_action_applied",
        chat_id=str(result.chat_id),
        action=result.action,
        user_id=str(identity.user_id),
    )
    return Response(status_code=200, headers={"HX-Trigger": CHAT_UPDATED_TRIGGER})


@router.post("/chats/{chat_id}/actions/status", response_class=Response)
async def change_status(
    chat_id: str,
    body: StatusActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    status = validate_status(body.status)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.change_status(cid, identity.user_id, status)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/priority", response_class=Response)
async def set_priority(
    chat_id: str,
    body: PriorityActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    priority = validate_priority(body.priority)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.set_priority(cid, identity.user_id, priority)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/assignee", response_class=Response)
async def assign_user(
    chat_id: str,
    body: AssigneeActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    """An empty ``assignee_id`` clears the assignee."""
    cid = parse_id(chat_id, "chat")
    assignee_id = validate_assignee(body.assignee_id)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.assign_user(cid, identity.user_id, assignee_id)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/due-date", response_class=Response)
async def set_due_date(
    chat_id: str,
    body: DueDateActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    due_date = validate_due_date(body.due_date)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.set_due_date(cid, identity.user_id, due_date)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/close", response_class=Response)
async def close_task(
    chat_id: str,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.close(cid, identity.user_id)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/reopen", response_class=Response)
async def reopen_task(
    chat_id: str,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.reopen(cid, identity.user_id)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/rename", response_class=Response)
async def rename_task(
    chat_id: str,
    body: RenameActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    cid = parse_id(chat_id, "chat")
    title = validate_title(body.title)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.rename(cid, identity.user_id, title)
    return _updated(result, identity)


@router.post("/chats/{chat_id}/actions/description", response_class=Response)
async def set_description(
    chat_id: str,
    body: DescriptionActionRequest,
    identity: Identity = Depends(require_identity),
    actions: ActionService = Depends(get_action_service),
):
    """An empty description clears it."""
    cid = parse_id(chat_id, "chat")
    description = validate_description(body.description)
    with translate_errors("chat", "ACTION_FAILED"):
        result = await actions.set_description(cid, identity.user_id, description)
    return _updated(result, identity)
