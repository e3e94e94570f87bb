from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Protocol, Tuple

from fastapi import APIRouter, Depends, Query, Response

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_chat_service, get_member_service
from flowdesk.api.identity import Identity, parse_id
from flowdesk.api.pagination import Pagination, has_more, paginate
from flowdesk.api.responses import respond_created, respond_no_content, respond_ok
from flowdesk.api.schemas import (
    AddParticipantRequest,
    ChatListResponse,
    ChatResponse,
    CreateChatRequest,
    Envelope,
    ParticipantResponse,
    UpdateChatRequest,
)
from flowdesk.api.validation import (
    parse_chat_type,
    validate_create_chat,
    validate_participant_role,
    validate_update_chat,
    validate_user_ref,
)
from flowdesk.logging import get_logger
from flowdesk.service.errors import ForbiddenError
from flowdesk.storage.models import (
    Chat,
    ChatType,
    Participant,
    ParticipantRole,
    Workspace,
    WorkspaceRole,
)

logger = get_logger(__name__)

router = APIRouter(tags=["chats"])

FAMILY = "chat"


class ChatService(Protocol):
    async def create(
        self,
        workspace_id: uuid.UUID,
        creator_id: uuid.UUID,
        chat_type: ChatType,
        title: str = "",
        *,
        is_public: bool = False,
        participant_ids: Iterable[uuid.UUID] = (),
    ) -> Chat: ...

    async def get(self, chat_id: uuid.UUID) -> Chat: ...

    async def list(
        self,
        workspace_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        chat_type: Optional[ChatType] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Chat], int]: ...

    async def update(
        self, chat_id: uuid.UUID, name: str, chat_type: Optional[ChatType], actor_id: uuid.UUID
    ) -> Chat: ...

    async def delete(self, chat_id: uuid.UUID) -> None: ...

    async def add_participant(
        self, chat_id: uuid.UUID, user_id: uuid.UUID, role: ParticipantRole
    ) -> Participant: ...

    async def remove_participant(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> None: ...


class WorkspaceMembership(Protocol):
    async def get(self, workspace_id: uuid.UUID) -> Workspace: ...

    async def get_role(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[WorkspaceRole]: ...


def participant_to_response(participant: Participant) -> ParticipantResponse:
    return ParticipantResponse(
        user_id=str(participant.user_id),
        role=participant.role.value,
        joined_at=participant.joined_at,
    )


def chat_to_response(chat: Chat) -> ChatResponse:
    response = ChatResponse(
        id=str(chat.id),
        workspace_id=str(chat.workspace_id),
        name=chat.title,
        type=chat.type.value,
        is_public=chat.is_public,
        created_by=str(chat.created_by),
        created_at=chat.created_at,
        participants=[participant_to_response(p) for p in chat.participants],
    )
    if chat.type.is_task_family:
        response.status = chat.status.value if chat.status else None
        response.priority = chat.priority.value if chat.priority else None
        response.assigned_to = str(chat.assignee_id) if chat.assignee_id else None
        response.due_date = chat.due_date
    return response


async def require_workspace_member(
    members: WorkspaceMembership, workspace_id: uuid.UUID, identity: Identity
) -> None:
    """The workspace must exist before membership is considered."""
    await members.get(workspace_id)
    if identity.is_system_admin:
        return
    if await members.get_role(workspace_id, identity.user_id) is None:
        raise ForbiddenError("not a member of this workspace", code="NOT_MEMBER")


async def require_chat_access(
    chat: Chat, members: WorkspaceMembership, identity: Identity
) -> None:
    """Participants always see a chat; workspace members also see public ones."""
    if chat.is_participant(identity.user_id) or identity.is_system_admin:
        return
    if chat.is_public and await members.get_role(chat.workspace_id, identity.user_id):
        return
    logger.warning("chat_forbidden", chat_id=str(chat.id), user_id=str(identity.user_id))
    raise ForbiddenError("not a member of this chat", code="NOT_MEMBER")


def _require_chat_admin(chat: Chat, identity: Identity) -> None:
    if not chat.is_admin(identity.user_id):
        raise ForbiddenError("admin access required", code="NOT_ADMIN")


@router.post("/workspaces/{workspace_id}/chats", response_model=Envelope, status_code=201)
async def create_chat(
    workspace_id: str,
    body: CreateChatRequest,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
    members: WorkspaceMembership = Depends(get_member_service),
):
    ws_id = parse_id(workspace_id, "workspace")
    name, chat_type, participant_ids = validate_create_chat(
        body.name, body.type, body.participant_ids
    )
    with translate_errors(FAMILY, "CREATE_FAILED"):
        await require_workspace_member(members, ws_id, identity)
        chat = await chats.create(
            ws_id,
            identity.user_id,
            chat_type,
            name,
            is_public=body.is_public,
            participant_ids=participant_ids,
        )
    return respond_created(chat_to_response(chat))


@router.get("/workspaces/{workspace_id}/chats", response_model=Envelope)
async def list_chats(
    workspace_id: str,
    chat_type: Optional[str] = Query(None, alias="type"),
    identity: Identity = Depends(require_identity),
    pagination: Pagination = Depends(paginate),
    chats: ChatService = Depends(get_chat_service),
    members: WorkspaceMembership = Depends(get_member_service),
):
    """Chats visible to the caller, optionally filtered by ``type``."""
    ws_id = parse_id(workspace_id, "workspace")
    type_filter = parse_chat_type(chat_type) if chat_type else None
    with translate_errors(FAMILY, "LIST_FAILED"):
        await require_workspace_member(members, ws_id, identity)
        items, total = await chats.list(
            ws_id,
            identity.user_id,
            chat_type=type_filter,
            offset=pagination.offset,
            limit=pagination.limit,
        )
    return respond_ok(
        ChatListResponse(
            chats=[chat_to_response(c) for c in items],
            total=total,
            has_more=has_more(pagination, len(items), total),
        )
    )


@router.get("/chats/{chat_id}", response_model=Envelope)
async def get_chat(
    chat_id: str,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
    members: WorkspaceMembership = Depends(get_member_service),
):
    cid = parse_id(chat_id, "chat")
    with translate_errors(FAMILY, "GET_FAILED"):
        chat = await chats.get(cid)
        await require_chat_access(chat, members, identity)
    return respond_ok(chat_to_response(chat))


@router.put("/chats/{chat_id}", response_model=Envelope)
async def update_chat(
    chat_id: str,
    body: UpdateChatRequest,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
):
    """Rename a task chat, or convert a discussion to a task type once."""
    cid = parse_id(chat_id, "chat")
    name, chat_type = validate_update_chat(body.name, body.type)
    with translate_errors(FAMILY, "UPDATE_FAILED"):
        chat = await chats.get(cid)
        if not chat.is_participant(identity.user_id):
            raise ForbiddenError("not a member of this chat", code="NOT_MEMBER")
        chat = await chats.update(cid, name, chat_type, identity.user_id)
    return respond_ok(chat_to_response(chat))


@router.delete("/chats/{chat_id}", status_code=204, response_class=Response)
async def delete_chat(
    chat_id: str,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
):
    cid = parse_id(chat_id, "chat")
    with translate_errors(FAMILY, "DELETE_FAILED"):
        chat = await chats.get(cid)
        _require_chat_admin(chat, identity)
        await chats.delete(cid)
    return respond_no_content()


@router.post("/chats/{chat_id}/participants", response_model=Envelope, status_code=201)
async def add_participant(
    chat_id: str,
    body: AddParticipantRequest,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
):
    cid = parse_id(chat_id, "chat")
    user_id = validate_user_ref(body.user_id)
    role = validate_participant_role(body.role)
    with translate_errors(FAMILY, "ADD_PARTICIPANT_FAILED"):
        chat = await chats.get(cid)
        _require_chat_admin(chat, identity)
        participant = await chats.add_participant(cid, user_id, role)
    return respond_created(participant_to_response(participant))


@router.delete(
    "/chats/{chat_id}/participants/{user_id}", status_code=204, response_class=Response
)
async def remove_participant(
    chat_id: str,
    user_id: str,
    identity: Identity = Depends(require_identity),
    chats: ChatService = Depends(get_chat_service),
):
    """Chat admins remove others, anyone may leave; the creator always stays."""
    cid = parse_id(chat_id, "chat")
    target_id = parse_id(user_id, "user")
    with translate_errors(FAMILY, "REMOVE_PARTICIPANT_FAILED"):
        chat = await chats.get(cid)
        if target_id == chat.created_by:
            raise ForbiddenError("cannot remove chat creator", code="CANNOT_REMOVE_CREATOR")
        if target_id != identity.user_id:
            _require_chat_admin(chat, identity)
        await chats.remove_participant(cid, target_id)
    return respond_no_content()
