from __future__ import annotations

import uuid
from typing import List, Optional, Protocol, Tuple

from fastapi import APIRouter, Depends, Response

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_member_service, get_workspace_service
from flowdesk.api.identity import Identity, parse_id
from flowdesk.api.pagination import Pagination, paginate
from flowdesk.api.responses import respond_created, respond_no_content, respond_ok
from flowdesk.api.schemas import (
    AddMemberRequest,
    Envelope,
    MemberListResponse,
    MemberResponse,
    UpdateMemberRoleRequest,
    WorkspaceListResponse,
    WorkspaceRequest,
    WorkspaceResponse,
)
from flowdesk.api.validation import validate_member_role, validate_user_ref, validate_workspace
from flowdesk.logging import get_logger
from flowdesk.service.errors import ForbiddenError, ValidationError
from flowdesk.storage.models import Member, Workspace, WorkspaceRole

logger = get_logger(__name__)

router = APIRouter(tags=["workspaces"])

FAMILY = "workspace"


class WorkspaceService(Protocol):
    async def create(self, name: str, description: str, owner_id: uuid.UUID) -> Workspace: ...

    async def list_for_user(
        self, user_id: uuid.UUID, *, offset: int, limit: int, include_all: bool = False
    ) -> Tuple[List[Workspace], int]: ...

    async def get(self, workspace_id: uuid.UUID) -> Workspace: ...

    async def update(self, workspace_id: uuid.UUID, name: str, description: str) -> Workspace: ...

    async def delete(self, workspace_id: uuid.UUID) -> None: ...


class MemberService(Protocol):
    async def list_members(self, workspace_id: uuid.UUID) -> List[Member]: ...

    async def add_member(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID, role: WorkspaceRole
    ) -> Member: ...

    async def remove_member(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> None: ...

    async def update_role(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID, role: WorkspaceRole
    ) -> Member: ...

    async def is_owner(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> bool: ...

    async def get_role(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[WorkspaceRole]: ...


def workspace_to_response(workspace: Workspace) -> WorkspaceResponse:
    return WorkspaceResponse(
        id=str(workspace.id),
        name=workspace.name,
        description=workspace.description,
        owner_id=str(workspace.owner_id),
        created_at=workspace.created_at,
        updated_at=workspace.updated_at,
        member_count=workspace.member_count,
    )


def member_to_response(member: Member) -> MemberResponse:
    return MemberResponse(
        user_id=str(member.user_id),
        role=member.role.value,
        joined_at=member.joined_at,
        username=member.username,
        email=member.email,
    )


async def caller_role(
    members: MemberService, workspace_id: uuid.UUID, identity: Identity
) -> Optional[WorkspaceRole]:
    """The caller's role; non-members other than system admins are refused."""
    role = await members.get_role(workspace_id, identity.user_id)
    if role is None and not identity.is_system_admin:
        logger.warning(
            "workspace_forbidden",
            workspace_id=str(workspace_id),
            user_id=str(identity.user_id),
        )
        raise ForbiddenError("not a member of this workspace")
    return role


def _require_admin(role: Optional[WorkspaceRole], identity: Identity) -> None:
    if identity.is_system_admin:
        return
    if role is None or not role.can_administer:
        raise ForbiddenError("insufficient privileges", code="INSUFFICIENT_PRIVILEGE")


@router.post("/workspaces", response_model=Envelope, status_code=201)
async def create_workspace(
    body: WorkspaceRequest,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
):
    """Create a workspace; the caller becomes its owner."""
    name, description = validate_workspace(body.name, body.description)
    with translate_errors(FAMILY, "CREATE_FAILED"):
        workspace = await workspaces.create(name, description, identity.user_id)
    return respond_created(workspace_to_response(workspace))


@router.get("/workspaces", response_model=Envelope)
async def list_workspaces(
    identity: Identity = Depends(require_identity),
    pagination: Pagination = Depends(paginate),
    workspaces: WorkspaceService = Depends(get_workspace_service),
):
    """Workspaces the caller belongs to; system admins see every workspace."""
    with translate_errors(FAMILY, "LIST_FAILED"):
        items, total = await workspaces.list_for_user(
            identity.user_id,
            offset=pagination.offset,
            limit=pagination.limit,
            include_all=identity.is_system_admin,
        )
    return respond_ok(
        WorkspaceListResponse(
            workspaces=[workspace_to_response(w) for w in items],
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
        )
    )


@router.get("/workspaces/{workspace_id}", response_model=Envelope)
async def get_workspace(
    workspace_id: str,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    ws_id = parse_id(workspace_id, "workspace")
    with translate_errors(FAMILY, "GET_FAILED"):
        workspace = await workspaces.get(ws_id)
        await caller_role(members, ws_id, identity)
    return respond_ok(workspace_to_response(workspace))


@router.put("/workspaces/{workspace_id}", response_model=Envelope)
async def update_workspace(
    workspace_id: str,
    body: WorkspaceRequest,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    ws_id = parse_id(workspace_id, "workspace")
    name, description = validate_workspace(body.name, body.description)
    with translate_errors(FAMILY, "UPDATE_FAILED"):
        await workspaces.get(ws_id)
        _require_admin(await caller_role(members, ws_id, identity), identity)
        workspace = await workspaces.update(ws_id, name, description)
    return respond_ok(workspace_to_response(workspace))


@router.delete("/workspaces/{workspace_id}", status_code=204, response_class=Response)
async def delete_workspace(
    workspace_id: str,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    """Only the owner or a system admin may delete a workspace."""
    ws_id = parse_id(workspace_id, "workspace")
    with translate_errors(FAMILY, "DELETE_FAILED"):
        await workspaces.get(ws_id)
        await caller_role(members, ws_id, identity)
        if not identity.is_system_admin and not await members.is_owner(ws_id, identity.user_id):
            raise ForbiddenError(
                "only the owner can delete a workspace", code="INSUFFICIENT_PRIVILEGE"
            )
        await workspaces.delete(ws_id)
    logger.info("workspace_deleted", workspace_id=str(ws_id), user_id=str(identity.user_id))
    return respond_no_content()


@router.get("/workspaces/{workspace_id}/members", response_model=Envelope)
async def list_members(
    workspace_id: str,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    ws_id = parse_id(workspace_id, "workspace")
    with translate_errors(FAMILY, "LIST_MEMBERS_FAILED"):
        await workspaces.get(ws_id)
        await caller_role(members, ws_id, identity)
        items = await members.list_members(ws_id)
    return respond_ok(
        MemberListResponse(members=[member_to_response(m) for m in items], total=len(items))
    )


@router.post("/workspaces/{workspace_id}/members", response_model=Envelope, status_code=201)
async def add_member(
    workspace_id: str,
    body: AddMemberRequest,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    ws_id = parse_id(workspace_id, "workspace")
    user_id = validate_user_ref(body.user_id)
    role = validate_member_role(body.role)
    with translate_errors(FAMILY, "ADD_MEMBER_FAILED"):
        await workspaces.get(ws_id)
        _require_admin(await caller_role(members, ws_id, identity), identity)
        member = await members.add_member(ws_id, user_id, role)
    return respond_created(member_to_response(member))


@router.delete(
    "/workspaces/{workspace_id}/members/{user_id}", status_code=204, response_class=Response
)
async def remove_member(
    workspace_id: str,
    user_id: str,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    """Admins remove anyone but the owner; members may remove themselves."""
    ws_id = parse_id(workspace_id, "workspace")
    target_id = parse_id(user_id, "user")
    with translate_errors("member", "REMOVE_MEMBER_FAILED"):
        await workspaces.get(ws_id)
        role = await caller_role(members, ws_id, identity)
        if await members.is_owner(ws_id, target_id):
            raise ValidationError("cannot remove workspace owner", code="CANNOT_REMOVE_OWNER")
        if target_id != identity.user_id:
            _require_admin(role, identity)
        await members.remove_member(ws_id, target_id)
    return respond_no_content()


@router.put("/workspaces/{workspace_id}/members/{user_id}/role", response_model=Envelope)
async def update_member_role(
    workspace_id: str,
    user_id: str,
    body: UpdateMemberRoleRequest,
    identity: Identity = Depends(require_identity),
    workspaces: WorkspaceService = Depends(get_workspace_service),
    members: MemberService = Depends(get_member_service),
):
    """Only the owner (or a system admin) changes roles, and never the owner's own."""
    ws_id = parse_id(workspace_id, "workspace")
    target_id = parse_id(user_id, "user")
    role = validate_member_role(body.role)
    with translate_errors("member", "UPDATE_ROLE_FAILED"):
        await workspaces.get(ws_id)
        await caller_role(members, ws_id, identity)
        if not identity.is_system_admin and not await members.is_owner(ws_id, identity.user_id):
            raise ForbiddenError(
                "only the owner can change roles", code="INSUFFICIENT_PRIVILEGE"
            )
        if await members.is_owner(ws_id, target_id):
            raise ValidationError("cannot change owner role", code="CANNOT_CHANGE_OWNER_ROLE")
        member = await members.update_role(ws_id, target_id, role)
    return respond_ok(member_to_response(member))
