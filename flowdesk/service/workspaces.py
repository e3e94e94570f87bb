from __future__ import annotations

import uuid
from typing import List, Optional, Tuple

from flowdesk.logging import get_logger
from flowdesk.service.errors import AlreadyExistsError, NotFoundError, ValidationError
from flowdesk.service.notifications import MemoryNotificationService
from flowdesk.storage.memory import MemoryStore, page
from flowdesk.storage.models import (
    Member,
    NotificationType,
    Workspace,
    WorkspaceRole,
    new_id,
    utcnow,
)

logger = get_logger(__name__)


class MemoryWorkspaceService:
    """Workspaces and their memberships.

    Serves both the workspace and the member interfaces. The creator of a
    workspace becomes its only owner; the owner membership can never be
    added, removed or changed through the member operations.
    """

    def __init__(
        self,
        store: MemoryStore,
        notifications: Optional[MemoryNotificationService] = None,
    ) -> None:
        self.store = store
        self.notifications = notifications

    async def create(self, name: str, description: str, owner_id: uuid.UUID) -> Workspace:
        workspace = Workspace(id=new_id(), name=name, description=description, owner_id=owner_id)
        with self.store.lock:
            self.store.save_workspace(workspace)
            self.store.save_member(
                Member(workspace_id=workspace.id, user_id=owner_id, role=WorkspaceRole.OWNER)
            )
            workspace = self.store.get_workspace(workspace.id)
        logger.info("workspace_created", workspace_id=str(workspace.id), owner_id=str(owner_id))
        return workspace

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 20,
        include_all: bool = False,
    ) -> Tuple[List[Workspace], int]:
        workspaces = self.store.list_workspaces(None if include_all else user_id)
        return page(workspaces, offset, limit)

    async def get(self, workspace_id: uuid.UUID) -> Workspace:
        workspace = self.store.get_workspace(workspace_id)
        if workspace is None:
            raise NotFoundError("workspace not found", family="workspace")
        return workspace

    async def update(self, workspace_id: uuid.UUID, name: str, description: str) -> Workspace:
        with self.store.lock:
            workspace = await self.get(workspace_id)
            workspace.name = name
            workspace.description = description
            workspace.updated_at = utcnow()
            self.store.save_workspace(workspace)
        return workspace

    async def delete(self, workspace_id: uuid.UUID) -> None:
        if not self.store.delete_workspace(workspace_id):
            raise NotFoundError("workspace not found", family="workspace")
        logger.info("workspace_deleted", workspace_id=str(workspace_id))

    # Members

    async def list_members(self, workspace_id: uuid.UUID) -> List[Member]:
        await self.get(workspace_id)
        return self.store.list_members(workspace_id)

    async def add_member(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID, role: WorkspaceRole
    ) -> Member:
        if role is WorkspaceRole.OWNER:
            raise ValidationError("cannot assign owner role")
        with self.store.lock:
            workspace = await self.get(workspace_id)
            if self.store.get_user(user_id) is None:
                raise NotFoundError("user not found", family="user")
            if self.store.get_member(workspace_id, user_id) is not None:
                raise AlreadyExistsError(
                    "user is already a member", code="MEMBER_ALREADY_EXISTS"
                )
            member = self.store.save_member(
                Member(workspace_id=workspace_id, user_id=user_id, role=role)
            )
        if self.notifications is not None:
            self.notifications.notify(
                user_id,
                NotificationType.WORKSPACE_INVITE,
                "Added to workspace",
                f"You were added to {workspace.name}",
                resource_id=str(workspace_id),
            )
        return member

    async def remove_member(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> None:
        with self.store.lock:
            member = self.store.get_member(workspace_id, user_id)
            if member is None:
                raise NotFoundError("member not found", family="member")
            if member.role is WorkspaceRole.OWNER:
                raise ValidationError("cannot remove workspace owner", code="CANNOT_REMOVE_OWNER")
            self.store.delete_member(workspace_id, user_id)

    async def update_role(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID, role: WorkspaceRole
    ) -> Member:
        if role is WorkspaceRole.OWNER:
            raise ValidationError("cannot assign owner role")
        with self.store.lock:
            member = self.store.get_member(workspace_id, user_id)
            if member is None:
                raise NotFoundError("member not found", family="member")
            if member.role is WorkspaceRole.OWNER:
                raise ValidationError(
                    "cannot change owner role", code="CANNOT_CHANGE_OWNER_ROLE"
                )
            member.role = role
            self.store.save_member(member)
        return member

    async def is_owner(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        member = self.store.get_member(workspace_id, user_id)
        return member is not None and member.role is WorkspaceRole.OWNER

    async def get_role(
        self, workspace_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[WorkspaceRole]:
        member = self.store.get_member(workspace_id, user_id)
        return member.role if member is not None else None
