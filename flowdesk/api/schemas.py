from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ErrorBody(BaseModel):
    code: str = Field(..., min_length=1)
    message: str


class Envelope(BaseModel):
    """API envelope: ``data`` on success, ``error`` on failure, never both."""

    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "Envelope":
        if self.success and self.error is not None:
            raise ValueError("successful envelope cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed envelope requires an error")
        return self

    def to_payload(self) -> dict:
        if self.success:
            return {"success": True, "data": jsonable_encoder(self.data)}
        return {"success": False, "error": self.error.model_dump()}


# Request bodies describe shape only; values are checked by flowdesk.api.validation.


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LoginRequest(_Request):
    code: Optional[str] = None
    redirect_uri: Optional[str] = None


class RefreshRequest(_Request):
    refresh_token: Optional[str] = None


class WorkspaceRequest(_Request):
    name: str = ""
    description: str = ""


class AddMemberRequest(_Request):
    user_id: str = ""
    role: str = ""


class UpdateMemberRoleRequest(_Request):
    role: str = ""


class CreateChatRequest(_Request):
    name: str = ""
    type: str = ""
    is_public: bool = False
    participant_ids: List[str] = Field(default_factory=list)


class UpdateChatRequest(_Request):
    name: str = ""
    type: Optional[str] = None


class AddParticipantRequest(_Request):
    user_id: str = ""
    role: str = "member"


class SendMessageRequest(_Request):
    content: str = ""
    reply_to_id: Optional[str] = None


class EditMessageRequest(_Request):
    content: str = ""


class StatusActionRequest(_Request):
    status: str = ""


class PriorityActionRequest(_Request):
    priority: str = ""


class AssigneeActionRequest(_Request):
    assignee_id: str = ""


class DueDateActionRequest(_Request):
    due_date: str = ""


class RenameActionRequest(_Request):
    title: str = ""


class DescriptionActionRequest(_Request):
    description: str = ""


# Responses


class UserResponse(BaseModel):
    id: str
    email: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int
    user: UserResponse


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int


class LogoutResponse(BaseModel):
    message: str


class WorkspaceResponse(BaseModel):
    id: str
    name: str
    description: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    member_count: int


class WorkspaceListResponse(BaseModel):
    workspaces: List[WorkspaceResponse]
    total: int
    offset: int
    limit: int


class MemberResponse(BaseModel):
    user_id: str
    role: str
    joined_at: datetime
    username: Optional[str] = None
    email: Optional[str] = None


class MemberListResponse(BaseModel):
    members: List[MemberResponse]
    total: int


class ParticipantResponse(BaseModel):
    user_id: str
    role: str
    joined_at: datetime


class ChatResponse(BaseModel):
    id: str
    workspace_id: str
    name: str
    type: str
    is_public: bool
    created_by: str
    created_at: datetime
    participants: List[ParticipantResponse] = Field(default_factory=list)
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None


class ChatListResponse(BaseModel):
    chats: List[ChatResponse]
    total: int
    has_more: bool


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    content: str
    reply_to_id: Optional[str] = None
    created_at: datetime
    edited_at: Optional[datetime] = None
    is_deleted: bool = False


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    total: int
    has_more: bool


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    resource_id: str
    link: str
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    marked_count: int
