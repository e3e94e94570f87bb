from __future__ import annotations

import uuid
from typing import List, Optional, Protocol, Tuple

from fastapi import APIRouter, Depends, Response

from flowdesk.api.auth_gate import require_identity
from flowdesk.api.classifier import translate_errors
from flowdesk.api.deps import get_chat_service, get_message_service
from flowdesk.api.identity import Identity, parse_id
from flowdesk.api.pagination import Pagination, has_more, paginate_messages
from flowdesk.api.responses import respond_created, respond_no_content, respond_ok
from flowdesk.api.schemas import (
    EditMessageRequest,
    Envelope,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
)
from flowdesk.api.validation import validate_content, validate_reply_to
from flowdesk.service.errors import ForbiddenError
from flowdesk.storage.models import Chat, Message

router = APIRouter(tags=["messages"])

FAMILY = "message"


class MessageService(Protocol):
    async def send(
        self,
        chat_id: uuid.UUID,
        author_id: uuid.UUID,
        content: str,
        reply_to_id: Optional[uuid.UUID] = None,
    ) -> Message: ...

    async def list(
        self, chat_id: uuid.UUID, *, offset: int = 0, limit: int = 50
    ) -> Tuple[List[Message], int]: ...

    async def get(self, message_id: uuid.UUID) -> Message: ...

    async def edit(self, message_id: uuid.UUID, content: str) -> Message: ...

    async def delete(self, message_id: uuid.UUID) -> None: ...


class ChatLookup(Protocol):
    async def get(self, chat_id: uuid.UUID) -> Chat: ...


def message_to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=str(message.id),
        chat_id=str(message.chat_id),
        sender_id=str(message.author_id),
        content="" if message.is_deleted else message.content,
        reply_to_id=str(message.reply_to_id) if message.reply_to_id else None,
        created_at=message.created_at,
        edited_at=message.edited_at,
        is_deleted=message.is_deleted,
    )


async def _require_participant(chats: ChatLookup, chat_id: uuid.UUID, identity: Identity) -> Chat:
    chat = await chats.get(chat_id)
    if not chat.is_participant(identity.user_id):
        raise ForbiddenError("not a participant of this chat", code="NOT_PARTICIPANT")
    return chat


def _require_author(message: Message, identity: Identity) -> None:
    if message.author_id != identity.user_id:
        raise ForbiddenError("only the author can change this message", code="NOT_AUTHOR")


@router.post("/chats/{chat_id}/messages", response_model=Envelope, status_code=201)
async def send_message(
    chat_id: str,
    body: SendMessageRequest,
    identity: Identity = Depends(require_identity),
    messages: MessageService = Depends(get_message_service),
    chats: ChatLookup = Depends(get_chat_service),
):
    cid = parse_id(chat_id, "chat")
    content = validate_content(body.content)
    reply_to_id = validate_reply_to(body.reply_to_id)
    with translate_errors(FAMILY, "SEND_FAILED"):
        await _require_participant(chats, cid, identity)
        message = await messages.send(cid, identity.user_id, content, reply_to_id)
    return respond_created(message_to_response(message))


@router.get("/chats/{chat_id}/messages", response_model=Envelope)
async def list_messages(
    chat_id: str,
    identity: Identity = Depends(require_identity),
    pagination: Pagination = Depends(paginate_messages),
    messages: MessageService = Depends(get_message_service),
    chats: ChatLookup = Depends(get_chat_service),
):
    """Newest first. Deleted messages keep their place with empty content."""
    cid = parse_id(chat_id, "chat")
    with translate_errors(FAMILY, "LIST_FAILED"):
        await _require_participant(chats, cid, identity)
        items, total = await messages.list(cid, offset=pagination.offset, limit=pagination.limit)
    return respond_ok(
        MessageListResponse(
            messages=[message_to_response(m) for m in items],
            total=total,
            has_more=has_more(pagination, len(items), total),
        )
    )


@router.get("/messages/{message_id}", response_model=Envelope)
async def get_message(
    message_id: str,
    identity: Identity = Depends(require_identity),
    messages: MessageService = Depends(get_message_service),
    chats: ChatLookup = Depends(get_chat_service),
):
    mid = parse_id(message_id, "message")
    with translate_errors(FAMILY, "GET_FAILED"):
        message = await messages.get(mid)
        await _require_participant(chats, message.chat_id, identity)
    return respond_ok(message_to_response(message))


@router.put("/messages/{message_id}", response_model=Envelope)
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    identity: Identity = Depends(require_identity),
    messages: MessageService = Depends(get_message_service),
):
    mid = parse_id(message_id, "message")
    content = validate_content(body.content)
    with translate_errors(FAMILY, "EDIT_FAILED"):
        _require_author(await messages.get(mid), identity)
        message = await messages.edit(mid, content)
    return respond_ok(message_to_response(message))


@router.delete("/messages/{message_id}", status_code=204, response_class=Response)
async def delete_message(
    message_id: str,
    identity: Identity = Depends(require_identity),
    messages: MessageService = Depends(get_message_service),
):
    mid = parse_id(message_id, "message")
    with translate_errors(FAMILY, "DELETE_FAILED"):
        _require_author(await messages.get(mid), identity)
        await messages.delete(mid)
    return respond_no_content()
