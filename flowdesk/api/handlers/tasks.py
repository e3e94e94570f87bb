from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, List, Protocol, Tuple

from fastapi import APIRouter, Depends, Request

from flowdesk.api.auth_gate import require_page_identity
from flowdesk.api.deps import (
    get_chat_info_service,
    get_clock,
    get_member_service,
    get_renderer,
    get_task_detail_service,
    get_task_event_service,
)
from flowdesk.api.handlers.board import MemberDirectory, visible_members
from flowdesk.api.identity import Identity
from flowdesk.api.rendering import FragmentError, TemplateRenderer, fragment_errors, render_fragment
from flowdesk.api.views import (
    PRIORITY_OPTIONS,
    STATUS_OPTIONS,
    events_to_activities,
    members_to_views,
    task_to_detail,
)
from flowdesk.config import get_settings
from flowdesk.service.errors import NotFoundError
from flowdesk.storage.models import ChatBasicInfo, Member, Task, TaskEvent

router = APIRouter(tags=["tasks"])


class TaskDetailService(Protocol):
    async def get_task(self, task_id: uuid.UUID) -> Task: ...

    async def get_task_by_chat_id(self, chat_id: uuid.UUID) -> Task: ...


class TaskEventService(Protocol):
    async def get_events(self, task_id: uuid.UUID) -> List[TaskEvent]: ...


class ChatBasicInfoService(Protocol):
    async def get_chat_basic_info(self, chat_id: uuid.UUID) -> ChatBasicInfo: ...


async def _load_task(
    tasks: TaskDetailService, members: MemberDirectory, raw_id: str, identity: Identity
) -> Tuple[Task, List[Member]]:
    """The task and its workspace members; hidden tasks read as missing."""
    try:
        task_id = uuid.UUID(raw_id)
    except ValueError:
        raise FragmentError(400, "Invalid task ID") from None
    with fragment_errors("Task not found"):
        task = await tasks.get_task(task_id)
    try:
        workspace_members = await visible_members(members, task.workspace_id, identity)
    except FragmentError:
        raise FragmentError(404, "Task not found") from None
    return task, workspace_members


def _detail_data(task: Task, now: datetime, workspace_members: List[Member]) -> dict:
    return {
        "task": task_to_detail(task, now, get_settings().due_soon_days),
        "statuses": STATUS_OPTIONS,
        "priorities": PRIORITY_OPTIONS,
        "members": members_to_views(workspace_members),
    }


def _simple_view(template: str, doc: str):
    """Register a task fragment that only needs the task detail view."""

    async def view(
        request: Request,
        task_id: str,
        identity: Identity = Depends(require_page_identity),
        tasks: TaskDetailService = Depends(get_task_detail_service),
        members: MemberDirectory = Depends(get_member_service),
        renderer: TemplateRenderer = Depends(get_renderer),
        clock: Callable[[], datetime] = Depends(get_clock),
    ):
        task, workspace_members = await _load_task(tasks, members, task_id, identity)
        return render_fragment(
            renderer, template, _detail_data(task, clock(), workspace_members), request
        )

    view.__doc__ = doc
    return view


for _path, _template, _doc in (
    ("sidebar", "task/sidebar", "Task detail sidebar."),
    ("edit-title", "task/edit_title", "Inline title editor."),
    ("title-display", "task/title_display", "Title shown after editing."),
    ("edit-description", "task/edit_description", "Inline description editor."),
    ("description-display", "task/description_display", "Description shown after editing."),
    ("quick-edit", "task/quick_edit", "Status, priority, assignee and due date controls."),
):
    router.add_api_route(
        f"/partials/tasks/{{task_id}}/{_path}",
        _simple_view(_template, _doc),
        methods=["GET"],
        name=f"task_{_path.replace('-', '_')}",
    )


@router.get("/partials/tasks/{task_id}/activity")
async def task_activity(
    request: Request,
    task_id: str,
    identity: Identity = Depends(require_page_identity),
    tasks: TaskDetailService = Depends(get_task_detail_service),
    events: TaskEventService = Depends(get_task_event_service),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    """Task history, newest first."""
    task, workspace_members = await _load_task(tasks, members, task_id, identity)
    with fragment_errors("Task not found"):
        history = await events.get_events(task.id)
    names = {m.user_id: m.username or "user" for m in workspace_members}
    activities = events_to_activities(
        history, limit=get_settings().activity_limit, names=names
    )
    return render_fragment(
        renderer, "task/activity", {"task_id": str(task.id), "activities": activities}, request
    )


def _sidebar_error(renderer: TemplateRenderer, request: Request, message: str):
    return render_fragment(renderer, "chat/task_sidebar_error", {"message": message}, request)


@router.get("/partials/chats/{chat_id}/task-details")
async def chat_task_details(
    request: Request,
    chat_id: str,
    identity: Identity = Depends(require_page_identity),
    chats: ChatBasicInfoService = Depends(get_chat_info_service),
    tasks: TaskDetailService = Depends(get_task_detail_service),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Task sidebar inside a chat view; non-task chats get an explanatory panel."""
    try:
        cid = uuid.UUID(chat_id)
    except ValueError:
        raise FragmentError(400, "Invalid chat ID") from None
    with fragment_errors("Chat not found"):
        chat = await chats.get_chat_basic_info(cid)
    try:
        workspace_members = await visible_members(members, chat.workspace_id, identity)
    except FragmentError:
        raise FragmentError(404, "Chat not found") from None
    if not chat.type.is_task_family:
        return _sidebar_error(renderer, request, "This chat does not have task details")
    try:
        task = await tasks.get_task_by_chat_id(cid)
    except NotFoundError:
        return _sidebar_error(renderer, request, "Task details not available")
    data = _detail_data(task, clock(), workspace_members)
    data.update(chat=chat, participants=data["members"])
    return render_fragment(renderer, "chat/task_sidebar", data, request)
