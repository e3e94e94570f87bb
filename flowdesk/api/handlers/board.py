from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol

from fastapi import APIRouter, Depends, Form, Query, Request

from flowdesk.api.auth_gate import require_page_identity
from flowdesk.api.deps import (
    get_board_task_service,
    get_clock,
    get_member_service,
    get_renderer,
    get_task_creator,
    get_workspace_service,
)
from flowdesk.api.identity import Identity
from flowdesk.api.rendering import FragmentError, TemplateRenderer, fragment_errors, render_fragment
from flowdesk.api.validation import validate_due_date
from flowdesk.api.views import (
    BOARD_COLUMNS,
    PRIORITY_OPTIONS,
    BoardColumn,
    BoardFilters,
    ColumnView,
    build_task_filters,
    members_to_views,
    parse_status_key,
    task_to_card,
)
from flowdesk.config import get_settings
from flowdesk.logging import get_logger
from flowdesk.service.errors import ValidationError
from flowdesk.storage.models import (
    CreateTaskCommand,
    EntityType,
    Member,
    Task,
    TaskFilters,
    TaskPriority,
    Workspace,
)

logger = get_logger(__name__)

router = APIRouter(tags=["board"])

TASK_TYPES = (EntityType.TASK, EntityType.BUG, EntityType.EPIC)


class BoardTaskService(Protocol):
    async def list_tasks(self, filters: TaskFilters) -> List[Task]: ...

    async def count_tasks(self, filters: TaskFilters) -> int: ...

    async def get_task(self, task_id: uuid.UUID) -> Task: ...


class TaskCreator(Protocol):
    async def create_task(self, command: CreateTaskCommand) -> Task: ...


class MemberDirectory(Protocol):
    async def list_members(self, workspace_id: uuid.UUID) -> List[Member]: ...


class WorkspaceLookup(Protocol):
    async def get(self, workspace_id: uuid.UUID) -> Workspace: ...


def _parse_fragment_id(raw: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except (TypeError, ValueError):
        raise FragmentError(400, message) from None


async def visible_members(
    members: MemberDirectory, workspace_id: uuid.UUID, identity: Identity
) -> List[Member]:
    """Workspace members, or 404 when the caller cannot see the workspace."""
    with fragment_errors("Workspace not found"):
        listed = await members.list_members(workspace_id)
    if not identity.is_system_admin and all(m.user_id != identity.user_id for m in listed):
        raise FragmentError(404, "Workspace not found")
    return listed


def _names(members: List[Member]) -> Dict[uuid.UUID, str]:
    return {m.user_id: m.username or "user" for m in members}


async def _load_column(
    tasks: BoardTaskService,
    column: BoardColumn,
    base: TaskFilters,
    *,
    offset: int,
    limit: int,
    now: datetime,
    names: Dict[uuid.UUID, str],
) -> ColumnView:
    filters = replace(base, status=column.status, offset=offset, limit=limit)
    items = await tasks.list_tasks(filters)
    total = await tasks.count_tasks(filters)
    return ColumnView(
        status=column.key,
        title=column.title,
        workspace_id=str(base.workspace_id),
        tasks=[task_to_card(t, now, names) for t in items],
        total_count=total,
    )


async def _load_columns(
    tasks: BoardTaskService,
    base: TaskFilters,
    now: datetime,
    names: Dict[uuid.UUID, str],
) -> List[ColumnView]:
    limit = get_settings().board_column_limit
    with fragment_errors():
        return [
            await _load_column(tasks, column, base, offset=0, limit=limit, now=now, names=names)
            for column in BOARD_COLUMNS
        ]


def _board_data(
    workspace_id: uuid.UUID,
    columns: List[ColumnView],
    filters: BoardFilters,
    members: List[Member],
) -> dict:
    return {
        "workspace_id": str(workspace_id),
        "columns": columns,
        "filters": filters,
        "members": members_to_views(members),
        "total_tasks": sum(c.total_count for c in columns),
    }


@router.get("/partials/workspace/{workspace_id}/board")
async def board_columns(
    request: Request,
    workspace_id: str,
    type: str = Query(""),
    assignee: str = Query(""),
    priority: str = Query(""),
    search: str = Query(""),
    identity: Identity = Depends(require_page_identity),
    tasks: BoardTaskService = Depends(get_board_task_service),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """All four columns, each with its first page of cards."""
    ws_id = _parse_fragment_id(workspace_id, "Invalid workspace ID")
    workspace_members = await visible_members(members, ws_id, identity)
    filters = BoardFilters(type=type, assignee=assignee, priority=priority, search=search)
    base = build_task_filters(ws_id, filters, identity.user_id)
    columns = await _load_columns(tasks, base, clock(), _names(workspace_members))
    return render_fragment(
        renderer,
        "board/columns",
        _board_data(ws_id, columns, filters, workspace_members),
        request,
    )


@router.get("/partials/workspace/{workspace_id}/board/{status}/more")
async def board_column_more(
    request: Request,
    workspace_id: str,
    status: str,
    offset: str = Query("0"),
    type: str = Query(""),
    assignee: str = Query(""),
    priority: str = Query(""),
    search: str = Query(""),
    identity: Identity = Depends(require_page_identity),
    tasks: BoardTaskService = Depends(get_board_task_service),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """The next page of one column's cards."""
    ws_id = _parse_fragment_id(workspace_id, "Invalid workspace ID")
    task_status = parse_status_key(status)
    if task_status is None:
        raise FragmentError(400, "Invalid status")
    try:
        start = max(int(offset), 0)
    except ValueError:
        start = 0
    workspace_members = await visible_members(members, ws_id, identity)
    filters = BoardFilters(type=type, assignee=assignee, priority=priority, search=search)
    base = build_task_filters(ws_id, filters, identity.user_id)
    column = next(c for c in BOARD_COLUMNS if c.status is task_status)
    with fragment_errors():
        view = await _load_column(
            tasks,
            column,
            base,
            offset=start,
            limit=get_settings().board_column_limit,
            now=clock(),
            names=_names(workspace_members),
        )
    next_offset = start + view.count
    return render_fragment(
        renderer,
        "board/column_more",
        {
            "column": view,
            "workspace_id": str(ws_id),
            "offset": next_offset,
            "has_more": next_offset < view.total_count,
            "filters": filters,
        },
        request,
    )


@router.get("/partials/tasks/{task_id}/card")
async def task_card(
    request: Request,
    task_id: str,
    identity: Identity = Depends(require_page_identity),
    tasks: BoardTaskService = Depends(get_board_task_service),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    tid = _parse_fragment_id(task_id, "Invalid task ID")
    with fragment_errors("Task not found"):
        task = await tasks.get_task(tid)
    try:
        workspace_members = await visible_members(members, task.workspace_id, identity)
    except FragmentError:
        raise FragmentError(404, "Task not found") from None
    card = task_to_card(task, clock(), _names(workspace_members))
    return render_fragment(renderer, "components/task_card", {"task": card}, request)


@router.get("/partials/task/create-form")
async def task_create_form(
    request: Request,
    workspace_id: str = Query(""),
    identity: Identity = Depends(require_page_identity),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
):
    if not workspace_id:
        raise FragmentError(400, "workspace_id is required")
    ws_id = _parse_fragment_id(workspace_id, "Invalid workspace ID")
    workspace_members = await visible_members(members, ws_id, identity)
    return render_fragment(
        renderer,
        "task/create_form",
        {
            "workspace_id": str(ws_id),
            "members": members_to_views(workspace_members),
            "types": [t.value for t in TASK_TYPES],
            "priorities": PRIORITY_OPTIONS,
        },
        request,
    )


def _optional_assignee(raw: str, workspace_members: List[Member]) -> Optional[uuid.UUID]:
    """Unparseable or non-member assignees are dropped rather than rejected."""
    try:
        assignee_id = uuid.UUID(raw) if raw else None
    except ValueError:
        return None
    if assignee_id is not None and all(m.user_id != assignee_id for m in workspace_members):
        return None
    return assignee_id


def _optional_due_date(raw: str) -> Optional[datetime]:
    try:
        return validate_due_date(raw)
    except ValidationError:
        return None


@router.post("/partials/task/create")
async def create_task(
    request: Request,
    workspace_id: str = Form(""),
    title: str = Form(""),
    type: str = Form(""),
    priority: str = Form(""),
    assignee_id: str = Form(""),
    due_date: str = Form(""),
    filter_type: str = Form(""),
    filter_assignee: str = Form(""),
    filter_priority: str = Form(""),
    filter_search: str = Form(""),
    identity: Identity = Depends(require_page_identity),
    tasks: BoardTaskService = Depends(get_board_task_service),
    creator: TaskCreator = Depends(get_task_creator),
    members: MemberDirectory = Depends(get_member_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Create a task from the board form and answer with the refreshed columns."""
    if not workspace_id:
        raise FragmentError(400, "workspace_id is required")
    ws_id = _parse_fragment_id(workspace_id, "invalid workspace ID")
    title = title.strip()
    if not title:
        raise FragmentError(400, "title is required")
    try:
        entity_type = EntityType((type or EntityType.TASK.value).lower())
    except ValueError:
        entity_type = None
    if entity_type not in TASK_TYPES:
        raise FragmentError(400, "invalid task type")
    try:
        task_priority = TaskPriority((priority or TaskPriority.MEDIUM.value).lower())
    except ValueError:
        task_priority = TaskPriority.MEDIUM

    workspace_members = await visible_members(members, ws_id, identity)
    command = CreateTaskCommand(
        workspace_id=ws_id,
        title=title,
        created_by=identity.user_id,
        entity_type=entity_type,
        priority=task_priority,
        assignee_id=_optional_assignee(assignee_id, workspace_members),
        due_date=_optional_due_date(due_date),
    )
    with fragment_errors():
        task = await creator.create_task(command)
    logger.info("board_task_created", task_id=str(task.id), user_id=str(identity.user_id))

    # Form filter fields win over query parameters.
    params = request.query_params
    filters = BoardFilters(
        type=filter_type or params.get("type", ""),
        assignee=filter_assignee or params.get("assignee", ""),
        priority=filter_priority or params.get("priority", ""),
        search=filter_search or params.get("search", ""),
    )
    base = build_task_filters(ws_id, filters, identity.user_id)
    columns = await _load_columns(tasks, base, clock(), _names(workspace_members))
    return render_fragment(
        renderer,
        "board/columns",
        _board_data(ws_id, columns, filters, workspace_members),
        request,
    )


@router.get("/workspaces/{workspace_id}/board")
async def board_page(
    request: Request,
    workspace_id: str,
    identity: Identity = Depends(require_page_identity),
    tasks: BoardTaskService = Depends(get_board_task_service),
    members: MemberDirectory = Depends(get_member_service),
    workspaces: WorkspaceLookup = Depends(get_workspace_service),
    renderer: TemplateRenderer = Depends(get_renderer),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Full board page for a workspace."""
    ws_id = _parse_fragment_id(workspace_id, "Invalid workspace ID")
    with fragment_errors("Workspace not found"):
        workspace = await workspaces.get(ws_id)
    workspace_members = await visible_members(members, ws_id, identity)
    filters = BoardFilters()
    base = build_task_filters(ws_id, filters, identity.user_id)
    columns = await _load_columns(tasks, base, clock(), _names(workspace_members))
    data = _board_data(ws_id, columns, filters, workspace_members)
    data.update(workspace=workspace, identity=identity)
    return render_fragment(renderer, "board/index", data, request)
