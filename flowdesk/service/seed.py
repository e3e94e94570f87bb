from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import TYPE_CHECKING

from flowdesk.logging import get_logger
from flowdesk.storage.models import (
    ChatType,
    CreateTaskCommand,
    EntityType,
    TaskPriority,
    TaskStatus,
    User,
    WorkspaceRole,
    utcnow,
)

if TYPE_CHECKING:
    from flowdesk.service.runtime import Runtime

logger = get_logger(__name__)

DEMO_LOGIN_CODE = "valid"


def seed_login_user(runtime: "Runtime") -> User:
    """Create the demo user and register the ``valid`` authorization code for it."""
    user = runtime.store.get_user_by_external_id("demo")
    if user is None:
        user = runtime.store.create_user(
            "demo", "demo@example.com", external_id="demo", display_name="Demo User"
        )
    runtime.auth.register_code(DEMO_LOGIN_CODE, user)
    return user


async def _seed(runtime: "Runtime") -> None:
    demo = seed_login_user(runtime)
    teammate = runtime.store.create_user(
        "alex", "alex@example.com", external_id="alex", display_name="Alex Teammate"
    )
    workspace = await runtime.workspaces.create("Demo", "Sample workspace", demo.id)
    await runtime.workspaces.add_member(workspace.id, teammate.id, WorkspaceRole.MEMBER)

    general = await runtime.chats.create(
        workspace.id, demo.id, ChatType.DISCUSSION, "General",
        is_public=True, participant_ids=[teammate.id],
    )
    await runtime.messages.send(general.id, demo.id, "Welcome to the demo workspace")

    now = utcnow()
    samples = [
        ("Set up project board", EntityType.TASK, TaskPriority.HIGH, TaskStatus.IN_PROGRESS, 2),
        ("Login button misaligned", EntityType.BUG, TaskPriority.CRITICAL, TaskStatus.TODO, -1),
        ("Q3 roadmap", EntityType.EPIC, TaskPriority.MEDIUM, TaskStatus.IN_REVIEW, 14),
        ("Write onboarding guide", EntityType.TASK, TaskPriority.LOW, TaskStatus.DONE, None),
    ]
    for title, entity_type, priority, status, due_in_days in samples:
        task = await runtime.tasks.create_task(
            CreateTaskCommand(
                workspace_id=workspace.id,
                title=title,
                created_by=demo.id,
                entity_type=entity_type,
                priority=priority,
                assignee_id=teammate.id if entity_type is EntityType.BUG else None,
                due_date=now + timedelta(days=due_in_days) if due_in_days is not None else None,
            )
        )
        if status is not TaskStatus.TODO:
            await runtime.actions.change_status(task.chat_id, demo.id, status)
    logger.info("demo_data_seeded", workspace_id=str(workspace.id))


def seed_demo_data(runtime: "Runtime") -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_seed(runtime))
        return
    # Called from inside an event loop (app startup): seed on a worker thread.
    with ThreadPoolExecutor(max_workers=1) as pool:
        pool.submit(asyncio.run, _seed(runtime)).result()
