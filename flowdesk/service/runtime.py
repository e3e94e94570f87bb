from __future__ import annotations

import threading
from typing import Optional

from flowdesk.config import get_settings, reset_settings_cache
from flowdesk.logging import get_logger
from flowdesk.service.auth import MemoryAuthService
from flowdesk.service.chats import MemoryChatService
from flowdesk.service.messages import MemoryMessageService
from flowdesk.service.notifications import MemoryNotificationService
from flowdesk.service.rendering import JinjaRenderer
from flowdesk.service.tasks import MemoryActionService, MemoryTaskService
from flowdesk.service.workspaces import MemoryWorkspaceService
from flowdesk.storage.memory import MemoryStore

logger = get_logger(__name__)


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            environment=self.settings.environment.value,
            test_mode=self.settings.test_mode,
        )
        self.store = MemoryStore()
        self.notifications = MemoryNotificationService(self.store)
        self.auth = MemoryAuthService(self.store, self.settings)
        self.workspaces = MemoryWorkspaceService(self.store, self.notifications)
        # One object serves both the workspace and the member interfaces.
        self.members = self.workspaces
        self.chats = MemoryChatService(self.store)
        self.messages = MemoryMessageService(self.store)
        self.tasks = MemoryTaskService(self.store, self.chats)
        self.actions = MemoryActionService(self.store, self.notifications)
        self.renderer = JinjaRenderer(self.settings.template_dir)

        if self.settings.seed_demo_data:
            from flowdesk.service.seed import seed_demo_data

            seed_demo_data(self)
        elif self.settings.test_mode:
            from flowdesk.service.seed import seed_login_user

            seed_login_user(self)
        logger.info("runtime_init_complete", seeded=self.settings.seed_demo_data)


runtime: Optional[Runtime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking: the first check skips the lock once the
    runtime exists, the second prevents two threads creating it at once.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime
    with _runtime_lock:
        reset_settings_cache()
        runtime = Runtime()
        return runtime
