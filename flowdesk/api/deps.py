from __future__ import annotations

from flowdesk.service.runtime import get_runtime
from flowdesk.storage.models import utcnow

# Each provider hands a handler the collaborator behind one consumer-side
# interface. Tests replace them through ``app.dependency_overrides``.


def get_token_validator():
    return get_runtime().auth


def get_user_resolver():
    return get_runtime().auth


def get_auth_service():
    return get_runtime().auth


def get_user_repository():
    return get_runtime().auth


def get_workspace_service():
    return get_runtime().workspaces


def get_member_service():
    return get_runtime().members


def get_chat_service():
    return get_runtime().chats


def get_chat_info_service():
    return get_runtime().chats


def get_message_service():
    return get_runtime().messages


def get_notification_service():
    return get_runtime().notifications


def get_board_task_service():
    return get_runtime().tasks


def get_task_detail_service():
    return get_runtime().tasks


def get_task_event_service():
    return get_runtime().tasks


def get_task_creator():
    return get_runtime().tasks


def get_action_service():
    return get_runtime().actions


def get_renderer():
    return get_runtime().renderer


def get_clock():
    """Callable returning the current UTC time; tests pin it."""
    return utcnow
