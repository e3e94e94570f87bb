from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from flowdesk.logging import get_logger
from flowdesk.storage.models import (
    Chat,
    Member,
    Message,
    Notification,
    Session,
    Task,
    TaskEvent,
    User,
    Workspace,
    new_id,
    utcnow,
)


class MemoryStore:
    """In-memory backing store shared by the in-memory services.

    Every read and write goes through one re-entrant lock so services can
    compose several store calls into one atomic step with ``with store.lock``.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[uuid.UUID, User] = {}
        self.workspaces: Dict[uuid.UUID, Workspace] = {}
        # workspace id -> user id -> membership
        self.members: Dict[uuid.UUID, Dict[uuid.UUID, Member]] = {}
        self.chats: Dict[uuid.UUID, Chat] = {}
        self.messages: Dict[uuid.UUID, Message] = {}
        self.chat_messages: Dict[uuid.UUID, List[uuid.UUID]] = {}
        self.notifications: Dict[uuid.UUID, Notification] = {}
        self.tasks: Dict[uuid.UUID, Task] = {}
        self.task_by_chat: Dict[uuid.UUID, uuid.UUID] = {}
        self.task_events: Dict[uuid.UUID, List[TaskEvent]] = {}
        self.sessions_by_access: Dict[str, Session] = {}
        self.sessions_by_refresh: Dict[str, Session] = {}
        self.auth_codes: Dict[str, uuid.UUID] = {}
        self.lock = threading.RLock()

    # Users

    def create_user(
        self,
        username: str,
        email: str,
        *,
        external_id: Optional[str] = None,
        display_name: str = "",
        avatar_url: Optional[str] = None,
        is_system_admin: bool = False,
        user_id: Optional[uuid.UUID] = None,
    ) -> User:
        user = User(
            id=user_id or new_id(),
            external_id=external_id or f"ext-{username}",
            username=username,
            email=email,
            display_name=display_name or username,
            avatar_url=avatar_url,
            is_system_admin=is_system_admin,
        )
        with self.lock:
            self.users[user.id] = user
        self.logger.debug("user_created", user_id=str(user.id), username=username)
        return user

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        with self.lock:
            return self.users.get(user_id)

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self.lock:
            for user in self.users.values():
                if user.external_id == external_id:
                    return user
        return None

    def delete_user(self, user_id: uuid.UUID) -> None:
        with self.lock:
            self.users.pop(user_id, None)

    # Sessions

    def save_session(self, session: Session) -> None:
        with self.lock:
            self.sessions_by_access[session.access_token] = session
            self.sessions_by_refresh[session.refresh_token] = session

    def get_session_by_access(self, token: str) -> Optional[Session]:
        with self.lock:
            return self.sessions_by_access.get(token)

    def get_session_by_refresh(self, token: str) -> Optional[Session]:
        with self.lock:
            return self.sessions_by_refresh.get(token)

    def delete_session(self, session: Session) -> None:
        with self.lock:
            self.sessions_by_access.pop(session.access_token, None)
            self.sessions_by_refresh.pop(session.refresh_token, None)

    def delete_user_sessions(self, user_id: uuid.UUID) -> int:
        with self.lock:
            doomed = [s for s in self.sessions_by_access.values() if s.user_id == user_id]
            for session in doomed:
                self.delete_session(session)
        return len(doomed)

    # Workspaces and membership

    def save_workspace(self, workspace: Workspace) -> Workspace:
        with self.lock:
            self.workspaces[workspace.id] = workspace
            self.members.setdefault(workspace.id, {})
        return workspace

    def get_workspace(self, workspace_id: uuid.UUID) -> Optional[Workspace]:
        with self.lock:
            workspace = self.workspaces.get(workspace_id)
            if workspace is not None:
                workspace.member_count = len(self.members.get(workspace_id, {}))
            return workspace

    def list_workspaces(self, user_id: Optional[uuid.UUID] = None) -> List[Workspace]:
        """Workspaces ordered by creation time; all of them when ``user_id`` is None."""
        with self.lock:
            result = []
            for workspace in self.workspaces.values():
                if user_id is not None and user_id not in self.members.get(workspace.id, {}):
                    continue
                workspace.member_count = len(self.members.get(workspace.id, {}))
                result.append(workspace)
        return sorted(result, key=lambda w: w.created_at)

    def delete_workspace(self, workspace_id: uuid.UUID) -> bool:
        """Remove a workspace, its memberships and every chat in it."""
        with self.lock:
            existed = self.workspaces.pop(workspace_id, None) is not None
            self.members.pop(workspace_id, None)
            for chat in self.list_chats(workspace_id):
                self.delete_chat(chat.id)
        return existed

    def save_member(self, member: Member) -> Member:
        with self.lock:
            self.members.setdefault(member.workspace_id, {})[member.user_id] = member
        return member

    def get_member(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Member]:
        with self.lock:
            return self.members.get(workspace_id, {}).get(user_id)

    def list_members(self, workspace_id: uuid.UUID) -> List[Member]:
        with self.lock:
            members = list(self.members.get(workspace_id, {}).values())
            for member in members:
                user = self.users.get(member.user_id)
                if user is not None:
                    member.username = user.username
                    member.email = user.email
        return sorted(members, key=lambda m: m.joined_at)

    def delete_member(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        with self.lock:
            return self.members.get(workspace_id, {}).pop(user_id, None) is not None

    # Chats

    def save_chat(self, chat: Chat) -> Chat:
        with self.lock:
            self.chats[chat.id] = chat
            self.chat_messages.setdefault(chat.id, [])
        return chat

    def get_chat(self, chat_id: uuid.UUID) -> Optional[Chat]:
        with self.lock:
            return self.chats.get(chat_id)

    def list_chats(self, workspace_id: uuid.UUID) -> List[Chat]:
        with self.lock:
            chats = [c for c in self.chats.values() if c.workspace_id == workspace_id]
        return sorted(chats, key=lambda c: c.created_at)

    def delete_chat(self, chat_id: uuid.UUID) -> Optional[Chat]:
        """Remove a chat together with its messages and task read model."""
        with self.lock:
            chat = self.chats.pop(chat_id, None)
            for message_id in self.chat_messages.pop(chat_id, []):
                self.messages.pop(message_id, None)
            task_id = self.task_by_chat.pop(chat_id, None)
            if task_id is not None:
                self.tasks.pop(task_id, None)
                self.task_events.pop(task_id, None)
        return chat

    # Messages

    def save_message(self, message: Message) -> Message:
        with self.lock:
            if message.id not in self.messages:
                self.chat_messages.setdefault(message.chat_id, []).append(message.id)
            self.messages[message.id] = message
        return message

    def get_message(self, message_id: uuid.UUID) -> Optional[Message]:
        with self.lock:
            return self.messages.get(message_id)

    def list_messages(self, chat_id: uuid.UUID) -> List[Message]:
        """Messages of a chat, newest first."""
        with self.lock:
            ids = list(self.chat_messages.get(chat_id, []))
            messages = [self.messages[i] for i in ids if i in self.messages]
        messages.reverse()
        return messages

    # Notifications

    def save_notification(self, notification: Notification) -> Notification:
        with self.lock:
            self.notifications[notification.id] = notification
        return notification

    def get_notification(self, notification_id: uuid.UUID) -> Optional[Notification]:
        with self.lock:
            return self.notifications.get(notification_id)

    def list_notifications(
        self, user_id: uuid.UUID, *, unread_only: bool = False
    ) -> List[Notification]:
        """Notifications of a user, newest first."""
        with self.lock:
            result = [
                n
                for n in self.notifications.values()
                if n.user_id == user_id and not (unread_only and n.is_read)
            ]
        return sorted(result, key=lambda n: n.created_at, reverse=True)

    def delete_notification(self, notification_id: uuid.UUID) -> bool:
        with self.lock:
            return self.notifications.pop(notification_id, None) is not None

    # Tasks

    def save_task(self, task: Task) -> Task:
        with self.lock:
            self.tasks[task.id] = task
            self.task_by_chat[task.chat_id] = task.id
        return task

    def get_task(self, task_id: uuid.UUID) -> Optional[Task]:
        with self.lock:
            return self.tasks.get(task_id)

    def get_task_by_chat(self, chat_id: uuid.UUID) -> Optional[Task]:
        with self.lock:
            task_id = self.task_by_chat.get(chat_id)
            return self.tasks.get(task_id) if task_id is not None else None

    def list_tasks(self, workspace_id: Optional[uuid.UUID] = None) -> List[Task]:
        with self.lock:
            tasks = [
                t for t in self.tasks.values()
                if workspace_id is None or t.workspace_id == workspace_id
            ]
        return sorted(tasks, key=lambda t: t.created_at)

    def append_task_event(
        self,
        task_id: uuid.UUID,
        event_type: str,
        actor_id: uuid.UUID,
        *,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> TaskEvent:
        event = TaskEvent(
            id=new_id(),
            task_id=task_id,
            event_type=event_type,
            actor_id=actor_id,
            occurred_at=occurred_at or utcnow(),
            old_value=old_value,
            new_value=new_value,
        )
        with self.lock:
            self.task_events.setdefault(task_id, []).append(event)
        return event

    def list_task_events(self, task_id: uuid.UUID) -> List[TaskEvent]:
        """Events of a task in the order they occurred."""
        with self.lock:
            return list(self.task_events.get(task_id, []))


def page(items: Iterable, offset: int, limit: int) -> Tuple[list, int]:
    """Slice ``items`` and return the slice with the total count."""
    items = list(items)
    return items[offset:offset + limit], len(items)
