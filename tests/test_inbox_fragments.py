"""Tests for the notifications page and its fragments."""

import uuid
from datetime import timedelta

import pytest

from flowdesk.storage.models import NotificationType, utcnow


@pytest.fixture
def inbox(runtime, owner):
    """Three notifications for ``owner``; the oldest is already read."""
    user, _ = owner
    base = utcnow()
    items = []
    kinds = (
        NotificationType.WORKSPACE_INVITE,
        NotificationType.CHAT_MENTION,
        NotificationType.TASK_ASSIGNED,
    )
    for index, kind in enumerate(kinds):
        notification = runtime.notifications.notify(
            user.id, kind, f"note-{index}", "body", f"res-{index}"
        )
        notification.created_at = base + timedelta(seconds=index)
        items.append(notification)
    items[0].is_read = True
    items[0].read_at = base
    return items


class TestInboxPage:
    """GET /notifications."""

    def test_page_shows_unread_count(self, client, owner, inbox):
        """The page header counts unread notifications and keeps the filter."""
        _, headers = owner
        response = client.get("/notifications?filter=unread", headers=headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert "2 unread" in response.text
        assert "/partials/notifications/list?filter=unread" in response.text

    def test_requires_login(self, client):
        """Anonymous browsers are sent to the login page."""
        response = client.get("/notifications", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"


class TestInboxFragments:
    """Dropdown, badge and list fragments."""

    def test_badge_count(self, client, owner, inbox):
        """The badge shows the unread count."""
        _, headers = owner
        response = client.get("/partials/notifications/count", headers=headers)
        assert response.status_code == 200
        assert 'data-count="2"' in response.text

    def test_badge_empty(self, client, owner):
        """No unread notifications renders an empty badge."""
        _, headers = owner
        response = client.get("/partials/notifications/count", headers=headers)
        assert 'data-count="0"' in response.text
        assert "empty" in response.text

    def test_dropdown_lists_recent(self, client, owner, inbox):
        """The dropdown lists read and unread notifications, newest first."""
        _, headers = owner
        text = client.get("/partials/notifications", headers=headers).text
        assert text.index("note-2") < text.index("note-1") < text.index("note-0")
        assert 'data-unread-count="2"' in text
        assert "View all" not in text

    def test_dropdown_limit(self, client, owner, inbox):
        """A limit trims the dropdown and offers the full page."""
        _, headers = owner
        text = client.get("/partials/notifications?limit=1", headers=headers).text
        assert "note-2" in text
        assert "note-1" not in text
        assert "View all" in text

    def test_unread_filter(self, client, owner, inbox):
        """filter=unread hides read notifications."""
        _, headers = owner
        text = client.get("/partials/notifications/list?filter=unread", headers=headers).text
        assert "note-0" not in text
        assert "note-1" in text
        assert "note-2" in text

    def test_list_pages_forward(self, client, owner, inbox):
        """A partial page links to the next offset with the filter kept."""
        _, headers = owner
        text = client.get(
            "/partials/notifications/list?filter=unread&limit=1", headers=headers
        ).text
        assert "note-2" in text
        assert "note-1" not in text
        assert "/partials/notifications/list?offset=1&filter=unread" in text

    def test_empty_unread_list(self, client, owner):
        """An empty unread list says so."""
        _, headers = owner
        text = client.get("/partials/notifications/list?filter=unread", headers=headers).text
        assert "No unread notifications" in text

    def test_items_link_through_redirect(self, client, owner, inbox):
        """Items open through the mark-read redirect."""
        _, headers = owner
        text = client.get("/partials/notifications/list", headers=headers).text
        assert f"/notifications/{inbox[1].id}/redirect" in text

    def test_fragments_htmx_gate(self, client):
        """HTMX callers without a session get 401 with HX-Redirect."""
        response = client.get("/partials/notifications/count", headers={"HX-Request": "true"})
        assert response.status_code == 401
        assert response.headers["HX-Redirect"] == "/login"


class TestNotificationRedirect:
    """GET /notifications/{id}/redirect."""

    def test_marks_read_and_redirects(self, client, runtime, owner, inbox):
        """Opening an unread notification marks it read and follows its link."""
        _, headers = owner
        response = client.get(
            f"/notifications/{inbox[2].id}/redirect", headers=headers, follow_redirects=False
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/tasks/res-2"
        assert runtime.store.get_notification(inbox[2].id).is_read is True

    def test_already_read_still_redirects(self, client, owner, inbox):
        """Read notifications redirect without complaint."""
        _, headers = owner
        response = client.get(
            f"/notifications/{inbox[0].id}/redirect", headers=headers, follow_redirects=False
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/workspaces/res-0"

    def test_htmx_gets_hx_redirect(self, client, owner, inbox):
        """HTMX callers get 200 with HX-Redirect."""
        _, headers = owner
        response = client.get(
            f"/notifications/{inbox[1].id}/redirect",
            headers={**headers, "HX-Request": "true"},
            follow_redirects=False,
        )
        assert response.status_code == 200
        assert response.headers["HX-Redirect"] == "/chats/res-1"

    def test_missing_resource_goes_to_inbox(self, client, runtime, owner):
        """Notifications without a resource land on the inbox."""
        user, headers = owner
        notification = runtime.notifications.notify(user.id, NotificationType.SYSTEM, "hi", "body")
        response = client.get(
            f"/notifications/{notification.id}/redirect", headers=headers, follow_redirects=False
        )
        assert response.headers["location"] == "/notifications"

    @pytest.mark.parametrize("raw_id", ["not-a-uuid", str(uuid.uuid4())])
    def test_unknown_goes_to_inbox(self, client, owner, raw_id):
        """Invalid or unknown ids land on the inbox."""
        _, headers = owner
        response = client.get(
            f"/notifications/{raw_id}/redirect", headers=headers, follow_redirects=False
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/notifications"

    def test_other_users_notification(self, client, runtime, owner, inbox, make_user):
        """Someone else's notification is neither read nor followed."""
        _, headers = make_user("intruder")
        response = client.get(
            f"/notifications/{inbox[2].id}/redirect", headers=headers, follow_redirects=False
        )
        assert response.headers["location"] == "/notifications"
        assert runtime.store.get_notification(inbox[2].id).is_read is False
