"""Tests for message endpoints."""

import uuid

import pytest


@pytest.fixture
def chat(client, workspace, owner):
    _, headers = owner
    response = client.post(
        f"/api/v1/workspaces/{workspace['id']}/chats", json={"name": "Room"}, headers=headers
    )
    return response.json()["data"]


def _send(client, chat_id, headers, content, reply_to_id=None):
    body = {"content": content}
    if reply_to_id:
        body["reply_to_id"] = reply_to_id
    return client.post(f"/api/v1/chats/{chat_id}/messages", json=body, headers=headers)


class TestSend:
    """POST /chats/{id}/messages."""

    def test_send(self, client, chat, owner):
        """Participants post messages."""
        user, headers = owner
        response = _send(client, chat["id"], headers, "hello")
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["content"] == "hello"
        assert data["sender_id"] == str(user.id)
        assert data["is_deleted"] is False

    def test_empty_content(self, client, chat, owner):
        """Empty content is 400."""
        _, headers = owner
        response = _send(client, chat["id"], headers, "")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_non_participant(self, client, chat, make_user):
        """Outsiders get 403 NOT_PARTICIPANT."""
        _, headers = make_user("outsider")
        response = _send(client, chat["id"], headers, "hi")
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_PARTICIPANT"

    def test_unknown_chat(self, client, owner):
        """A missing chat is 404 CHAT_NOT_FOUND."""
        _, headers = owner
        response = _send(client, str(uuid.uuid4()), headers, "hi")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CHAT_NOT_FOUND"

    def test_reply(self, client, chat, owner):
        """Replies reference a message in the same chat."""
        _, headers = owner
        parent = _send(client, chat["id"], headers, "question").json()["data"]
        reply = _send(client, chat["id"], headers, "answer", parent["id"]).json()["data"]
        assert reply["reply_to_id"] == parent["id"]

    def test_reply_across_chats(self, client, workspace, chat, owner):
        """Replying to a message of another chat is 400."""
        _, headers = owner
        other = client.post(
            f"/api/v1/workspaces/{workspace['id']}/chats", json={"name": "Other"}, headers=headers
        ).json()["data"]
        parent = _send(client, other["id"], headers, "elsewhere").json()["data"]
        response = _send(client, chat["id"], headers, "answer", parent["id"])
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PARENT_IN_DIFFERENT_CHAT"


class TestList:
    """GET /chats/{id}/messages."""

    def test_newest_first(self, client, chat, owner):
        """The newest message heads the page."""
        _, headers = owner
        for text in ("one", "two", "three"):
            _send(client, chat["id"], headers, text)
        data = client.get(f"/api/v1/chats/{chat['id']}/messages", headers=headers).json()["data"]
        assert [m["content"] for m in data["messages"]] == ["three", "two", "one"]
        assert data["total"] == 3
        assert data["has_more"] is False

    def test_paging(self, client, chat, owner):
        """Offset and limit page through history."""
        _, headers = owner
        for text in ("one", "two", "three"):
            _send(client, chat["id"], headers, text)
        data = client.get(
            f"/api/v1/chats/{chat['id']}/messages?limit=2", headers=headers
        ).json()["data"]
        assert [m["content"] for m in data["messages"]] == ["three", "two"]
        assert data["has_more"] is True

    def test_deleted_message_is_tombstone(self, client, chat, owner):
        """Deleted messages stay listed with empty content."""
        _, headers = owner
        message = _send(client, chat["id"], headers, "oops").json()["data"]
        assert client.delete(f"/api/v1/messages/{message['id']}", headers=headers).status_code == 204
        data = client.get(f"/api/v1/chats/{chat['id']}/messages", headers=headers).json()["data"]
        assert data["messages"][0]["is_deleted"] is True
        assert data["messages"][0]["content"] == ""


class TestEditDelete:
    """PUT and DELETE /messages/{id}."""

    def test_author_edits(self, client, chat, owner):
        """The author can edit and edited_at is set."""
        _, headers = owner
        message = _send(client, chat["id"], headers, "draft").json()["data"]
        response = client.put(
            f"/api/v1/messages/{message['id']}", json={"content": "final"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["content"] == "final"
        assert response.json()["data"]["edited_at"] is not None

    def test_other_user_cannot_edit(self, client, chat, owner, make_user):
        """Only the author edits: 403 NOT_AUTHOR."""
        _, headers = owner
        _, other = make_user("other")
        message = _send(client, chat["id"], headers, "mine").json()["data"]
        response = client.put(
            f"/api/v1/messages/{message['id']}", json={"content": "yours"}, headers=other
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_AUTHOR"

    def test_edit_deleted_message(self, client, chat, owner):
        """Editing a tombstone is 409 MESSAGE_DELETED."""
        _, headers = owner
        message = _send(client, chat["id"], headers, "gone").json()["data"]
        client.delete(f"/api/v1/messages/{message['id']}", headers=headers)
        response = client.put(
            f"/api/v1/messages/{message['id']}", json={"content": "back"}, headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "MESSAGE_DELETED"

    def test_delete_twice(self, client, chat, owner):
        """Deleting a tombstone again is 409."""
        _, headers = owner
        message = _send(client, chat["id"], headers, "gone").json()["data"]
        client.delete(f"/api/v1/messages/{message['id']}", headers=headers)
        response = client.delete(f"/api/v1/messages/{message['id']}", headers=headers)
        assert response.status_code == 409

    def test_unknown_message(self, client, owner):
        """A missing message is 404 MESSAGE_NOT_FOUND."""
        _, headers = owner
        response = client.get(f"/api/v1/messages/{uuid.uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "MESSAGE_NOT_FOUND"
