"""Tests for workspace and membership endpoints."""

import uuid


def _add_member(client, workspace_id, headers, user_id, role="member"):
    return client.post(
        f"/api/v1/workspaces/{workspace_id}/members",
        json={"user_id": str(user_id), "role": role},
        headers=headers,
    )


class TestWorkspaceCreate:
    """Creating and reading workspaces."""

    def test_create_then_get(self, client, owner):
        """The creator can read back what was created."""
        user, headers = owner
        created = client.post(
            "/api/v1/workspaces",
            json={"name": "Test", "description": "launch planning"},
            headers=headers,
        )
        assert created.status_code == 201
        data = created.json()["data"]

        response = client.get(f"/api/v1/workspaces/{data['id']}", headers=headers)
        assert response.status_code == 200
        fetched = response.json()["data"]
        assert fetched["name"] == "Test"
        assert fetched["description"] == "launch planning"
        assert fetched["owner_id"] == str(user.id)
        assert fetched["member_count"] >= 1

    def test_non_member_forbidden(self, client, workspace, make_user):
        """A caller outside the workspace gets 403."""
        _, outsider = make_user("outsider")
        response = client.get(f"/api/v1/workspaces/{workspace['id']}", headers=outsider)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ACCESS_DENIED"

    def test_name_required(self, client, owner):
        """An empty name is 400 VALIDATION_ERROR."""
        _, headers = owner
        response = client.post("/api/v1/workspaces", json={"name": ""}, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_name_too_long(self, client, owner):
        """Names over 100 characters are rejected."""
        _, headers = owner
        response = client.post("/api/v1/workspaces", json={"name": "x" * 101}, headers=headers)
        assert response.status_code == 400

    def test_unknown_workspace(self, client, owner):
        """A missing workspace is 404 WORKSPACE_NOT_FOUND."""
        _, headers = owner
        response = client.get(f"/api/v1/workspaces/{uuid.uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WORKSPACE_NOT_FOUND"

    def test_invalid_workspace_id(self, client, owner):
        """A malformed id is 400 INVALID_WORKSPACE_ID."""
        _, headers = owner
        response = client.get("/api/v1/workspaces/not-a-uuid", headers=headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_WORKSPACE_ID"


class TestWorkspaceList:
    """GET /workspaces."""

    def test_lists_only_own_workspaces(self, client, workspace, make_user):
        """Users see the workspaces they belong to."""
        _, other = make_user("other")
        client.post("/api/v1/workspaces", json={"name": "Mine"}, headers=other)
        data = client.get("/api/v1/workspaces", headers=other).json()["data"]
        assert [w["name"] for w in data["workspaces"]] == ["Mine"]
        assert data["total"] == 1

    def test_system_admin_sees_all(self, client, workspace, make_user):
        """System admins list every workspace."""
        _, admin = make_user("root", is_system_admin=True)
        data = client.get("/api/v1/workspaces", headers=admin).json()["data"]
        assert workspace["id"] in [w["id"] for w in data["workspaces"]]

    def test_limit_is_clamped(self, client, workspace, owner):
        """An oversized limit is clamped to 100."""
        _, headers = owner
        data = client.get("/api/v1/workspaces?limit=500", headers=headers).json()["data"]
        assert data["limit"] == 100


class TestWorkspaceMutations:
    """Update and delete."""

    def test_admin_can_update(self, client, workspace, make_user, owner):
        """Workspace admins may rename."""
        _, owner_headers = owner
        admin, admin_headers = make_user("admin")
        _add_member(client, workspace["id"], owner_headers, admin.id, "admin")
        response = client.put(
            f"/api/v1/workspaces/{workspace['id']}",
            json={"name": "Renamed"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Renamed"

    def test_member_cannot_update(self, client, workspace, make_user, owner):
        """Plain members may not rename."""
        _, owner_headers = owner
        member, member_headers = make_user("member")
        _add_member(client, workspace["id"], owner_headers, member.id)
        response = client.put(
            f"/api/v1/workspaces/{workspace['id']}",
            json={"name": "Renamed"},
            headers=member_headers,
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "INSUFFICIENT_PRIVILEGE"

    def test_only_owner_deletes(self, client, workspace, make_user, owner):
        """Admins cannot delete; the owner can."""
        _, owner_headers = owner
        admin, admin_headers = make_user("admin")
        _add_member(client, workspace["id"], owner_headers, admin.id, "admin")

        denied = client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=admin_headers)
        assert denied.status_code == 403

        deleted = client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=owner_headers)
        assert deleted.status_code == 204
        assert deleted.content == b""
        gone = client.get(f"/api/v1/workspaces/{workspace['id']}", headers=owner_headers)
        assert gone.status_code == 404

    def test_delete_removes_chats(self, client, runtime, workspace, owner):
        """Chats and messages of a deleted workspace are gone too."""
        _, headers = owner
        chat = client.post(
            f"/api/v1/workspaces/{workspace['id']}/chats",
            json={"name": "Launch", "type": "task"},
            headers=headers,
        ).json()["data"]
        client.post(f"/api/v1/chats/{chat['id']}/messages", json={"content": "hi"}, headers=headers)

        deleted = client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=headers)
        assert deleted.status_code == 204

        fetched = client.get(f"/api/v1/chats/{chat['id']}", headers=headers)
        assert fetched.status_code == 404
        assert fetched.json()["error"]["code"] == "CHAT_NOT_FOUND"
        posted = client.post(
            f"/api/v1/chats/{chat['id']}/messages", json={"content": "late"}, headers=headers
        )
        assert posted.status_code == 404
        assert posted.json()["error"]["code"] == "CHAT_NOT_FOUND"
        assert runtime.store.messages == {}
        assert runtime.store.list_tasks() == []

    def test_chats_of_deleted_workspace(self, client, workspace, owner):
        """Listing or creating chats in a deleted workspace is 404."""
        _, headers = owner
        client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=headers)
        listed = client.get(f"/api/v1/workspaces/{workspace['id']}/chats", headers=headers)
        assert listed.status_code == 404
        assert listed.json()["error"]["code"] == "WORKSPACE_NOT_FOUND"
        created = client.post(
            f"/api/v1/workspaces/{workspace['id']}/chats", json={"name": "x"}, headers=headers
        )
        assert created.status_code == 404
        assert created.json()["error"]["code"] == "WORKSPACE_NOT_FOUND"


class TestMembers:
    """Membership endpoints."""

    def test_add_and_list_members(self, client, workspace, make_user, owner):
        """Added members appear in the member list."""
        _, owner_headers = owner
        member, _ = make_user("member")
        added = _add_member(client, workspace["id"], owner_headers, member.id)
        assert added.status_code == 201
        assert added.json()["data"]["role"] == "member"

        data = client.get(
            f"/api/v1/workspaces/{workspace['id']}/members", headers=owner_headers
        ).json()["data"]
        assert data["total"] == 2
        assert {m["role"] for m in data["members"]} == {"owner", "member"}

    def test_add_member_sends_invite(self, client, workspace, make_user, owner):
        """The new member is notified."""
        _, owner_headers = owner
        member, member_headers = make_user("member")
        _add_member(client, workspace["id"], owner_headers, member.id)
        data = client.get("/api/v1/notifications", headers=member_headers).json()["data"]
        assert data["notifications"][0]["type"] == "workspace.invite"
        assert data["notifications"][0]["link"] == f"/workspaces/{workspace['id']}"

    def test_owner_role_not_assignable(self, client, workspace, make_user, owner):
        """Adding someone as owner is 400."""
        _, owner_headers = owner
        member, _ = make_user("member")
        response = _add_member(client, workspace["id"], owner_headers, member.id, "owner")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_duplicate_member(self, client, workspace, make_user, owner):
        """Adding an existing member is 409 MEMBER_ALREADY_EXISTS."""
        _, owner_headers = owner
        member, _ = make_user("member")
        _add_member(client, workspace["id"], owner_headers, member.id)
        response = _add_member(client, workspace["id"], owner_headers, member.id)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "MEMBER_ALREADY_EXISTS"

    def test_unknown_user(self, client, workspace, owner):
        """Adding a user that does not exist is 404 USER_NOT_FOUND."""
        _, owner_headers = owner
        response = _add_member(client, workspace["id"], owner_headers, uuid.uuid4())
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    def test_owner_cannot_be_removed(self, client, workspace, make_user, owner):
        """An admin removing the owner gets 400."""
        owner_user, owner_headers = owner
        admin, admin_headers = make_user("admin")
        _add_member(client, workspace["id"], owner_headers, admin.id, "admin")
        response = client.delete(
            f"/api/v1/workspaces/{workspace['id']}/members/{owner_user.id}",
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CANNOT_REMOVE_OWNER"

    def test_member_can_leave(self, client, workspace, make_user, owner):
        """Members may remove themselves."""
        _, owner_headers = owner
        member, member_headers = make_user("member")
        _add_member(client, workspace["id"], owner_headers, member.id)
        response = client.delete(
            f"/api/v1/workspaces/{workspace['id']}/members/{member.id}",
            headers=member_headers,
        )
        assert response.status_code == 204

    def test_member_cannot_remove_others(self, client, workspace, make_user, owner):
        """Removing someone else needs admin rights."""
        _, owner_headers = owner
        member, member_headers = make_user("member")
        other, _ = make_user("other")
        _add_member(client, workspace["id"], owner_headers, member.id)
        _add_member(client, workspace["id"], owner_headers, other.id)
        response = client.delete(
            f"/api/v1/workspaces/{workspace['id']}/members/{other.id}",
            headers=member_headers,
        )
        assert response.status_code == 403

    def test_remove_unknown_member(self, client, workspace, owner):
        """Removing a non-member is 404 MEMBER_NOT_FOUND."""
        _, owner_headers = owner
        response = client.delete(
            f"/api/v1/workspaces/{workspace['id']}/members/{uuid.uuid4()}",
            headers=owner_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "MEMBER_NOT_FOUND"

    def test_owner_changes_role(self, client, workspace, make_user, owner):
        """The owner promotes a member to admin."""
        _, owner_headers = owner
        member, _ = make_user("member")
        _add_member(client, workspace["id"], owner_headers, member.id)
        response = client.put(
            f"/api/v1/workspaces/{workspace['id']}/members/{member.id}/role",
            json={"role": "admin"},
            headers=owner_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "admin"

    def test_owner_role_cannot_change(self, client, workspace, owner):
        """The owner's own role is fixed."""
        owner_user, owner_headers = owner
        response = client.put(
            f"/api/v1/workspaces/{workspace['id']}/members/{owner_user.id}/role",
            json={"role": "member"},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CANNOT_CHANGE_OWNER_ROLE"

    def test_admin_cannot_change_roles(self, client, workspace, make_user, owner):
        """Only the owner changes roles."""
        _, owner_headers = owner
        admin, admin_headers = make_user("admin")
        member, _ = make_user("member")
        _add_member(client, workspace["id"], owner_headers, admin.id, "admin")
        _add_member(client, workspace["id"], owner_headers, member.id)
        response = client.put(
            f"/api/v1/workspaces/{workspace['id']}/members/{member.id}/role",
            json={"role": "admin"},
            headers=admin_headers,
        )
        assert response.status_code == 403
