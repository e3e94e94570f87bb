"""Tests for the board page, board fragments and task fragments."""

import uuid

import pytest


@pytest.fixture
def teammate(client, workspace, owner, make_user):
    _, owner_headers = owner
    user, headers = make_user("teammate")
    client.post(
        f"/api/v1/workspaces/{workspace['id']}/members",
        json={"user_id": str(user.id), "role": "member"},
        headers=owner_headers,
    )
    return user, headers


def _task_chat(client, workspace_id, headers, name, task_type="task"):
    response = client.post(
        f"/api/v1/workspaces/{workspace_id}/chats",
        json={"name": name, "type": task_type},
        headers=headers,
    )
    return response.json()["data"]


def _task_for(runtime, chat):
    return runtime.store.get_task_by_chat(uuid.UUID(chat["id"]))


class TestPageGate:
    """Unauthenticated page and fragment requests."""

    def test_htmx_request_gets_401(self, client, workspace):
        """HTMX callers get a 401 envelope with HX-Redirect."""
        response = client.get(
            f"/partials/workspace/{workspace['id']}/board", headers={"HX-Request": "true"}
        )
        assert response.status_code == 401
        assert response.headers["HX-Redirect"] == "/login"
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_browser_request_redirects(self, client, workspace):
        """Plain GETs redirect to login and remember the target."""
        target = f"/workspaces/{workspace['id']}/board"
        response = client.get(target, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"
        assert "flowdesk_redirect=" in response.headers["set-cookie"]
        assert target in response.headers["set-cookie"]

    def test_stale_session_cookie_cleared(self, client, workspace):
        """An invalid session cookie is cleared on redirect."""
        client.cookies.set("flowdesk_session", "stale")
        response = client.get(f"/workspaces/{workspace['id']}/board", follow_redirects=False)
        assert response.status_code == 302
        cookies = response.headers.get_list("set-cookie")
        assert any(c.startswith("flowdesk_session=") for c in cookies)


class TestLoginPage:
    """GET /login."""

    def test_next_path_from_cookie(self, client):
        """The redirect cookie becomes the post-login target."""
        client.cookies.set("flowdesk_redirect", "/workspaces/abc/board")
        response = client.get("/login")
        assert response.status_code == 200
        assert 'value="/workspaces/abc/board"' in response.text

    def test_external_target_ignored(self, client):
        """Protocol-relative targets fall back to the root."""
        client.cookies.set("flowdesk_redirect", "//evil.example")
        response = client.get("/login")
        assert "evil.example" not in response.text


class TestBoardColumns:
    """GET /partials/workspace/{id}/board."""

    def test_columns_render(self, client, runtime, workspace, owner):
        """Four columns with titles, counts and cards."""
        _, headers = owner
        _task_chat(client, workspace["id"], headers, "Write docs")
        done = _task_chat(client, workspace["id"], headers, "Ship release")
        client.post(
            f"/api/v1/chats/{done['id']}/actions/status", json={"status": "done"}, headers=headers
        )
        response = client.get(f"/partials/workspace/{workspace['id']}/board", headers=headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        text = response.text
        for title in ("To Do", "In Progress", "Review", "Done"):
            assert f"<h2>{title}</h2>" in text
        assert 'id="column-done"' in text
        assert "Write docs" in text
        assert "Ship release" in text
        assert 'data-total-tasks="2"' in text

    def test_type_filter(self, client, workspace, owner):
        """The type filter keeps matching cards only."""
        _, headers = owner
        _task_chat(client, workspace["id"], headers, "Crash on start", "bug")
        _task_chat(client, workspace["id"], headers, "Roadmap", "epic")
        response = client.get(
            f"/partials/workspace/{workspace['id']}/board?type=bug", headers=headers
        )
        assert "Crash on start" in response.text
        assert "Roadmap" not in response.text

    def test_assignee_filters(self, client, workspace, owner, teammate):
        """``me`` and ``unassigned`` resolve against the caller."""
        _, headers = owner
        user, member_headers = teammate
        mine = _task_chat(client, workspace["id"], headers, "Mine")
        _task_chat(client, workspace["id"], headers, "Nobody")
        client.post(
            f"/api/v1/chats/{mine['id']}/actions/assignee",
            json={"assignee_id": str(user.id)},
            headers=headers,
        )
        url = f"/partials/workspace/{workspace['id']}/board"
        me = client.get(f"{url}?assignee=me", headers=member_headers).text
        assert "Mine" in me and "Nobody" not in me
        assert "teammate" in me

        unassigned = client.get(f"{url}?assignee=unassigned", headers=headers).text
        assert "Nobody" in unassigned and "Mine" not in unassigned

    def test_invalid_filter_values_ignored(self, client, workspace, owner):
        """Unknown filter values do not narrow the board."""
        _, headers = owner
        _task_chat(client, workspace["id"], headers, "Anything")
        response = client.get(
            f"/partials/workspace/{workspace['id']}/board?type=story&priority=urgent&assignee=bogus",
            headers=headers,
        )
        assert response.status_code == 200
        assert "Anything" in response.text

    def test_non_member_sees_not_found(self, client, workspace, make_user):
        """Outsiders get a plain 404."""
        _, headers = make_user("outsider")
        response = client.get(f"/partials/workspace/{workspace['id']}/board", headers=headers)
        assert response.status_code == 404
        assert response.text == "Workspace not found"

    def test_invalid_workspace_id(self, client, owner):
        """A malformed id is a plain 400."""
        _, headers = owner
        response = client.get("/partials/workspace/nope/board", headers=headers)
        assert response.status_code == 400
        assert response.text == "Invalid workspace ID"


class TestLoadMore:
    """GET /partials/workspace/{id}/board/{status}/more."""

    def test_paging_a_full_column(self, client, workspace, owner):
        """Columns show 20 cards and page the rest."""
        _, headers = owner
        for index in range(21):
            _task_chat(client, workspace["id"], headers, f"Task {index:02d}")
        url = f"/partials/workspace/{workspace['id']}/board"
        board = client.get(url, headers=headers).text
        assert "Task 19" in board
        assert "Task 20" not in board
        assert "/board/todo/more?offset=20" in board

        more = client.get(f"{url}/todo/more?offset=20", headers=headers)
        assert more.status_code == 200
        assert "Task 20" in more.text
        assert "Load more" not in more.text

    def test_invalid_status(self, client, workspace, owner):
        """Unknown column keys are a plain 400."""
        _, headers = owner
        response = client.get(
            f"/partials/workspace/{workspace['id']}/board/blocked/more", headers=headers
        )
        assert response.status_code == 400
        assert response.text == "Invalid status"


class TestCreateTask:
    """The board's task form."""

    def test_create_form(self, client, workspace, owner, teammate):
        """The form lists types, priorities and members."""
        _, headers = owner
        response = client.get(
            f"/partials/task/create-form?workspace_id={workspace['id']}", headers=headers
        )
        assert response.status_code == 200
        assert 'value="bug"' in response.text
        assert "Critical" in response.text
        assert "teammate" in response.text

    def test_create_form_requires_workspace(self, client, owner):
        """A missing workspace_id is a plain 400."""
        _, headers = owner
        response = client.get("/partials/task/create-form", headers=headers)
        assert response.status_code == 400
        assert response.text == "workspace_id is required"

    def test_create_returns_columns(self, client, runtime, workspace, owner, teammate):
        """Posting the form creates the task and re-renders the board."""
        _, headers = owner
        user, _ = teammate
        response = client.post(
            "/partials/task/create",
            data={
                "workspace_id": workspace["id"],
                "title": "  New bug ",
                "type": "bug",
                "priority": "high",
                "assignee_id": str(user.id),
                "due_date": "2030-02-01",
            },
            headers=headers,
        )
        assert response.status_code == 200
        assert "New bug" in response.text
        task = runtime.store.list_tasks(uuid.UUID(workspace["id"]))[0]
        assert task.title == "New bug"
        assert task.entity_type.value == "bug"
        assert task.priority.value == "high"
        assert task.assignee_id == user.id
        assert task.due_date.date().isoformat() == "2030-02-01"

    def test_create_drops_bad_optional_fields(self, client, runtime, workspace, owner, make_user):
        """Unknown assignees, bad dates and bad priorities fall back to defaults."""
        _, headers = owner
        stranger, _ = make_user("stranger")
        response = client.post(
            "/partials/task/create",
            data={
                "workspace_id": workspace["id"],
                "title": "Loose ends",
                "priority": "urgent",
                "assignee_id": str(stranger.id),
                "due_date": "tomorrow",
            },
            headers=headers,
        )
        assert response.status_code == 200
        task = runtime.store.list_tasks(uuid.UUID(workspace["id"]))[0]
        assert task.entity_type.value == "task"
        assert task.priority.value == "medium"
        assert task.assignee_id is None
        assert task.due_date is None

    def test_form_filters_applied(self, client, workspace, owner):
        """The refreshed board honours the filter fields of the form."""
        _, headers = owner
        _task_chat(client, workspace["id"], headers, "Old epic", "epic")
        response = client.post(
            "/partials/task/create",
            data={"workspace_id": workspace["id"], "title": "Fresh bug", "type": "bug", "filter_type": "bug"},
            headers=headers,
        )
        assert "Fresh bug" in response.text
        assert "Old epic" not in response.text

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"title": "x"}, "workspace_id is required"),
            ({"workspace_id": "nope", "title": "x"}, "invalid workspace ID"),
            ({"title": "   "}, "title is required"),
            ({"title": "x", "type": "story"}, "invalid task type"),
        ],
    )
    def test_create_errors(self, client, workspace, owner, data, message):
        """Form errors are plain-text 400s."""
        _, headers = owner
        if "workspace_id" not in data and message != "workspace_id is required":
            data = {**data, "workspace_id": workspace["id"]}
        response = client.post("/partials/task/create", data=data, headers=headers)
        assert response.status_code == 400
        assert response.text == message


class TestTaskFragments:
    """Card, sidebar, inline editors and activity."""

    def test_card(self, client, runtime, workspace, owner):
        """The card fragment renders a single task."""
        _, headers = owner
        task = _task_for(runtime, _task_chat(client, workspace["id"], headers, "Card me"))
        response = client.get(f"/partials/tasks/{task.id}/card", headers=headers)
        assert response.status_code == 200
        assert f'id="task-card-{task.id}"' in response.text

    def test_unknown_task(self, client, owner):
        """Missing tasks are a plain 404."""
        _, headers = owner
        response = client.get(f"/partials/tasks/{uuid.uuid4()}/card", headers=headers)
        assert response.status_code == 404
        assert response.text == "Task not found"

    def test_hidden_task(self, client, runtime, workspace, owner, make_user):
        """Tasks of other workspaces read as missing."""
        _, headers = owner
        _, outsider = make_user("outsider")
        task = _task_for(runtime, _task_chat(client, workspace["id"], headers, "Private"))
        response = client.get(f"/partials/tasks/{task.id}/sidebar", headers=outsider)
        assert response.status_code == 404
        assert response.text == "Task not found"

    def test_invalid_task_id(self, client, owner):
        """A malformed id is a plain 400."""
        _, headers = owner
        response = client.get("/partials/tasks/nope/sidebar", headers=headers)
        assert response.status_code == 400
        assert response.text == "Invalid task ID"

    def test_sidebar(self, client, runtime, workspace, owner):
        """The sidebar shows status and priority labels."""
        _, headers = owner
        task = _task_for(runtime, _task_chat(client, workspace["id"], headers, "Sidebar"))
        response = client.get(f"/partials/tasks/{task.id}/sidebar", headers=headers)
        assert response.status_code == 200
        assert "Sidebar" in response.text
        assert "To Do" in response.text
        assert "Medium" in response.text

    @pytest.mark.parametrize(
        "path",
        ["edit-title", "title-display", "edit-description", "description-display", "quick-edit"],
    )
    def test_inline_fragments(self, client, runtime, workspace, owner, path):
        """Each inline fragment renders for a visible task."""
        _, headers = owner
        task = _task_for(runtime, _task_chat(client, workspace["id"], headers, "Inline"))
        response = client.get(f"/partials/tasks/{task.id}/{path}", headers=headers)
        assert response.status_code == 200
        assert response.text.strip()

    def test_activity(self, client, runtime, workspace, owner):
        """Activity lists events newest first with actor names."""
        _, headers = owner
        chat = _task_chat(client, workspace["id"], headers, "Tracked")
        client.post(
            f"/api/v1/chats/{chat['id']}/actions/priority", json={"priority": "low"}, headers=headers
        )
        task = _task_for(runtime, chat)
        text = client.get(f"/partials/tasks/{task.id}/activity", headers=headers).text
        assert text.index("changed priority") < text.index("created this task")
        assert "owner" in text

    def test_activity_empty(self, client, runtime, workspace, owner):
        """Tasks without known events say so."""
        _, headers = owner
        task = _task_for(runtime, _task_chat(client, workspace["id"], headers, "Quiet"))
        runtime.store.task_events[task.id] = []
        text = client.get(f"/partials/tasks/{task.id}/activity", headers=headers).text
        assert "No activity yet" in text


class TestChatTaskDetails:
    """GET /partials/chats/{id}/task-details."""

    def test_task_chat(self, client, workspace, owner):
        """Task chats render the task sidebar."""
        _, headers = owner
        chat = _task_chat(client, workspace["id"], headers, "Detailed")
        response = client.get(f"/partials/chats/{chat['id']}/task-details", headers=headers)
        assert response.status_code == 200
        assert f'data-chat-id="{chat["id"]}"' in response.text

    def test_discussion(self, client, workspace, owner):
        """Discussions get an explanatory panel."""
        _, headers = owner
        chat = client.post(
            f"/api/v1/workspaces/{workspace['id']}/chats", json={"name": "Talk"}, headers=headers
        ).json()["data"]
        response = client.get(f"/partials/chats/{chat['id']}/task-details", headers=headers)
        assert response.status_code == 200
        assert "This chat does not have task details" in response.text

    def test_missing_task(self, client, runtime, workspace, owner):
        """A task chat without its read model says so."""
        _, headers = owner
        chat = _task_chat(client, workspace["id"], headers, "Orphan")
        task = _task_for(runtime, chat)
        runtime.store.task_by_chat.pop(uuid.UUID(chat["id"]))
        runtime.store.tasks.pop(task.id)
        response = client.get(f"/partials/chats/{chat['id']}/task-details", headers=headers)
        assert "Task details not available" in response.text

    def test_unknown_chat(self, client, owner):
        """Missing chats are a plain 404."""
        _, headers = owner
        response = client.get(f"/partials/chats/{uuid.uuid4()}/task-details", headers=headers)
        assert response.status_code == 404
        assert response.text == "Chat not found"


class TestBoardPage:
    """GET /workspaces/{id}/board."""

    def test_renders_full_page(self, client, workspace, owner):
        """The page includes the workspace name and the columns."""
        _, headers = owner
        response = client.get(f"/workspaces/{workspace['id']}/board", headers=headers)
        assert response.status_code == 200
        assert "<h1>Team</h1>" in response.text
        assert 'id="column-todo"' in response.text
