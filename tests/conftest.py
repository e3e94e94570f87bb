import asyncio
import inspect
import os

# Configure before any import that might initialize settings or the runtime.
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from flowdesk import app as app_module  # noqa: E402
from flowdesk.service.runtime import get_runtime, reset_runtime_for_tests  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    app_module.app.dependency_overrides.clear()
    reset_runtime_for_tests()


@pytest.fixture
def runtime():
    return get_runtime()


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def make_user(runtime):
    """Create a user with a live session; returns ``(user, auth_headers)``."""

    def _make(username, *, is_system_admin=False):
        user = runtime.store.create_user(
            username, f"{username}@example.com", is_system_admin=is_system_admin
        )
        token = runtime.auth.issue_session(user.id).access_token
        return user, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def workspace(client, owner):
    """A workspace created through the API by ``owner``."""
    _, headers = owner
    response = client.post("/api/v1/workspaces", json={"name": "Team"}, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
