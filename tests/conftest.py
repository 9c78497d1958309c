"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from opencode_acp.config import reset_config
from opencode_acp.session import SessionRegistry, SessionState, ToolPermissionArbiter
from tests.utils import SESSION_ID, create_mock_conn, create_mock_upstream

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep user/system config files and env overrides out of tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    monkeypatch.delenv("OPENCODE_ACP_LOG", raising=False)
    monkeypatch.delenv("OPENCODE_ACP_URL", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def mock_conn():
    """Mock ACP client connection."""
    return create_mock_conn()


@pytest.fixture
def mock_upstream():
    """Mock opencode HTTP client."""
    return create_mock_upstream()


@pytest.fixture
def session(tmp_path) -> SessionState:
    return SessionState(session_id=SESSION_ID, cwd=str(tmp_path))


@pytest.fixture
async def registry(session) -> SessionRegistry:
    registry = SessionRegistry()
    await registry.add(session)
    return registry


@pytest.fixture
def arbiter(mock_conn) -> ToolPermissionArbiter:
    return ToolPermissionArbiter(mock_conn)
