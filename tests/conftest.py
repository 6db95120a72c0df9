"""Pytest configuration and shared fixtures."""

import os
import sys
from pathlib import Path

import httpx
import pytest

# Ensure source tree is importable without editable install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from dialogsync.config import reset_settings_cache  # noqa: E402
from dialogsync.models.dialogs import DialogNode, DialogStatus  # noqa: E402
from dialogsync.models.questions import CallSiteRef, Q4HQuestion  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers and environment for tests."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")

    # These MUST override any developer shell/.env values to keep the test run deterministic.
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DIALOGSYNC_API_BASE_URL"] = "http://localhost:5556"
    os.environ["DIALOGSYNC_AUTH_KEY"] = ""
    os.environ["DIALOGSYNC_DEEP_LINK"] = ""
    os.environ["DIALOGSYNC_RUN_CONTROL_DEBOUNCE_S"] = "0.2"
    os.environ["DIALOGSYNC_LOG_LEVEL"] = "WARNING"


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture(autouse=True)
def block_external_http(monkeypatch):
    """Fail if code tries to hit the network outside localhost or a mock transport."""

    allowed_hosts = {"test", "testserver", "localhost", "127.0.0.1"}

    async def _async_guard(self, method, url, *args, **kwargs):  # type: ignore[no-untyped-def]
        u = httpx.URL(url) if not isinstance(url, httpx.URL) else url
        if u.scheme in {"http", "https"} and (u.host or "") not in allowed_hosts:
            raise RuntimeError(f"External HTTP blocked in tests: {u!s}")
        return await _orig_async_request(self, method, url, *args, **kwargs)

    _orig_async_request = httpx.AsyncClient.request
    monkeypatch.setattr(httpx.AsyncClient, "request", _async_guard, raising=True)

    yield


@pytest.fixture
def make_root():
    """Factory for root dialog nodes."""

    def _make(root_id: str = "R1", **overrides) -> DialogNode:
        fields = {
            "root_id": root_id,
            "self_id": root_id,
            "agent_id": "planner",
            "task_doc_path": f"tasks/{root_id.lower()}.tsk",
            "status": DialogStatus.RUNNING,
            "current_course": 1,
            "last_modified": "2026-01-01T00:00:00Z",
        }
        fields.update(overrides)
        return DialogNode(**fields)

    return _make


@pytest.fixture
def make_sub():
    """Factory for subdialog nodes."""

    def _make(root_id: str = "R1", self_id: str = "S1", **overrides) -> DialogNode:
        fields = {
            "root_id": root_id,
            "self_id": self_id,
            "agent_id": "coder",
            "task_doc_path": f"tasks/{root_id.lower()}.tsk",
            "status": DialogStatus.RUNNING,
            "current_course": 1,
            "supdialog_id": root_id,
            "last_modified": "2026-01-01T00:00:00Z",
        }
        fields.update(overrides)
        return DialogNode(**fields)

    return _make


@pytest.fixture
def make_question():
    """Factory for pending Q4H questions."""

    def _make(
        question_id: str = "q-1",
        root_id: str = "R1",
        self_id: str | None = None,
        *,
        course: int = 1,
        message_index: int = 0,
        **overrides,
    ) -> Q4HQuestion:
        fields = {
            "id": question_id,
            "root_id": root_id,
            "self_id": self_id or root_id,
            "agent_id": "coder",
            "task_doc_path": f"tasks/{root_id.lower()}.tsk",
            "head_line": f"Question {question_id}",
            "tellask_content": "Please confirm the plan.",
            "asked_at": "2026-01-01T00:00:00Z",
            "call_site_ref": CallSiteRef(course=course, message_index=message_index),
        }
        fields.update(overrides)
        return Q4HQuestion(**fields)

    return _make
