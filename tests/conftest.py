"""
Shared pytest fixtures for the ConsultFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant rows
    - headers: X-Tenant-Id + X-User-Id for API calls as the project owner
    - won_lead / project / pipeline / agent: delivery pipeline scaffolding
    - storage: LocalFileStorage rooted in tmp_path
    - FakeCompletionClient / InlineExecutor: execution test doubles
"""

import json
from concurrent.futures import Future

import pytest

from consultflow import create_app
from consultflow.ai.orchestrator import EXTENSION_KEY as ORCHESTRATOR_KEY
from consultflow.ai.orchestrator import PhaseExecutionOrchestrator
from consultflow.ai.task_runner import ExecutionTaskRunner
from consultflow.integrations.object_storage import EXTENSION_KEY as STORAGE_KEY
from consultflow.integrations.object_storage import LocalFileStorage
from consultflow.models import db as _db
from consultflow.models.base import Tenant
from consultflow.services import agent_service, delivery_service, lead_service, project_service

OWNER_ID = "owner-1"


# ── Test doubles ─────────────────────────────────────────────────────────


class FakeCompletionClient:
    """Stands in for CompletionClient; yields pre-baked body chunks.

    ``chunks`` may contain an Exception instance, raised when reached.
    Every call's keyword arguments are recorded in ``calls``.
    """

    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = []

    def stream_chat(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return self._iter()

    def _iter(self):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


class InlineExecutor:
    """Executor that runs jobs synchronously on submit."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True):
        pass


def sse(*fragments, done=True) -> bytes:
    """Encode text fragments as a complete SSE body."""
    lines = [
        'data: {"choices":[{"delta":{"content":%s}}]}\n' % json.dumps(f) for f in fragments
    ]
    if done:
        lines.append("data: [DONE]\n")
    return "".join(lines).encode("utf-8")


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def tenant():
    t = Tenant(name="Test Default", slug="test-default")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def other_tenant():
    t = Tenant(name="Other", slug="other")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def headers(tenant):
    return {"X-Tenant-Id": str(tenant.id), "X-User-Id": OWNER_ID}


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def lead(tenant):
    return lead_service.create_lead(tenant.id, {"company_name": "Acme Robotics"}, owner_id=OWNER_ID)


@pytest.fixture()
def won_lead(tenant):
    return lead_service.create_lead(
        tenant.id, {"company_name": "Won Corp", "status": "won"}, owner_id=OWNER_ID,
    )


@pytest.fixture()
def project(tenant, won_lead):
    return project_service.create_project(
        tenant.id, {"name": "R&D Claim 2025", "lead_id": won_lead["id"]}, owner_id=OWNER_ID,
    )


@pytest.fixture()
def pipeline(tenant, project):
    return delivery_service.init_pipeline(tenant.id, project["id"])


@pytest.fixture()
def agent(tenant):
    return agent_service.create_agent(tenant.id, {
        "name": "Eligibility Analyst",
        "persona": "You are a senior R&D tax consultant.",
        "temperature": 0.2,
        "model_config": {"model": "gpt-test", "max_tokens": 2048},
        "status": "active",
    })


@pytest.fixture()
def storage(app, tmp_path, monkeypatch):
    """Swap the app's object storage for one rooted in tmp_path."""
    local = LocalFileStorage(str(tmp_path / "objects"))
    monkeypatch.setitem(app.extensions, STORAGE_KEY, local)
    return local


@pytest.fixture()
def fake_client():
    return FakeCompletionClient([sse("Hello", ", world")])


@pytest.fixture()
def orchestrator(app, fake_client, monkeypatch):
    """Orchestrator with a fake completion client and an inline worker pool."""
    orch = PhaseExecutionOrchestrator(
        fake_client,
        runner=ExecutionTaskRunner(executor=InlineExecutor()),
        default_model=None,
    )
    monkeypatch.setitem(app.extensions, ORCHESTRATOR_KEY, orch)
    return orch
