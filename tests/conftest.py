from __future__ import annotations

import importlib
import os

os.environ.setdefault("DEALDESK_PROVIDER", "mock")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

import dealdesk.main as main_module
from dealdesk.db.connection import open_connection
from dealdesk.db.migrations import apply_pending
from dealdesk.db.repositories import Repository
from dealdesk.observability.metrics import get_runtime_metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    get_runtime_metrics().reset()
    yield
    get_runtime_metrics().reset()


@pytest.fixture
def isolated_client(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DEALDESK_DB_PATH", str(tmp_path / "runtime-test.db"))
    monkeypatch.setenv("DEALDESK_PROVIDER", "mock")
    module = importlib.reload(main_module)
    with TestClient(module.app) as client:
        yield client
    module.app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def repo(tmp_path):
    conn = await open_connection(tmp_path / "repo-test.db")
    await apply_pending(conn)
    try:
        yield Repository(conn)
    finally:
        await conn.close()


def estimate_sdata(tasks: list[dict] | None = None) -> list[dict]:
    tasks = tasks if tasks is not None else [
        {"role": "Backend Dev", "description": "API Development", "hours": 100},
        {"role": "Frontend Dev", "description": "UI Implementation", "hours": 80},
    ]
    stages = []
    for name in ("artifacts", "business_case", "requirements", "architecture", "estimate", "quote"):
        stage = {"name": name, "content": None, "approved": None, "approved_by": None, "updated_at": None}
        if name == "estimate":
            stage["tasks"] = tasks
        if name == "quote":
            stage["content"] = "Task,Role,Hours,Rate/Hour,Total Cost\nAPI Development,Backend Dev,100,150,15000.00"
        stages.append(stage)
    return stages


@pytest.fixture
def make_sdata():
    return estimate_sdata
