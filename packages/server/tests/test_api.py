"""
HTTP tests for the dependency endpoints.

Tests cover:
- Add/list/remove round trip over REST
- Validation failures mapped to 409 with the structured result
- Graph payload uses ``from``/``to`` keys
- Conflict and store errors mapped to retryable 409 and 503
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import get_session
from app.core.errors import DependencyConflictError, DependencyStoreError
from app.main import app
from app.models.task import Task
from app.services.dependencies import DependencyService


@pytest.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def tasks(session_factory):
    project = uuid.uuid4()
    async with session_factory() as s:
        design = Task(code="DES", title="Design", status="in-progress", project_id=project)
        build = Task(code="BLD", title="Build", project_id=project)
        s.add_all([design, build])
        await s.commit()
    return project, design, build


async def test_add_list_and_remove(client: AsyncClient, tasks):
    project, design, build = tasks

    resp = await client.post(
        f"/api/v1/tasks/{build.id}/dependencies",
        json={"depends_on_task_id": str(design.id)},
    )
    assert resp.status_code == 201
    body = resp.json()
    dependency_id = body["id"]
    assert body["warnings"] == []

    resp = await client.get(f"/api/v1/tasks/{build.id}/dependencies")
    assert resp.status_code == 200
    [dep] = resp.json()
    assert dep["depends_on_task_code"] == "DES"
    assert dep["dependency_type"] == "BLOCKS"

    resp = await client.get(f"/api/v1/tasks/{design.id}/dependents")
    assert [d["task_id"] for d in resp.json()] == [str(build.id)]

    resp = await client.get(f"/api/v1/tasks/{build.id}/dependencies/blocking-check")
    assert resp.json()["has_blocking"] is True

    resp = await client.delete(f"/api/v1/dependencies/{dependency_id}")
    assert resp.status_code == 200
    resp = await client.get(f"/api/v1/tasks/{build.id}/dependencies")
    assert resp.json() == []


async def test_cycle_rejected_with_409(client: AsyncClient, tasks):
    _, design, build = tasks
    await client.post(
        f"/api/v1/tasks/{build.id}/dependencies",
        json={"depends_on_task_id": str(design.id)},
    )

    resp = await client.post(
        f"/api/v1/tasks/{design.id}/dependencies/detect-cycle",
        json={"depends_on_task_id": str(build.id)},
    )
    assert resp.status_code == 200
    assert resp.json()["has_cycle"] is True
    assert "DES" in resp.json()["description"]

    resp = await client.post(
        f"/api/v1/tasks/{design.id}/dependencies",
        json={"depends_on_task_id": str(build.id), "dependency_type": "RELATES_TO"},
    )
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["validation"]["errors"][0]["code"] == "CIRCULAR_DEPENDENCY"
    assert detail["message"].startswith("Cannot add dependency")


async def test_validate_endpoint_does_not_write(client: AsyncClient, tasks):
    project, design, build = tasks

    resp = await client.post(
        f"/api/v1/tasks/{build.id}/dependencies/validate",
        json={"depends_on_task_id": str(design.id)},
    )
    assert resp.status_code == 200
    assert resp.json()["is_valid"] is True

    resp = await client.get(f"/api/v1/projects/{project}/dependencies")
    assert resp.json() == []


async def test_dependency_graph_payload(client: AsyncClient, tasks):
    project, design, build = tasks
    await client.post(
        f"/api/v1/tasks/{build.id}/dependencies",
        json={"depends_on_task_id": str(design.id)},
    )

    resp = await client.get(f"/api/v1/projects/{project}/dependency-graph")
    assert resp.status_code == 200
    graph = resp.json()
    assert {n["code"] for n in graph["nodes"]} == {"DES", "BLD"}
    assert graph["edges"] == [{"from": str(build.id), "to": str(design.id), "type": "BLOCKS"}]


async def test_remove_by_tasks_is_idempotent(client: AsyncClient, tasks):
    _, design, build = tasks
    resp = await client.delete(f"/api/v1/tasks/{build.id}/dependencies/{design.id}")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


async def test_infrastructure_errors_are_mapped(client: AsyncClient, tasks, monkeypatch):
    _, design, build = tasks

    async def conflict(self, *args, **kwargs):
        raise DependencyConflictError()

    monkeypatch.setattr(DependencyService, "add_dependency", conflict)
    resp = await client.post(
        f"/api/v1/tasks/{build.id}/dependencies",
        json={"depends_on_task_id": str(design.id)},
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["retryable"] is True

    async def unavailable(self, *args, **kwargs):
        raise DependencyStoreError("get_dependency_graph failed")

    monkeypatch.setattr(DependencyService, "get_dependency_graph", unavailable)
    resp = await client.get(f"/api/v1/projects/{uuid.uuid4()}/dependency-graph")
    assert resp.status_code == 503
