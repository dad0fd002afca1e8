"""
Task dependency endpoints.

- Add/remove edges (add is validated: existence, duplicate, cycle)
- Validate or explain a proposed edge without writing it
- Blocking check and per-project dependency graph
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import (
    DependencyConflictError,
    DependencyError,
    DependencyStoreError,
    InvalidDependencyError,
)
from app.services.dependencies import DependencyService
from nexus_shared.schemas.dependencies import (
    AddDependencyResult,
    BlockingCheck,
    CycleDetectionResult,
    DependencyAdd,
    DependencyCheck,
    DependencyDetail,
    DependencyGraph,
    ValidationResult,
)

router = APIRouter()


def get_dependency_service(session: AsyncSession = Depends(get_session)) -> DependencyService:
    return DependencyService(session)


def _raise_http(exc: DependencyError):
    if isinstance(exc, InvalidDependencyError):
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "validation": exc.validation.model_dump(mode="json"),
            },
        ) from exc
    if isinstance(exc, DependencyConflictError):
        raise HTTPException(
            status_code=409, detail={"message": str(exc), "retryable": True}
        ) from exc
    if isinstance(exc, DependencyStoreError):
        raise HTTPException(status_code=503, detail="Dependency store unavailable") from exc
    raise exc


# ---------------------------------------------------------------------------
# Task-scoped
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/dependencies", response_model=List[DependencyDetail])
async def list_dependencies_endpoint(
    task_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    """Tasks that ``task_id`` depends on."""
    try:
        return await service.get_task_dependencies(task_id)
    except DependencyError as exc:
        _raise_http(exc)


@router.get("/tasks/{task_id}/dependents", response_model=List[DependencyDetail])
async def list_dependents_endpoint(
    task_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    """Tasks that depend on ``task_id``."""
    try:
        return await service.get_task_dependents(task_id)
    except DependencyError as exc:
        _raise_http(exc)


@router.post(
    "/tasks/{task_id}/dependencies", status_code=201, response_model=AddDependencyResult
)
async def add_dependency_endpoint(
    task_id: uuid.UUID,
    body: DependencyAdd,
    service: DependencyService = Depends(get_dependency_service),
):
    """Add a dependency. Rejects missing tasks, duplicates, and cycles."""
    try:
        return await service.add_dependency(
            task_id, body.depends_on_task_id, body.dependency_type, body.created_by
        )
    except DependencyError as exc:
        _raise_http(exc)


@router.delete("/tasks/{task_id}/dependencies/{depends_on_task_id}")
async def remove_dependency_by_tasks_endpoint(
    task_id: uuid.UUID,
    depends_on_task_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        await service.remove_dependency_by_tasks(task_id, depends_on_task_id)
    except DependencyError as exc:
        _raise_http(exc)
    return {"ok": True}


@router.post("/tasks/{task_id}/dependencies/validate", response_model=ValidationResult)
async def validate_dependency_endpoint(
    task_id: uuid.UUID,
    body: DependencyCheck,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        return await service.validate_dependency(task_id, body.depends_on_task_id)
    except DependencyError as exc:
        _raise_http(exc)


@router.post("/tasks/{task_id}/dependencies/detect-cycle", response_model=CycleDetectionResult)
async def detect_cycle_endpoint(
    task_id: uuid.UUID,
    body: DependencyCheck,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        return await service.detect_circular_dependency(task_id, body.depends_on_task_id)
    except DependencyError as exc:
        _raise_http(exc)


@router.get("/tasks/{task_id}/dependencies/blocking-check", response_model=BlockingCheck)
async def blocking_check_endpoint(
    task_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        return await service.has_uncompleted_blocking_dependencies(task_id)
    except DependencyError as exc:
        _raise_http(exc)


# ---------------------------------------------------------------------------
# Edge-scoped
# ---------------------------------------------------------------------------


@router.delete("/dependencies/{dependency_id}")
async def remove_dependency_endpoint(
    dependency_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        await service.remove_dependency(dependency_id)
    except DependencyError as exc:
        _raise_http(exc)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Project-scoped
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/dependencies", response_model=List[DependencyDetail])
async def project_dependencies_endpoint(
    project_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        return await service.get_project_dependencies(project_id)
    except DependencyError as exc:
        _raise_http(exc)


@router.get("/projects/{project_id}/dependency-graph", response_model=DependencyGraph)
async def dependency_graph_endpoint(
    project_id: uuid.UUID,
    service: DependencyService = Depends(get_dependency_service),
):
    try:
        return await service.get_dependency_graph(project_id)
    except DependencyError as exc:
        _raise_http(exc)
