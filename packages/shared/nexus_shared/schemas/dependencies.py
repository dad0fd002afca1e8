"""Dependency-graph Pydantic schemas shared by the server and its API clients."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import DependencyType, ValidationCode


# ---------------------------------------------------------------------------
# Tasks (read-only view of the task collaborator)
# ---------------------------------------------------------------------------

class TaskRef(BaseModel):
    """The slice of a task the dependency engine needs."""
    id: UUID
    code: Optional[str] = None
    title: str
    status: str
    project_id: Optional[UUID] = None
    is_terminal: bool = False

    @property
    def label(self) -> str:
        return self.code or self.title or str(self.id)


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

class DependencyAdd(BaseModel):
    """Request body for POST /tasks/{taskId}/dependencies."""
    depends_on_task_id: UUID
    dependency_type: DependencyType = DependencyType.BLOCKS
    created_by: Optional[UUID] = None


class DependencyCheck(BaseModel):
    """Request body for the validate and detect-cycle endpoints."""
    depends_on_task_id: UUID


class DependencyDetail(BaseModel):
    """An edge joined with the code/title/status of both of its tasks."""
    id: UUID
    task_id: UUID
    depends_on_task_id: UUID
    dependency_type: DependencyType
    created_by: Optional[UUID] = None
    created_at: datetime
    task_code: Optional[str] = None
    task_title: Optional[str] = None
    task_status: Optional[str] = None
    depends_on_task_code: Optional[str] = None
    depends_on_task_title: Optional[str] = None
    depends_on_task_status: Optional[str] = None


class AddDependencyResult(BaseModel):
    id: UUID
    warnings: List["ValidationIssue"] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationIssue(BaseModel):
    field: str
    message: str
    code: ValidationCode


class CycleDetectionResult(BaseModel):
    has_cycle: bool
    cycle_path: Optional[List[UUID]] = None
    description: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    cycle_detection: Optional[CycleDetectionResult] = None


# ---------------------------------------------------------------------------
# Derived queries
# ---------------------------------------------------------------------------

class BlockingCheck(BaseModel):
    has_blocking: bool
    blocking_tasks: List[DependencyDetail] = Field(default_factory=list)


class GraphNode(BaseModel):
    id: UUID
    code: str
    title: str
    status: str


class GraphEdge(BaseModel):
    """Directed edge, dependent (``from``) to prerequisite (``to``)."""
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    from_: UUID = Field(alias="from")
    to: UUID
    type: DependencyType


class DependencyGraph(BaseModel):
    model_config = ConfigDict(serialize_by_alias=True)

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


AddDependencyResult.model_rebuild()
