"""
Dependency service layer: the single entry point for the task dependency graph.

Handles:
- Adding edges, validated and guarded against concurrent writers
- Idempotent removal by id, by task pair, or for a whole task
- Validation and cycle explanation without writing
- Live derived queries: blocking check and per-project graph

Concurrency: add_dependency reads the graph version before validating and
compare-and-swaps it in the same transaction as the insert. A writer that
loses the race gets DependencyConflictError and no edge; the caller rolls back
and may retry. The session's transaction belongs to the caller.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Optional

import structlog
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.errors import DependencyConflictError, DependencyStoreError, InvalidDependencyError
from app.services.cycle_detector import CycleDetector
from app.services.dependency_graph import DependencyGraphBuilder
from app.services.dependency_store import DependencyStore
from app.services.dependency_validator import DependencyValidator
from app.services.task_lookup import SqlTaskLookup, TaskLookup, is_terminal_status
from nexus_shared.schemas.common import DependencyType
from nexus_shared.schemas.dependencies import (
    AddDependencyResult,
    BlockingCheck,
    CycleDetectionResult,
    DependencyDetail,
    DependencyGraph,
    ValidationResult,
)

log = structlog.get_logger()

# SQLSTATEs for serialization failure and deadlock
_CONFLICT_SQLSTATES = {"40001", "40P01"}
_CONFLICT_MESSAGES = ("database is locked", "deadlock", "could not serialize")


def _is_conflict(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(m in message for m in _CONFLICT_MESSAGES)


@contextmanager
def _store_errors(operation: str, **context):
    """Translate raw SQLAlchemy errors into the engine's infrastructure errors."""
    try:
        yield
    except SQLAlchemyError as exc:
        if _is_conflict(exc):
            log.warning("dependency.store_conflict", operation=operation, **context)
            raise DependencyConflictError() from exc
        log.error("dependency.store_error", operation=operation, error=str(exc), **context)
        raise DependencyStoreError(f"{operation} failed: {exc}") from exc


class DependencyService:
    def __init__(
        self,
        session: AsyncSession,
        lookup: Optional[TaskLookup] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = DependencyStore(session)
        self.lookup = lookup or SqlTaskLookup(session, self.settings.terminal_statuses)
        self.cycle_detector = CycleDetector(
            self.store, self.lookup, self.settings.max_traversal_depth
        )
        self.validator = DependencyValidator(self.store, self.lookup, self.cycle_detector)
        self.graph_builder = DependencyGraphBuilder(self.lookup)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def add_dependency(
        self,
        task_id: uuid.UUID,
        depends_on_task_id: uuid.UUID,
        dependency_type: DependencyType = DependencyType.BLOCKS,
        created_by: Optional[uuid.UUID] = None,
    ) -> AddDependencyResult:
        ctx = {"task_id": str(task_id), "depends_on_task_id": str(depends_on_task_id)}
        with _store_errors("add_dependency", **ctx):
            version = await self.store.graph_version()
            validation = await self.validator.validate(task_id, depends_on_task_id)
            if not validation.is_valid:
                log.info(
                    "dependency.rejected",
                    codes=[e.code.value for e in validation.errors],
                    **ctx,
                )
                raise InvalidDependencyError(validation)

            await self.store.bump_graph_version(version)
            dependency_id = await self.store.create(
                task_id, depends_on_task_id, dependency_type, created_by
            )

        log.info(
            "dependency.added",
            dependency_id=str(dependency_id),
            dependency_type=dependency_type.value,
            created_by=str(created_by) if created_by else None,
            warnings=[w.code.value for w in validation.warnings],
            **ctx,
        )
        return AddDependencyResult(id=dependency_id, warnings=validation.warnings)

    async def remove_dependency(self, dependency_id: uuid.UUID) -> None:
        with _store_errors("remove_dependency", dependency_id=str(dependency_id)):
            removed = await self.store.delete(dependency_id)
        log.info("dependency.removed", dependency_id=str(dependency_id), removed=removed)

    async def remove_dependency_by_tasks(
        self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID
    ) -> None:
        ctx = {"task_id": str(task_id), "depends_on_task_id": str(depends_on_task_id)}
        with _store_errors("remove_dependency_by_tasks", **ctx):
            removed = await self.store.delete_by_pair(task_id, depends_on_task_id)
        log.info("dependency.removed_by_tasks", removed=removed, **ctx)

    async def purge_task_dependencies(self, task_id: uuid.UUID) -> int:
        """Cascade for a permanently deleted task: drop every edge touching it."""
        with _store_errors("purge_task_dependencies", task_id=str(task_id)):
            removed = await self.store.delete_for_task(task_id)
        log.info("dependency.purged_for_task", task_id=str(task_id), removed=removed)
        return removed

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    async def validate_dependency(
        self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID
    ) -> ValidationResult:
        with _store_errors("validate_dependency", task_id=str(task_id)):
            return await self.validator.validate(task_id, depends_on_task_id)

    async def detect_circular_dependency(
        self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID
    ) -> CycleDetectionResult:
        with _store_errors("detect_circular_dependency", task_id=str(task_id)):
            return await self.cycle_detector.detect(task_id, depends_on_task_id)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def get_task_dependencies(self, task_id: uuid.UUID) -> list[DependencyDetail]:
        with _store_errors("get_task_dependencies", task_id=str(task_id)):
            return await self.store.dependencies_of(task_id)

    async def get_task_dependents(self, task_id: uuid.UUID) -> list[DependencyDetail]:
        with _store_errors("get_task_dependents", task_id=str(task_id)):
            return await self.store.dependents_of(task_id)

    async def get_project_dependencies(self, project_id: uuid.UUID) -> list[DependencyDetail]:
        with _store_errors("get_project_dependencies", project_id=str(project_id)):
            return await self.store.dependencies_of_project(project_id)

    async def has_uncompleted_blocking_dependencies(self, task_id: uuid.UUID) -> BlockingCheck:
        dependencies = await self.get_task_dependencies(task_id)
        blocking = [
            dep
            for dep in dependencies
            if dep.dependency_type == DependencyType.BLOCKS
            and not is_terminal_status(dep.depends_on_task_status, self.settings.terminal_statuses)
        ]
        return BlockingCheck(has_blocking=bool(blocking), blocking_tasks=blocking)

    async def get_dependency_graph(self, project_id: uuid.UUID) -> DependencyGraph:
        dependencies = await self.get_project_dependencies(project_id)
        with _store_errors("get_dependency_graph", project_id=str(project_id)):
            return await self.graph_builder.build(dependencies)
