"""
Persistence for task dependency edges.

Handles:
- Edge create/delete (pair uniqueness and self-reference enforced here too)
- Joined reads: dependencies, dependents, per-project edge sets
- Bounded-depth reachability over dependsOn edges, one BFS level per query
- The graph-version counter used for optimistic concurrency on inserts

All methods run inside the caller's AsyncSession; nothing here commits.
"""

from __future__ import annotations

import uuid
from typing import NamedTuple, Optional

import structlog
from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.errors import DependencyConflictError, DuplicateDependencyError, SelfReferenceError
from app.models.dependency import DependencyGraphVersion, TaskDependency
from app.models.task import Task
from nexus_shared.schemas.common import DependencyType
from nexus_shared.schemas.dependencies import DependencyDetail

log = structlog.get_logger()

DEFAULT_MAX_DEPTH = 100
_VERSION_ROW_ID = 1

Adjacency = dict[uuid.UUID, list[uuid.UUID]]


class Traversal(NamedTuple):
    adjacency: Adjacency
    truncated: bool


def _detail_query():
    dependent = aliased(Task, name="dependent")
    prerequisite = aliased(Task, name="prerequisite")
    stmt = (
        select(
            TaskDependency.id,
            TaskDependency.task_id,
            TaskDependency.depends_on_task_id,
            TaskDependency.dependency_type,
            TaskDependency.created_by,
            TaskDependency.created_at,
            dependent.code.label("task_code"),
            dependent.title.label("task_title"),
            dependent.status.label("task_status"),
            prerequisite.code.label("depends_on_task_code"),
            prerequisite.title.label("depends_on_task_title"),
            prerequisite.status.label("depends_on_task_status"),
        )
        .select_from(TaskDependency)
        .join(dependent, dependent.id == TaskDependency.task_id)
        .join(prerequisite, prerequisite.id == TaskDependency.depends_on_task_id)
        .where(dependent.deleted_at.is_(None), prerequisite.deleted_at.is_(None))
        .order_by(TaskDependency.created_at.desc())
    )
    return stmt, dependent, prerequisite


class DependencyStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def create(
        self,
        task_id: uuid.UUID,
        depends_on_task_id: uuid.UUID,
        dependency_type: DependencyType = DependencyType.BLOCKS,
        created_by: Optional[uuid.UUID] = None,
    ) -> uuid.UUID:
        if task_id == depends_on_task_id:
            raise SelfReferenceError(task_id)
        if await self.exists(task_id, depends_on_task_id):
            raise DuplicateDependencyError(task_id, depends_on_task_id)

        dep = TaskDependency(
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
            dependency_type=dependency_type,
            created_by=created_by,
        )
        self.session.add(dep)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost an insert race on the unique pair.
            raise DuplicateDependencyError(task_id, depends_on_task_id) from exc

        log.info(
            "dependency.created",
            dependency_id=str(dep.id),
            task_id=str(task_id),
            depends_on_task_id=str(depends_on_task_id),
            dependency_type=dependency_type.value,
        )
        return dep.id

    async def delete(self, dependency_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(TaskDependency)
            .where(TaskDependency.id == dependency_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_by_pair(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(TaskDependency)
            .where(
                TaskDependency.task_id == task_id,
                TaskDependency.depends_on_task_id == depends_on_task_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_for_task(self, task_id: uuid.UUID) -> int:
        """Remove every edge touching ``task_id``, in either direction."""
        result = await self.session.execute(
            delete(TaskDependency)
            .where(
                or_(
                    TaskDependency.task_id == task_id,
                    TaskDependency.depends_on_task_id == task_id,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def exists(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(TaskDependency.id).where(
                TaskDependency.task_id == task_id,
                TaskDependency.depends_on_task_id == depends_on_task_id,
            )
        )
        return result.first() is not None

    async def dependencies_of(self, task_id: uuid.UUID) -> list[DependencyDetail]:
        """Edges where ``task_id`` is the dependent, with prerequisite details."""
        stmt, _, _ = _detail_query()
        result = await self.session.execute(stmt.where(TaskDependency.task_id == task_id))
        return [DependencyDetail(**row._mapping) for row in result.all()]

    async def dependents_of(self, task_id: uuid.UUID) -> list[DependencyDetail]:
        """Edges where ``task_id`` is the prerequisite, with dependent details."""
        stmt, _, _ = _detail_query()
        result = await self.session.execute(
            stmt.where(TaskDependency.depends_on_task_id == task_id)
        )
        return [DependencyDetail(**row._mapping) for row in result.all()]

    async def dependencies_of_project(self, project_id: uuid.UUID) -> list[DependencyDetail]:
        """All edges whose dependent task belongs to ``project_id``."""
        stmt, dependent, _ = _detail_query()
        result = await self.session.execute(stmt.where(dependent.project_id == project_id))
        return [DependencyDetail(**row._mapping) for row in result.all()]

    # -----------------------------------------------------------------------
    # Reachability
    # -----------------------------------------------------------------------

    async def traverse(
        self, task_id: uuid.UUID, max_depth: int = DEFAULT_MAX_DEPTH
    ) -> Traversal:
        """Load the dependsOn subgraph reachable from ``task_id``.

        One query per BFS level, at most ``max_depth`` levels. The returned
        mapping only holds nodes that were expanded; leaves have no key.
        ``truncated`` is set when the bound stopped the walk while unexpanded
        nodes still had outgoing edges.
        """
        adjacency: Adjacency = {}
        seen = {task_id}
        frontier = {task_id}
        depth = 0
        while frontier and depth < max_depth:
            result = await self.session.execute(
                select(TaskDependency.task_id, TaskDependency.depends_on_task_id)
                .where(TaskDependency.task_id.in_(frontier))
                .order_by(TaskDependency.created_at)
            )
            next_frontier: set[uuid.UUID] = set()
            for src, dst in result.all():
                adjacency.setdefault(src, []).append(dst)
                if dst not in seen:
                    seen.add(dst)
                    next_frontier.add(dst)
            frontier = next_frontier
            depth += 1

        truncated = False
        if frontier:
            result = await self.session.execute(
                select(TaskDependency.id)
                .where(TaskDependency.task_id.in_(frontier))
                .limit(1)
            )
            truncated = result.first() is not None
        if truncated:
            log.warning(
                "dependency.traversal_depth_reached",
                task_id=str(task_id),
                max_depth=max_depth,
                unexpanded=len(frontier),
            )
        return Traversal(adjacency, truncated)

    async def reachable_adjacency(
        self, task_id: uuid.UUID, max_depth: int = DEFAULT_MAX_DEPTH
    ) -> Adjacency:
        return (await self.traverse(task_id, max_depth)).adjacency

    async def transitive_closure(
        self, task_id: uuid.UUID, max_depth: int = DEFAULT_MAX_DEPTH
    ) -> set[uuid.UUID]:
        """Every task reachable from ``task_id`` by following dependsOn edges."""
        adjacency = await self.reachable_adjacency(task_id, max_depth)
        closure: set[uuid.UUID] = set()
        for targets in adjacency.values():
            closure.update(targets)
        return closure

    # -----------------------------------------------------------------------
    # Graph version (optimistic concurrency)
    # -----------------------------------------------------------------------

    async def graph_version(self) -> int:
        result = await self.session.execute(
            select(DependencyGraphVersion.version).where(
                DependencyGraphVersion.id == _VERSION_ROW_ID
            )
        )
        return result.scalar_one_or_none() or 0

    async def bump_graph_version(self, expected: int) -> int:
        """Compare-and-swap the version from ``expected`` to ``expected + 1``.

        Raises DependencyConflictError if another writer got there first.
        """
        result = await self.session.execute(
            update(DependencyGraphVersion)
            .where(
                DependencyGraphVersion.id == _VERSION_ROW_ID,
                DependencyGraphVersion.version == expected,
            )
            .values(version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return expected + 1

        if expected == 0:
            # First write ever: the row may not exist yet.
            try:
                await self.session.execute(
                    insert(DependencyGraphVersion).values(id=_VERSION_ROW_ID, version=1)
                )
            except IntegrityError as exc:
                raise DependencyConflictError() from exc
            return 1

        log.info("dependency.graph_version_conflict", expected=expected)
        raise DependencyConflictError()
