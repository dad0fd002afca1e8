"""Circular dependency detection and explanation."""

from __future__ import annotations

import uuid
from collections import deque
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.services.dependency_store import DEFAULT_MAX_DEPTH, DependencyStore
from app.services.task_lookup import TaskLookup
from nexus_shared.schemas.dependencies import CycleDetectionResult

log = structlog.get_logger()

CYCLE_PREFIX = "Adding this dependency would create a circular dependency: "
SELF_REFERENCE_MESSAGE = "A task cannot depend on itself"
ARROW = " → "


class CycleDetector:
    """Decides whether ``task_id -> depends_on_task_id`` would close a cycle.

    The new edge closes a cycle exactly when the prerequisite already
    (directly or transitively) depends on the dependent.
    """

    def __init__(
        self,
        store: DependencyStore,
        lookup: TaskLookup,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.store = store
        self.lookup = lookup
        self.max_depth = max_depth

    async def would_create_cycle(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> bool:
        """True when the edge closes a cycle, or when that cannot be ruled out.

        A traversal cut short by ``max_depth`` counts as a cycle: the edge is
        rejected rather than risking a loop longer than the bound.
        """
        if task_id == depends_on_task_id:
            return True
        traversal = await self.store.traverse(depends_on_task_id, self.max_depth)
        for targets in traversal.adjacency.values():
            if task_id in targets:
                return True
        if traversal.truncated:
            log.warning(
                "dependency.cycle_check_truncated",
                task_id=str(task_id),
                depends_on_task_id=str(depends_on_task_id),
                max_depth=self.max_depth,
            )
            return True
        return False

    async def find_cycle_path(
        self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID
    ) -> list[uuid.UUID]:
        """Return ``[task_id, depends_on_task_id, ..., task_id]``.

        Only meaningful once would_create_cycle() is true. If the route back to
        ``task_id`` cannot be reconstructed, returns the minimal
        ``[task_id, depends_on_task_id, task_id]``.
        """
        fallback = [task_id, depends_on_task_id, task_id]
        try:
            adjacency = await self.store.reachable_adjacency(depends_on_task_id, self.max_depth)
        except SQLAlchemyError as exc:
            log.warning(
                "dependency.cycle_path_fallback",
                task_id=str(task_id),
                depends_on_task_id=str(depends_on_task_id),
                reason="traversal_error",
                error=str(exc),
            )
            return fallback

        route = shortest_path(adjacency, depends_on_task_id, task_id, self.max_depth)
        if route is None:
            log.warning(
                "dependency.cycle_path_fallback",
                task_id=str(task_id),
                depends_on_task_id=str(depends_on_task_id),
                reason="path_not_found",
            )
            return fallback
        return [task_id, *route]

    async def render_description(self, cycle_path: Sequence[uuid.UUID]) -> str:
        labels = []
        for task_id in cycle_path:
            try:
                task = await self.lookup.get_task_by_id(task_id)
            except Exception as exc:
                log.warning(
                    "dependency.cycle_label_fallback", task_id=str(task_id), error=str(exc)
                )
                task = None
            labels.append(task.label if task else str(task_id))
        return CYCLE_PREFIX + ARROW.join(labels)

    async def detect(
        self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID
    ) -> CycleDetectionResult:
        if task_id == depends_on_task_id:
            return CycleDetectionResult(
                has_cycle=True,
                cycle_path=[task_id, task_id],
                description=SELF_REFERENCE_MESSAGE,
            )

        if not await self.would_create_cycle(task_id, depends_on_task_id):
            return CycleDetectionResult(has_cycle=False)

        cycle_path = await self.find_cycle_path(task_id, depends_on_task_id)
        return CycleDetectionResult(
            has_cycle=True,
            cycle_path=cycle_path,
            description=await self.render_description(cycle_path),
        )


def shortest_path(
    adjacency: dict[uuid.UUID, list[uuid.UUID]],
    start: uuid.UUID,
    goal: uuid.UUID,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Optional[list[uuid.UUID]]:
    """BFS from ``start`` to ``goal``; returns ``[start, ..., goal]`` or None."""
    parents: dict[uuid.UUID, Optional[uuid.UUID]] = {start: None}
    queue = deque([(start, 0)])
    while queue:
        current, depth = queue.popleft()
        if current == goal:
            route = [goal]
            while parents[route[-1]] is not None:
                route.append(parents[route[-1]])
            route.reverse()
            return route
        if depth >= max_depth:
            continue
        for nxt in adjacency.get(current, []):
            if nxt not in parents:
                parents[nxt] = current
                queue.append((nxt, depth + 1))
    return None
