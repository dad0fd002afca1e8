"""Node/edge projection of a project's dependency edges, for visualization."""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog

from app.services.task_lookup import TaskLookup
from nexus_shared.schemas.dependencies import DependencyDetail, DependencyGraph, GraphEdge, GraphNode

log = structlog.get_logger()


class DependencyGraphBuilder:
    def __init__(self, lookup: TaskLookup):
        self.lookup = lookup

    async def build(self, dependencies: Sequence[DependencyDetail]) -> DependencyGraph:
        # Distinct task ids, first-seen order
        task_ids: dict[uuid.UUID, None] = {}
        for dep in dependencies:
            task_ids.setdefault(dep.task_id, None)
            task_ids.setdefault(dep.depends_on_task_id, None)

        nodes: list[GraphNode] = []
        for task_id in task_ids:
            task = await self.lookup.get_task_by_id(task_id)
            if task is None:
                log.debug("dependency_graph.node_unresolved", task_id=str(task_id))
                continue
            nodes.append(
                GraphNode(id=task.id, code=task.code or "", title=task.title, status=task.status)
            )

        edges = [
            GraphEdge(from_=dep.task_id, to=dep.depends_on_task_id, type=dep.dependency_type)
            for dep in dependencies
        ]
        return DependencyGraph(nodes=nodes, edges=edges)
