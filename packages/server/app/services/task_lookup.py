"""
Read-only task resolution for the dependency engine.

The engine never writes tasks. It needs id -> {code, title, status, project}
and a single answer to "is this status terminal?", both defined here.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models.task import Task
from nexus_shared.schemas.dependencies import TaskRef


def is_terminal_status(status: Optional[str], terminal_statuses: Optional[Iterable[str]] = None) -> bool:
    """True if ``status`` is one of the configured terminal statuses (case-insensitive)."""
    if not status:
        return False
    if terminal_statuses is None:
        terminal_statuses = get_settings().terminal_statuses
    return status.strip().casefold() in {s.casefold() for s in terminal_statuses}


class TaskLookup(Protocol):
    async def get_task_by_id(self, task_id: uuid.UUID) -> Optional[TaskRef]:
        ...


class SqlTaskLookup:
    """TaskLookup backed by the ``tasks`` table. Soft-deleted tasks are not found."""

    def __init__(self, session: AsyncSession, terminal_statuses: Optional[Iterable[str]] = None):
        self.session = session
        self.terminal_statuses = list(
            terminal_statuses if terminal_statuses is not None else get_settings().terminal_statuses
        )

    async def get_task_by_id(self, task_id: uuid.UUID) -> Optional[TaskRef]:
        task = await self.session.get(Task, task_id, populate_existing=True)
        if task is None or task.deleted_at is not None:
            return None
        return TaskRef(
            id=task.id,
            code=task.code,
            title=task.title,
            status=task.status,
            project_id=task.project_id,
            is_terminal=is_terminal_status(task.status, self.terminal_statuses),
        )
