"""Task model.

Tasks are owned by the task CRUD service; the dependency engine only reads them.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from nexus_shared.schemas.common import TaskStatus

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    code: Optional[str] = Field(default=None, index=True)  # e.g. "PRJ-42"
    title: str = Field(nullable=False)
    status: str = Field(nullable=False, default=TaskStatus.BACKLOG.value)
    project_id: Optional[uuid.UUID] = Field(default=None, index=True)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
