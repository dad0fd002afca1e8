"""Task dependency models."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from nexus_shared.schemas.common import DependencyType

from .base import CreatedAtMixin, UUIDMixin


class TaskDependency(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    """Directed edge: ``task_id`` depends on ``depends_on_task_id``."""

    __tablename__ = "task_dependencies"
    __table_args__ = (
        sa.UniqueConstraint("task_id", "depends_on_task_id", name="unique_task_dependency"),
        sa.CheckConstraint("task_id != depends_on_task_id", name="no_self_dependency"),
    )

    task_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    depends_on_task_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    dependency_type: DependencyType = Field(
        default=DependencyType.BLOCKS,
        sa_type=sa.Enum(DependencyType, name="dependency_type", native_enum=False, length=20),
        nullable=False,
    )
    created_by: Optional[uuid.UUID] = None


class DependencyGraphVersion(SQLModel, table=True):
    """Single-row counter bumped by every accepted edge insert (optimistic lock)."""

    __tablename__ = "dependency_graph_version"

    id: int = Field(default=1, primary_key=True)
    version: int = Field(default=0, nullable=False)
