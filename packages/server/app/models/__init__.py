# SQLModel definitions, imported here to ensure metadata is populated.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .task import Task  # noqa: F401
from .dependency import TaskDependency, DependencyGraphVersion  # noqa: F401
