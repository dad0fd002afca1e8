"""
Error types raised by the dependency graph engine.

Input errors are caller-correctable and mirror entries of a ValidationResult.
Infrastructure errors are not; a DependencyConflictError is the one a caller
should retry (after rolling back its session).
"""

from __future__ import annotations

import uuid

from nexus_shared.schemas.dependencies import ValidationResult


class DependencyError(Exception):
    """Base class for all dependency graph errors."""


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class InvalidDependencyError(DependencyError):
    """Raised by add_dependency when validation fails; no edge is written."""

    def __init__(self, validation: ValidationResult):
        self.validation = validation
        messages = "; ".join(e.message for e in validation.errors)
        super().__init__(f"Cannot add dependency: {messages}")


class SelfReferenceError(DependencyError):
    def __init__(self, task_id: uuid.UUID):
        self.task_id = task_id
        super().__init__("A task cannot depend on itself")


class DuplicateDependencyError(DependencyError):
    def __init__(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID):
        self.task_id = task_id
        self.depends_on_task_id = depends_on_task_id
        super().__init__("Dependency already exists between these tasks")


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------


class DependencyInfrastructureError(DependencyError):
    """The backing store failed; not caller-correctable."""


class DependencyConflictError(DependencyInfrastructureError):
    """Another writer changed the graph concurrently. Roll back and retry."""

    retryable = True

    def __init__(self, message: str = "Dependency graph changed concurrently; retry the operation"):
        super().__init__(message)


class DependencyStoreError(DependencyInfrastructureError):
    retryable = False
