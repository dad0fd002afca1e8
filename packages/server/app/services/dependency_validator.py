"""Validation of a proposed dependency edge."""

from __future__ import annotations

import uuid

from app.services.cycle_detector import CycleDetector
from app.services.dependency_store import DependencyStore
from app.services.task_lookup import TaskLookup
from nexus_shared.schemas.common import ValidationCode
from nexus_shared.schemas.dependencies import ValidationIssue, ValidationResult


class DependencyValidator:
    """Runs existence -> duplicate -> cycle checks, then warning-only checks.

    The first failing stage returns immediately. Warnings never affect is_valid.
    """

    def __init__(self, store: DependencyStore, lookup: TaskLookup, cycle_detector: CycleDetector):
        self.store = store
        self.lookup = lookup
        self.cycle_detector = cycle_detector

    async def validate(self, task_id: uuid.UUID, depends_on_task_id: uuid.UUID) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        # 1. Existence
        task = await self.lookup.get_task_by_id(task_id)
        if task is None:
            errors.append(
                ValidationIssue(
                    field="task_id",
                    message="Task not found",
                    code=ValidationCode.TASK_NOT_FOUND,
                )
            )
        depends_on = await self.lookup.get_task_by_id(depends_on_task_id)
        if depends_on is None:
            errors.append(
                ValidationIssue(
                    field="depends_on_task_id",
                    message="Dependency task not found",
                    code=ValidationCode.DEPENDS_ON_TASK_NOT_FOUND,
                )
            )
        if errors:
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        # 2. Duplicate
        if await self.store.exists(task_id, depends_on_task_id):
            errors.append(
                ValidationIssue(
                    field="depends_on_task_id",
                    message="This dependency already exists",
                    code=ValidationCode.DEPENDENCY_EXISTS,
                )
            )
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        # 3. Cycle
        cycle = await self.cycle_detector.detect(task_id, depends_on_task_id)
        if cycle.has_cycle:
            code = (
                ValidationCode.SELF_REFERENCE
                if task_id == depends_on_task_id
                else ValidationCode.CIRCULAR_DEPENDENCY
            )
            errors.append(
                ValidationIssue(
                    field="depends_on_task_id",
                    message=cycle.description or "Circular dependency detected",
                    code=code,
                )
            )
            return ValidationResult(
                is_valid=False, errors=errors, warnings=warnings, cycle_detection=cycle
            )

        # 4. Soft checks
        if task.project_id != depends_on.project_id:
            warnings.append(
                ValidationIssue(
                    field="depends_on_task_id",
                    message="Tasks are in different projects. "
                    "Cross-project dependencies may be harder to track.",
                    code=ValidationCode.CROSS_PROJECT_DEPENDENCY,
                )
            )
        if depends_on.is_terminal:
            warnings.append(
                ValidationIssue(
                    field="depends_on_task_id",
                    message="The dependency task is already completed",
                    code=ValidationCode.DEPENDENCY_ALREADY_COMPLETED,
                )
            )

        return ValidationResult(
            is_valid=not errors, errors=errors, warnings=warnings, cycle_detection=cycle
        )
