from enum import Enum

class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETE = "complete"

class DependencyType(str, Enum):
    BLOCKS = "BLOCKS"          # dependent cannot finish until prerequisite is terminal
    RELATES_TO = "RELATES_TO"  # informational link, still acyclic

class ValidationCode(str, Enum):
    # Errors
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    DEPENDS_ON_TASK_NOT_FOUND = "DEPENDS_ON_TASK_NOT_FOUND"
    DEPENDENCY_EXISTS = "DEPENDENCY_EXISTS"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    SELF_REFERENCE = "SELF_REFERENCE"
    # Warnings
    CROSS_PROJECT_DEPENDENCY = "CROSS_PROJECT_DEPENDENCY"
    DEPENDENCY_ALREADY_COMPLETED = "DEPENDENCY_ALREADY_COMPLETED"

