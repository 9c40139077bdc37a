"""Task graph errors."""

from typing import Optional

UNREACHABLE_DEPENDENCY = "Unreachable dependency"


class GraphError(Exception):
    """Base task graph error."""

    pass


class GraphCycleError(GraphError):
    """Dependency cycle detected."""

    def __init__(self, message: str, cycle: Optional[list[str]] = None):
        super().__init__(message)
        self.cycle = cycle or []


class TaskTransitionError(GraphError):
    """Invalid task status transition."""

    pass


class TaskExecutionError(GraphError):
    """Task execution failure raised by an executor."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output
