"""Task graph data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.SKIPPED})


class DelegateRole(str, Enum):
    """Kind of agent a task is meant to be delegated to."""

    PLANNER = "planner"
    CODER = "coder"
    REVIEWER = "reviewer"
    TESTER = "tester"
    RESEARCHER = "researcher"


class TaskResult(BaseModel):
    """Outcome of a single task execution."""

    success: bool = Field(description="Whether the task succeeded")
    output: str = Field(default="", description="Task output")
    duration: float = Field(default=0.0, description="Execution time in seconds")
    error: Optional[str] = Field(default=None, description="Error message on failure")


class Task(BaseModel):
    """A unit of work in the task graph."""

    id: str = Field(min_length=1, description="Unique task identifier")
    description: str = Field(default="", description="What the task does")
    dependencies: list[str] = Field(default_factory=list, description="Ids this task waits for")
    delegate_role: Optional[DelegateRole] = Field(default=None, description="Delegated agent role")
    # Carried as metadata; admission order ignores it.
    parallel_hint: Optional[bool] = Field(default=None, description="Planner parallelism hint")
    estimated_cost: Optional[float] = Field(default=None, description="Relative cost estimate")
    command: Optional[str] = Field(default=None, description="Shell command for the command executor")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Lifecycle status")
    result: Optional[TaskResult] = Field(default=None, description="Result once settled")

    @property
    def is_terminal(self) -> bool:
        """Return True once the task can no longer change status."""
        return self.status in TERMINAL_STATUSES


class TaskProgress(BaseModel):
    """Task counts per status bucket."""

    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0

    def __str__(self) -> str:
        """Return string representation."""
        return (
            f"Total: {self.total} | "
            f"Pending: {self.pending} | "
            f"Running: {self.running} | "
            f"Completed: {self.completed} | "
            f"Failed: {self.failed} | "
            f"Skipped: {self.skipped}"
        )


class ExecutionReport(BaseModel):
    """Aggregate outcome of a graph execution."""

    success: bool = Field(description="True when nothing failed or was skipped")
    results: dict[str, TaskResult] = Field(default_factory=dict, description="Results by task id")
    total_duration: float = Field(default=0.0, description="Wall-clock seconds")
    completed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    rounds: int = Field(default=0, description="Number of dispatched batches")
