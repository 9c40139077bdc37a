"""Task store, queries and failure cascade."""

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from ..tasks.models import (
    ExecutionReport,
    Task,
    TaskProgress,
    TaskResult,
    TaskStatus,
)
from . import analysis
from .dag import Executor, GraphScheduler
from .errors import TaskTransitionError
from .events import EventBus, EventType, GraphEvent

logger = logging.getLogger(__name__)

TaskLike = Union[Task, Mapping[str, Any]]


class TaskGraph:
    """Task dependency graph with execution state."""

    def __init__(self, events: Optional[EventBus] = None):
        """Initialize an empty graph.

        Args:
            events: Event bus for lifecycle notifications (a new one if omitted)
        """
        self.events = events or EventBus()
        self._tasks: dict[str, Task] = {}

    @classmethod
    def from_descriptors(
        cls,
        descriptors: Iterable[TaskLike],
        events: Optional[EventBus] = None,
    ) -> "TaskGraph":
        """Build a graph from an ordered collection of task descriptors."""
        graph = cls(events=events)
        graph.add_tasks(descriptors)
        return graph

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def add_task(self, task: TaskLike) -> Task:
        """Insert or overwrite a task.

        The stored copy always starts pending with no result, whatever
        status the caller supplied.

        Args:
            task: Task model or mapping of task fields

        Returns:
            The stored task
        """
        if isinstance(task, Task):
            stored = task.model_copy(deep=True)
        else:
            stored = Task.model_validate(dict(task))

        stored.status = TaskStatus.PENDING
        stored.result = None

        if stored.id in self._tasks:
            logger.debug(f"Overwriting task {stored.id}")
        self._tasks[stored.id] = stored
        return stored

    def add_tasks(self, tasks: Iterable[TaskLike]) -> None:
        """Insert tasks in order."""
        for task in tasks:
            self.add_task(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        """Get task by id, or None if not found."""
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[Task]:
        """Get all tasks in insertion order."""
        return list(self._tasks.values())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _dependency_satisfied(self, dep_id: str) -> bool:
        # Skipped counts as satisfied, so a task may run after an ancestor
        # was skipped.
        dep = self._tasks.get(dep_id)
        return dep is not None and dep.status in (TaskStatus.COMPLETED, TaskStatus.SKIPPED)

    def get_ready(self) -> list[Task]:
        """Get pending tasks whose dependencies are all completed or skipped."""
        return [
            task
            for task in self._tasks.values()
            if task.status == TaskStatus.PENDING
            and all(self._dependency_satisfied(dep) for dep in task.dependencies)
        ]

    def get_pending(self) -> list[Task]:
        """Get tasks still waiting to run."""
        return [task for task in self._tasks.values() if task.status == TaskStatus.PENDING]

    def get_unmet_dependencies(self, task_id: str) -> list[str]:
        """Get dependency ids of a task that do not satisfy readiness."""
        task = self._require(task_id)
        return [dep for dep in task.dependencies if not self._dependency_satisfied(dep)]

    def get_dependents(self, task_id: str) -> list[Task]:
        """Get tasks that list task_id as a dependency."""
        return [task for task in self._tasks.values() if task_id in task.dependencies]

    def get_progress(self) -> TaskProgress:
        """Count tasks per status."""
        progress = TaskProgress(total=len(self._tasks))
        for task in self._tasks.values():
            field = task.status.value
            setattr(progress, field, getattr(progress, field) + 1)
        return progress

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def has_cycle(self) -> bool:
        """Check whether the dependency relation contains a cycle."""
        return analysis.has_cycle(self._tasks)

    def find_cycle(self) -> Optional[list[str]]:
        """Return one dependency cycle, or None."""
        return analysis.find_cycle(self._tasks)

    def topological_sort(self) -> list[str]:
        """Return task ids in dependency-first order.

        Raises:
            GraphCycleError: If the graph has a cycle
        """
        return analysis.topological_sort(self._tasks)

    def parallel_batches(self) -> list[list[str]]:
        """Return task ids grouped by dependency level."""
        return analysis.parallel_batches(self._tasks)

    def critical_path(self) -> tuple[list[str], float]:
        """Return the costliest dependency chain and its cost."""
        return analysis.critical_path(self._tasks)

    def validate(self) -> list[str]:
        """Validate graph structure and return list of issues.

        Returns:
            List of issue messages (empty if valid)
        """
        issues = []

        if not self._tasks:
            issues.append("Graph has no tasks")

        for task in self._tasks.values():
            for dep in dict.fromkeys(task.dependencies):
                if dep == task.id:
                    issues.append(f"Task {task.id} depends on itself")
                elif dep not in self._tasks:
                    issues.append(f"Task {task.id} has missing dependency: {dep}")

        cycle = self.find_cycle()
        if cycle and len(cycle) > 2:
            issues.append("Cycle detected in task dependencies: " + " -> ".join(cycle))

        return issues

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")
        return task

    def _transition(self, task: Task, new_status: TaskStatus) -> None:
        if task.is_terminal:
            raise TaskTransitionError(
                f"Invalid transition for task {task.id}: {task.status.value} -> {new_status.value}"
            )
        if new_status == TaskStatus.RUNNING and task.status != TaskStatus.PENDING:
            raise TaskTransitionError(
                f"Invalid transition for task {task.id}: {task.status.value} -> {new_status.value}"
            )
        task.status = new_status

    def mark_running(self, task_id: str) -> None:
        """Mark task as running.

        Args:
            task_id: Task ID
        """
        task = self._require(task_id)
        self._transition(task, TaskStatus.RUNNING)
        logger.info(f"Task {task_id} marked as running")
        self.events.emit(GraphEvent(type=EventType.TASK_RUNNING, task_id=task_id))

    def mark_complete(self, task_id: str, result: TaskResult) -> None:
        """Mark task as complete.

        Args:
            task_id: Task ID
            result: Task result
        """
        task = self._require(task_id)
        self._transition(task, TaskStatus.COMPLETED)
        task.result = result
        logger.info(f"Task {task_id} marked as complete")
        self.events.emit(GraphEvent(type=EventType.TASK_COMPLETED, task_id=task_id))

    def mark_failed(
        self,
        task_id: str,
        error: str,
        result: Optional[TaskResult] = None,
    ) -> list[str]:
        """Mark task as failed and skip everything pending downstream.

        Args:
            task_id: Task ID
            error: Error message
            result: Failed result from the executor, if any

        Returns:
            Ids of tasks skipped by the cascade
        """
        task = self._require(task_id)
        self._transition(task, TaskStatus.FAILED)
        if result is None:
            result = TaskResult(success=False, output="", duration=0.0, error=error)
        elif result.error is None:
            result = result.model_copy(update={"error": error})
        task.result = result
        logger.error(f"Task {task_id} marked as failed: {error}")
        self.events.emit(GraphEvent(type=EventType.TASK_FAILED, task_id=task_id, reason=error))

        return self._cascade_skip(task_id)

    def mark_skipped(self, task_id: str, reason: str) -> None:
        """Mark a pending task as skipped.

        Args:
            task_id: Task ID
            reason: Why the task will not run
        """
        task = self._require(task_id)
        self._transition(task, TaskStatus.SKIPPED)
        logger.warning(f"Task {task_id} skipped: {reason}")
        self.events.emit(GraphEvent(type=EventType.TASK_SKIPPED, task_id=task_id, reason=reason))

    def _cascade_skip(self, failed_id: str) -> list[str]:
        skipped: list[str] = []
        queue = deque([failed_id])

        while queue:
            upstream = queue.popleft()
            for dependent in self.get_dependents(upstream):
                if dependent.status != TaskStatus.PENDING:
                    continue
                self.mark_skipped(dependent.id, f"Dependency {upstream} did not complete")
                skipped.append(dependent.id)
                queue.append(dependent.id)

        return skipped

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, executor: Executor, max_parallel: int = 5) -> ExecutionReport:
        """Run every task to a terminal state.

        Args:
            executor: Async callable taking a Task and returning a TaskResult
            max_parallel: Maximum tasks admitted per round

        Returns:
            ExecutionReport

        Raises:
            GraphCycleError: If the graph has a cycle
            ValueError: If max_parallel is less than 1
        """
        scheduler = GraphScheduler(self, executor, max_parallel=max_parallel)
        return await scheduler.run()
