"""Round-based DAG scheduler."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..tasks.models import ExecutionReport, Task, TaskResult, TaskStatus
from .errors import UNREACHABLE_DEPENDENCY
from .events import BatchCounts, EventType, GraphEvent

if TYPE_CHECKING:
    from .graph import TaskGraph

logger = logging.getLogger(__name__)

Executor = Callable[[Task], Awaitable[TaskResult]]


class GraphScheduler:
    """Execute a task graph in rounds of bounded size.

    Each round takes the first ``max_parallel`` ready tasks, runs them
    concurrently and waits for all of them to settle before the next ready
    set is computed. A slot freed early is not refilled mid-round.
    """

    def __init__(self, graph: TaskGraph, executor: Executor, max_parallel: int = 5):
        """Initialize scheduler.

        Args:
            graph: Graph to execute
            executor: Async callable taking a Task and returning a TaskResult
            max_parallel: Maximum tasks admitted per round
        """
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")

        self.graph = graph
        self.executor = executor
        self.max_parallel = max_parallel
        self.rounds = 0

    async def run(self) -> ExecutionReport:
        """Run rounds until no task is pending.

        Returns:
            ExecutionReport

        Raises:
            GraphCycleError: If the graph has a cycle
        """
        # Checked before anything runs; also what makes the cascade terminate.
        self.graph.topological_sort()

        started = time.monotonic()
        logger.info(
            f"Executing {len(self.graph)} tasks (max_parallel={self.max_parallel})"
        )

        while True:
            ready = self.graph.get_ready()

            if not ready:
                pending = self.graph.get_pending()
                if pending:
                    self._fail_unreachable(pending)
                break

            await self._run_batch(ready[: self.max_parallel])

        report = self._build_report(time.monotonic() - started)
        logger.info(
            f"Execution finished in {report.total_duration:.2f}s: "
            f"{report.completed_count} completed, {report.failed_count} failed, "
            f"{report.skipped_count} skipped"
        )
        self.graph.events.emit(GraphEvent(type=EventType.EXECUTION_COMPLETE, report=report))
        return report

    async def _run_batch(self, batch: list[Task]) -> None:
        self.rounds += 1
        logger.info(f"Round {self.rounds}: dispatching {', '.join(t.id for t in batch)}")

        for task in batch:
            self.graph.mark_running(task.id)

        outcomes = await asyncio.gather(*(self._invoke(task) for task in batch))

        counts = BatchCounts(round=self.rounds, size=len(batch))
        for task, result in zip(batch, outcomes):
            if result.success:
                self.graph.mark_complete(task.id, result)
                counts.completed += 1
            else:
                self.graph.mark_failed(task.id, result.error or "Task failed", result=result)
                counts.failed += 1

        counts.progress = self.graph.get_progress()
        logger.info(
            f"Round {self.rounds} complete: {counts.completed} completed, "
            f"{counts.failed} failed ({counts.progress})"
        )
        self.graph.events.emit(GraphEvent(type=EventType.BATCH_COMPLETE, counts=counts))

    async def _invoke(self, task: Task) -> TaskResult:
        """Run the executor for one task, turning any error into a failed result."""
        started = time.monotonic()
        try:
            result: Any = await self.executor(task.model_copy(deep=True))
        except Exception as e:
            logger.debug(f"Executor raised for task {task.id}", exc_info=True)
            return TaskResult(
                success=False,
                output=str(getattr(e, "output", "") or ""),
                duration=time.monotonic() - started,
                error=str(e) or type(e).__name__,
            )

        if isinstance(result, TaskResult):
            return result

        try:
            return TaskResult.model_validate(result)
        except ValidationError:
            return TaskResult(
                success=False,
                duration=time.monotonic() - started,
                error=f"Executor returned invalid result: {type(result).__name__}",
            )

    def _fail_unreachable(self, pending: list[Task]) -> None:
        """Fail tasks that can never become ready.

        Tasks are visited dependency-first so a blocked task fails before
        anything waiting on it, and the cascade skips those dependents.
        """
        logger.warning(
            f"Deadlock: {len(pending)} pending tasks with no ready tasks"
        )
        stuck = {task.id for task in pending}
        for task_id in self.graph.topological_sort():
            if task_id not in stuck:
                continue
            task = self.graph.get_task(task_id)
            # An earlier failure in this pass may already have skipped it.
            if task.status != TaskStatus.PENDING:
                continue
            unmet = self.graph.get_unmet_dependencies(task.id)
            self.graph.mark_failed(
                task.id,
                f"{UNREACHABLE_DEPENDENCY}: {', '.join(unmet) or 'none'}",
            )

    def _build_report(self, duration: float) -> ExecutionReport:
        results = {}
        completed = failed = skipped = 0

        for task in self.graph.get_all_tasks():
            if task.result is not None:
                results[task.id] = task.result
            if task.status == TaskStatus.COMPLETED:
                completed += 1
            elif task.status == TaskStatus.FAILED:
                failed += 1
            elif task.status == TaskStatus.SKIPPED:
                skipped += 1

        return ExecutionReport(
            success=failed == 0 and skipped == 0,
            results=results,
            total_duration=duration,
            completed_count=completed,
            failed_count=failed,
            skipped_count=skipped,
            rounds=self.rounds,
        )
