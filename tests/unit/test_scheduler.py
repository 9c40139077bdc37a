"""Unit tests for the round-based scheduler."""

import asyncio

import pytest

from taskgraph.scheduler.dag import GraphScheduler
from taskgraph.scheduler.errors import (
    UNREACHABLE_DEPENDENCY,
    GraphCycleError,
    TaskExecutionError,
)
from taskgraph.scheduler.events import EventType
from taskgraph.scheduler.graph import TaskGraph
from taskgraph.tasks.models import Task, TaskResult, TaskStatus


class RecordingExecutor:
    """Executor that records admission order and fails selected tasks."""

    def __init__(self, fail: set[str] | None = None, raise_on: set[str] | None = None):
        self.fail = fail or set()
        self.raise_on = raise_on or set()
        self.started: list[str] = []
        self.finished: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, task: Task) -> TaskResult:
        self.started.append(task.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if task.id in self.raise_on:
                raise TaskExecutionError(f"{task.id} exploded", output="partial")
            if task.id in self.fail:
                return TaskResult(success=False, output="", duration=0.0, error=f"{task.id} failed")
            return TaskResult(success=True, output=f"{task.id} ok", duration=0.0)
        finally:
            self.active -= 1
            self.finished.append(task.id)


def chain_graph() -> TaskGraph:
    return TaskGraph.from_descriptors([
        {"id": "A", "description": "first"},
        {"id": "B", "description": "second", "dependencies": ["A"]},
        {"id": "C", "description": "third", "dependencies": ["B"]},
    ])


@pytest.mark.asyncio
async def test_execute_chain_success():
    """Test a chain runs in dependency order and succeeds."""
    graph = chain_graph()
    executor = RecordingExecutor()

    report = await graph.execute(executor)

    assert report.success is True
    assert report.completed_count == 3
    assert report.failed_count == 0
    assert report.skipped_count == 0
    assert report.rounds == 3
    assert executor.started == ["A", "B", "C"]
    # B starts only after A finished, C only after B finished
    assert executor.finished.index("A") < executor.started.index("B")
    assert executor.finished.index("B") < executor.started.index("C")
    assert set(report.results) == {"A", "B", "C"}
    assert report.results["B"].output == "B ok"


@pytest.mark.asyncio
async def test_execute_failure_skips_downstream():
    """Test a failed root skips its whole chain."""
    graph = chain_graph()
    executor = RecordingExecutor(fail={"A"})

    report = await graph.execute(executor)

    assert report.success is False
    assert report.failed_count == 1
    assert report.skipped_count == 2
    assert report.completed_count == 0
    assert executor.started == ["A"]
    assert graph.get_task("B").status == TaskStatus.SKIPPED
    assert graph.get_task("C").status == TaskStatus.SKIPPED
    assert report.results["A"].error == "A failed"
    assert "B" not in report.results


@pytest.mark.asyncio
async def test_execute_exception_marks_failed():
    """Test an executor exception becomes a failed task, not a crash."""
    graph = TaskGraph.from_descriptors([
        {"id": "A"},
        {"id": "B", "dependencies": ["A"]},
        {"id": "C"},
    ])
    executor = RecordingExecutor(raise_on={"A"})

    report = await graph.execute(executor)

    assert report.success is False
    assert graph.get_task("A").status == TaskStatus.FAILED
    assert report.results["A"].error == "A exploded"
    assert report.results["A"].output == "partial"
    assert graph.get_task("B").status == TaskStatus.SKIPPED
    assert graph.get_task("C").status == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_execute_settles_whole_batch():
    """Test one failure does not cancel siblings in the same round."""
    graph = TaskGraph.from_descriptors([{"id": "A"}, {"id": "B"}, {"id": "C"}])
    executor = RecordingExecutor(raise_on={"A"}, fail={"B"})

    report = await graph.execute(executor, max_parallel=3)

    assert report.rounds == 1
    assert sorted(executor.finished) == ["A", "B", "C"]
    assert report.failed_count == 2
    assert report.completed_count == 1


@pytest.mark.asyncio
async def test_execute_max_parallel_one_runs_sequential_rounds():
    """Test three independent tasks run one per round with max_parallel=1."""
    graph = TaskGraph.from_descriptors([{"id": "A"}, {"id": "B"}, {"id": "C"}])
    executor = RecordingExecutor()
    batches = []
    graph.events.subscribe(lambda e: batches.append(e.counts), [EventType.BATCH_COMPLETE])

    report = await graph.execute(executor, max_parallel=1)

    assert report.success is True
    assert report.completed_count == 3
    assert report.rounds == 3
    assert executor.max_active == 1
    assert executor.started == ["A", "B", "C"]
    assert [b.size for b in batches] == [1, 1, 1]
    assert batches[-1].progress.completed == 3


@pytest.mark.asyncio
async def test_execute_respects_max_parallel():
    """Test a round admits at most max_parallel tasks, in store order."""
    graph = TaskGraph.from_descriptors([{"id": f"t{i}"} for i in range(7)])
    executor = RecordingExecutor()

    report = await graph.execute(executor, max_parallel=3)

    assert report.rounds == 3
    assert executor.max_active <= 3
    assert executor.started == [f"t{i}" for i in range(7)]


@pytest.mark.asyncio
async def test_execute_runs_batch_concurrently():
    """Test tasks in the same round overlap."""
    graph = TaskGraph.from_descriptors([{"id": "A"}, {"id": "B"}])
    both_started = asyncio.Event()
    started = []

    async def executor(task: Task) -> TaskResult:
        started.append(task.id)
        if len(started) == 2:
            both_started.set()
        await asyncio.wait_for(both_started.wait(), timeout=1)
        return TaskResult(success=True)

    report = await graph.execute(executor, max_parallel=2)

    assert report.success is True
    assert report.rounds == 1


@pytest.mark.asyncio
async def test_execute_no_mid_round_admission():
    """Test a slot freed early is not refilled until the round ends."""
    graph = TaskGraph.from_descriptors([{"id": "slow"}, {"id": "fast"}, {"id": "next"}])
    release = asyncio.Event()
    events = []

    async def executor(task: Task) -> TaskResult:
        events.append(f"start:{task.id}")
        if task.id == "slow":
            await release.wait()
        else:
            release.set()
        events.append(f"end:{task.id}")
        return TaskResult(success=True)

    await graph.execute(executor, max_parallel=2)

    assert events.index("start:next") > events.index("end:slow")


@pytest.mark.asyncio
async def test_execute_tasks_marked_running_before_dispatch():
    """Test admitted tasks are running when the executor sees them."""
    graph = TaskGraph.from_descriptors([{"id": "A"}, {"id": "B"}])
    seen = {}

    async def executor(task: Task) -> TaskResult:
        seen[task.id] = {t.id: t.status for t in graph.get_all_tasks()}
        return TaskResult(success=True)

    await graph.execute(executor, max_parallel=2)

    assert seen["A"] == {"A": TaskStatus.RUNNING, "B": TaskStatus.RUNNING}


@pytest.mark.asyncio
async def test_execute_missing_dependency_deadlock():
    """Test a task waiting on an unknown id is failed as unreachable."""
    graph = TaskGraph.from_descriptors([{"id": "A", "dependencies": ["ghost"]}])
    executor = RecordingExecutor()

    report = await graph.execute(executor)

    assert executor.started == []
    assert report.rounds == 0
    assert report.failed_count == 1
    assert report.success is False
    error = report.results["A"].error
    assert error.startswith(UNREACHABLE_DEPENDENCY)
    assert "ghost" in error


@pytest.mark.asyncio
async def test_execute_deadlock_cascades():
    """Test deadlocked tasks cascade to their own dependents."""
    graph = TaskGraph.from_descriptors([
        {"id": "A"},
        {"id": "B", "dependencies": ["ghost"]},
        {"id": "C", "dependencies": ["B"]},
    ])

    report = await graph.execute(RecordingExecutor())

    assert graph.get_task("A").status == TaskStatus.COMPLETED
    assert graph.get_task("B").status == TaskStatus.FAILED
    assert graph.get_task("C").status == TaskStatus.SKIPPED
    assert report.completed_count == 1
    assert report.failed_count == 1
    assert report.skipped_count == 1


@pytest.mark.asyncio
async def test_execute_deadlock_cascades_regardless_of_insertion_order():
    """Test the blocked task fails first even when its dependent was added first."""
    graph = TaskGraph.from_descriptors([
        {"id": "C", "dependencies": ["B"]},
        {"id": "B", "dependencies": ["ghost"]},
        {"id": "A"},
    ])

    report = await graph.execute(RecordingExecutor())

    assert graph.get_task("B").status == TaskStatus.FAILED
    assert "ghost" in report.results["B"].error
    assert graph.get_task("C").status == TaskStatus.SKIPPED
    assert report.completed_count == 1
    assert report.failed_count == 1
    assert report.skipped_count == 1


@pytest.mark.asyncio
async def test_execute_passes_copy_to_executor():
    """Test executor changes to the task do not reach the stored task."""
    graph = TaskGraph.from_descriptors([
        {"id": "A"},
        {"id": "B", "dependencies": ["A"]},
    ])

    async def meddling(task: Task) -> TaskResult:
        task.dependencies.append("ghost")
        task.description = "changed"
        return TaskResult(success=True)

    report = await graph.execute(meddling)

    assert report.completed_count == 2
    assert graph.get_task("A").dependencies == []
    assert graph.get_task("B").dependencies == ["A"]
    assert graph.get_task("B").description == ""


@pytest.mark.asyncio
async def test_execute_skipped_dependency_still_runs_dependent():
    """Test a dependent of a skipped task is still executed."""
    graph = TaskGraph.from_descriptors([
        {"id": "A"},
        {"id": "B", "dependencies": ["A"]},
    ])
    graph.mark_skipped("A", "not needed")
    executor = RecordingExecutor()

    report = await graph.execute(executor)

    assert executor.started == ["B"]
    assert graph.get_task("B").status == TaskStatus.COMPLETED
    assert report.skipped_count == 1
    assert report.success is False


@pytest.mark.asyncio
async def test_execute_cycle_raises_before_running():
    """Test a cyclic graph fails fast without running anything."""
    graph = TaskGraph.from_descriptors([
        {"id": "A", "dependencies": ["B"]},
        {"id": "B", "dependencies": ["A"]},
        {"id": "C"},
    ])
    executor = RecordingExecutor()

    with pytest.raises(GraphCycleError):
        await graph.execute(executor)

    assert executor.started == []
    assert graph.get_task("C").status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_execute_invalid_result_marks_failed():
    """Test a non-result return value fails the task."""
    graph = TaskGraph.from_descriptors([{"id": "A"}])

    async def executor(task: Task):
        return None

    report = await graph.execute(executor)

    assert report.failed_count == 1
    assert "invalid result" in report.results["A"].error


@pytest.mark.asyncio
async def test_execute_accepts_result_mapping():
    """Test a dict shaped like TaskResult is accepted."""
    graph = TaskGraph.from_descriptors([{"id": "A"}])

    async def executor(task: Task):
        return {"success": True, "output": "done", "duration": 0.1}

    report = await graph.execute(executor)

    assert report.success is True
    assert report.results["A"].output == "done"


@pytest.mark.asyncio
async def test_execute_empty_graph():
    """Test an empty graph finishes immediately and succeeds."""
    report = await TaskGraph().execute(RecordingExecutor())

    assert report.success is True
    assert report.rounds == 0
    assert report.results == {}


@pytest.mark.asyncio
async def test_execute_emits_execution_complete():
    """Test the final report is published to subscribers."""
    graph = chain_graph()
    reports = []
    graph.events.subscribe(lambda e: reports.append(e.report), [EventType.EXECUTION_COMPLETE])

    report = await graph.execute(RecordingExecutor())

    assert reports == [report]


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_execution():
    """Test a failing subscriber does not affect scheduling."""
    graph = chain_graph()

    def broken(event):
        raise RuntimeError("listener bug")

    graph.events.subscribe(broken)

    report = await graph.execute(RecordingExecutor())

    assert report.success is True


def test_scheduler_rejects_invalid_max_parallel():
    """Test max_parallel below one is rejected."""
    with pytest.raises(ValueError):
        GraphScheduler(TaskGraph(), RecordingExecutor(), max_parallel=0)
