"""Progress reporting and status rendering."""

import logging
from collections import Counter
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Optional

from ..scheduler.events import EventBus, EventType, GraphEvent
from ..scheduler.graph import TaskGraph
from ..tasks.models import ExecutionReport, TaskStatus

logger = logging.getLogger(__name__)


class StatusSymbol(str, Enum):
    """Symbols for status display."""

    PENDING = "○"
    RUNNING = "◐"
    COMPLETED = "●"
    FAILED = "✗"
    SKIPPED = "◌"


STATUS_SYMBOLS = {
    TaskStatus.PENDING: StatusSymbol.PENDING,
    TaskStatus.RUNNING: StatusSymbol.RUNNING,
    TaskStatus.COMPLETED: StatusSymbol.COMPLETED,
    TaskStatus.FAILED: StatusSymbol.FAILED,
    TaskStatus.SKIPPED: StatusSymbol.SKIPPED,
}


class ProgressReporter:
    """Log graph events and keep running counts.

    Attach with ``reporter.attach(graph.events)``; ``detach()`` removes it.
    """

    def __init__(self, echo: Optional[Callable[[str], None]] = None):
        """Initialize progress reporter.

        Args:
            echo: Optional sink for one-line progress messages (e.g. click.echo)
        """
        self.echo = echo
        self.counts: Counter[EventType] = Counter()
        self.report: Optional[ExecutionReport] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, events: EventBus) -> None:
        self.detach()
        self._unsubscribe = events.subscribe(self.handle)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: GraphEvent) -> None:
        """Record one event."""
        self.counts[event.type] += 1
        message = self._format(event)
        if not message:
            return
        logger.debug(message)
        if self.echo:
            self.echo(message)

    def _format(self, event: GraphEvent) -> Optional[str]:
        if event.type == EventType.TASK_RUNNING:
            return f"{StatusSymbol.RUNNING.value} {event.task_id} running"
        if event.type == EventType.TASK_COMPLETED:
            return f"{StatusSymbol.COMPLETED.value} {event.task_id} completed"
        if event.type == EventType.TASK_FAILED:
            return f"{StatusSymbol.FAILED.value} {event.task_id} failed: {event.reason}"
        if event.type == EventType.TASK_SKIPPED:
            return f"{StatusSymbol.SKIPPED.value} {event.task_id} skipped: {event.reason}"
        if event.type == EventType.BATCH_COMPLETE and event.counts:
            counts = event.counts
            return (
                f"Round {counts.round}: {counts.completed}/{counts.size} completed"
                + (f" | {counts.progress}" if counts.progress else "")
            )
        if event.type == EventType.EXECUTION_COMPLETE:
            self.report = event.report
        return None


def render_status(graph: TaskGraph, report: Optional[ExecutionReport] = None) -> str:
    """Render graph status as Markdown.

    Args:
        graph: Task graph
        report: Final execution report, if execution finished

    Returns:
        Markdown content
    """
    lines = [
        "# Task Graph Status",
        "",
        f"**Progress:** {graph.get_progress()}",
    ]

    if report is not None:
        outcome = "succeeded" if report.success else "failed"
        lines.append(
            f"**Outcome:** {outcome} in {report.total_duration:.2f}s over {report.rounds} rounds"
        )

    lines.extend(["", "## Tasks", ""])

    for task in graph.get_all_tasks():
        symbol = STATUS_SYMBOLS[task.status].value
        line = f"- {symbol} `{task.id}` {task.description}".rstrip()
        if task.dependencies:
            line += f" (after: {', '.join(task.dependencies)})"
        lines.append(line)
        if task.result is not None:
            lines.append(f"  - {task.result.duration:.2f}s")
            if task.result.error:
                lines.append(f"  - error: {task.result.error}")

    return "\n".join(lines) + "\n"


def write_status(path: Path, graph: TaskGraph, report: Optional[ExecutionReport] = None) -> None:
    """Write the Markdown status report to a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(render_status(graph, report))
    logger.debug(f"Updated {path}")
