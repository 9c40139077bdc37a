"""Lifecycle event notification."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..tasks.models import ExecutionReport, TaskProgress

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Graph lifecycle event types."""

    TASK_RUNNING = "task_running"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_SKIPPED = "task_skipped"
    BATCH_COMPLETE = "batch_complete"
    EXECUTION_COMPLETE = "execution_complete"


@dataclass
class BatchCounts:
    """Outcome counts for one dispatched batch."""

    round: int
    size: int
    completed: int = 0
    failed: int = 0
    progress: Optional[TaskProgress] = None


@dataclass
class GraphEvent:
    """Notification emitted on a lifecycle change."""

    type: EventType
    task_id: Optional[str] = None
    reason: Optional[str] = None
    counts: Optional[BatchCounts] = None
    report: Optional[ExecutionReport] = None


Listener = Callable[[GraphEvent], None]


class EventBus:
    """Callback registry for graph events.

    Listeners observe only. A listener that raises is logged and the
    remaining listeners still run.
    """

    def __init__(self):
        self._listeners: list[tuple[Listener, Optional[frozenset[EventType]]]] = []

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with each matching GraphEvent
            event_types: Restrict to these types (None for all)

        Returns:
            Function that removes the listener
        """
        entry = (listener, frozenset(event_types) if event_types is not None else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: GraphEvent) -> None:
        """Deliver an event to matching listeners."""
        for listener, types in list(self._listeners):
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed on {event.type.value}: {e}")

    def __len__(self) -> int:
        return len(self._listeners)
