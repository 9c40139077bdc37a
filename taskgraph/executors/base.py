"""Base executor interface."""

from abc import ABC, abstractmethod

from ..tasks.models import Task, TaskResult


class BaseExecutor(ABC):
    """Base executor interface.

    Instances are callable, so they can be passed anywhere the scheduler
    expects an ``async (Task) -> TaskResult`` function.
    """

    @abstractmethod
    async def execute(self, task: Task) -> TaskResult:
        """Execute a single task.

        Args:
            task: Task to execute

        Returns:
            TaskResult describing the outcome

        Raises:
            Exception: Any error is recorded as a task failure by the scheduler
        """
        pass

    async def __call__(self, task: Task) -> TaskResult:
        return await self.execute(task)
