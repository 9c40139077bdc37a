"""Executors that run task commands."""

import logging
import time
from pathlib import Path
from typing import Optional

from ..tasks.models import Task, TaskResult
from ..utils.subprocess import SubprocessError, SubprocessManager
from .base import BaseExecutor

logger = logging.getLogger(__name__)

class CommandExecutor(BaseExecutor):
    """Run each task's ``command`` in a shell."""

    def __init__(
        self,
        timeout_sec: float = 600,
        working_dir: Optional[Path] = None,
        shell: str = "/bin/sh",
    ):
        """Initialize command executor.

        Args:
            timeout_sec: Per-task timeout
            working_dir: Directory commands run in (current directory if None)
            shell: Shell executable
        """
        self.working_dir = working_dir
        self.manager = SubprocessManager(timeout_sec=timeout_sec, shell=shell)

    async def execute(self, task: Task) -> TaskResult:
        """Run the task command and report its exit status."""
        started = time.monotonic()

        if not task.command:
            return TaskResult(
                success=False,
                duration=0.0,
                error=f"Task {task.id} has no command",
            )

        try:
            result = await self.manager.run(task.command, cwd=self.working_dir)
        except SubprocessError as e:
            return TaskResult(
                success=False,
                duration=time.monotonic() - started,
                error=str(e),
            )

        duration = time.monotonic() - started
        if result["timed_out"]:
            error = f"Timed out after {self.manager.timeout_sec}s"
        elif not result["success"]:
            error = f"Command exited with code {result['exit_code']}"
            lines = result["output"].strip().splitlines()
            if lines:
                error = f"{error}: {lines[-1]}"
        else:
            error = None

        return TaskResult(
            success=result["success"],
            output=result["output"],
            duration=duration,
            error=error,
        )


class DryRunExecutor(BaseExecutor):
    """Succeed every task without running anything."""

    async def execute(self, task: Task) -> TaskResult:
        logger.info(f"[dry-run] {task.id}: {task.command or task.description}")
        return TaskResult(success=True, output=f"dry run: {task.id}", duration=0.0)
