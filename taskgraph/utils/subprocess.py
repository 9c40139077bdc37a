"""Subprocess management with timeouts."""

import asyncio
import logging
import os
import signal
from pathlib import Path

logger = logging.getLogger(__name__)


class SubprocessError(Exception):
    """Subprocess execution error."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class SubprocessManager:
    """Managed shell command execution with a hard timeout."""

    @staticmethod
    async def _terminate_process(
        process: asyncio.subprocess.Process,
        timeout_sec: float = 2.0,
    ) -> None:
        """Terminate a subprocess and its children (best-effort).

        On POSIX the command runs in its own session so the whole process
        group can be signalled.
        """
        if process.returncode is not None:
            return

        try:
            if os.name != "nt":
                os.killpg(process.pid, signal.SIGTERM)
            else:
                process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout_sec)
            return
        except TimeoutError:
            pass

        # Escalate.
        try:
            if os.name != "nt":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout_sec)
        except TimeoutError:
            logger.warning(f"Process {process.pid} did not exit after SIGKILL")

    def __init__(
        self,
        timeout_sec: float,
        shell: str = "/bin/sh",
    ):
        """Initialize subprocess manager.

        Args:
            timeout_sec: Hard timeout for process
            shell: Shell executable used to run commands
        """
        self.timeout_sec = timeout_sec
        self.shell = shell

    async def run(
        self,
        command: str,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> dict:
        """Run a shell command with timeout.

        Args:
            command: Shell command line
            cwd: Working directory
            env: Environment variables

        Returns:
            Result dict with keys:
                - success: bool
                - output: str (stdout and stderr combined)
                - exit_code: int | None
                - timed_out: bool

        Raises:
            SubprocessError: If the command cannot be started
        """
        logger.info(f"Running command: {command[:200]}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                command,
                cwd=cwd,
                env=env,
                start_new_session=(os.name != "nt"),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError:
            if cwd is not None and not Path(cwd).exists():
                raise SubprocessError(f"Working directory not found: {cwd}")
            raise SubprocessError(f"Shell not found: {self.shell}")
        except OSError as e:
            raise SubprocessError(f"Subprocess error: {e}")

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout_sec)
        except TimeoutError:
            await self._terminate_process(process)
            logger.warning(f"Command timed out after {self.timeout_sec}s: {command[:200]}")
            return {
                "success": False,
                "output": "",
                "exit_code": None,
                "timed_out": True,
            }
        except asyncio.CancelledError:
            # Do not leak the child when the caller is cancelled.
            await self._terminate_process(process)
            raise

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        exit_code = process.returncode
        logger.info(f"Command completed: exit_code={exit_code}")

        return {
            "success": exit_code == 0,
            "output": output,
            "exit_code": exit_code,
            "timed_out": False,
        }
