"""Logging configuration."""

import logging
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILE_PREFIX = "taskgraph_"


class TaskGraphFormatter(logging.Formatter):
    """Console formatter with level colors and short timestamps."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True):
        """Initialize formatter.

        Args:
            use_colors: Whether to use colors in output
        """
        super().__init__()
        self.use_colors = use_colors

    def _level(self, levelname: str) -> str:
        if not (self.use_colors and sys.stderr.isatty()):
            return levelname
        return f"{self.COLORS.get(levelname, '')}{levelname}{self.COLORS['RESET']}"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        # "taskgraph.scheduler.dag" -> "dag"
        name = record.name.rsplit(".", 1)[-1]

        message = record.getMessage()
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        return f"[{timestamp}] {self._level(record.levelname):8} {name:10} {message}"


def prune_logs(log_dir: Path, retention_days: int) -> list[Path]:
    """Delete taskgraph log files in log_dir older than retention_days.

    Only files named like ``taskgraph_*.log`` (and their rotated backups)
    are considered. A retention of zero or less keeps everything.

    Returns:
        Paths that were removed
    """
    if retention_days <= 0 or not log_dir.is_dir():
        return []

    cutoff = time.time() - retention_days * 86400
    removed = []
    for path in log_dir.glob(f"{LOG_FILE_PREFIX}*.log*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
        except FileNotFoundError:
            continue
    return removed


def _file_handler(log_file: Path, rotation_mb: int, retention_days: int) -> logging.Handler:
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max(1, rotation_mb) * 1024 * 1024,
        backupCount=max(1, retention_days),
    )
    handler.setFormatter(TaskGraphFormatter(use_colors=False))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    rotation_mb: int = 10,
    retention_days: int = 7,
    use_colors: bool = True,
    console: bool = True,
) -> None:
    """Configure the root logger for a taskgraph run.

    Args:
        level: Log level name, any case
        log_file: Explicit log file; wins over log_dir
        log_dir: Directory for a timestamped ``taskgraph_<ts>.log``
        rotation_mb: Size at which the log file rotates (MB)
        retention_days: Age after which old log files are removed
        use_colors: Color level names on a terminal
        console: Log to stderr
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(TaskGraphFormatter(use_colors=use_colors))
        root_logger.addHandler(console_handler)

    if log_file is None and log_dir is not None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = Path(log_dir) / f"{LOG_FILE_PREFIX}{stamp}.log"
    pruned: list[Path] = []
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        pruned = prune_logs(log_file.parent, retention_days)
        root_logger.addHandler(_file_handler(log_file, rotation_mb, retention_days))

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if pruned:
        logging.getLogger(__name__).debug(f"Removed {len(pruned)} old log files")


def get_logger(name: str) -> logging.Logger:
    """Get logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
