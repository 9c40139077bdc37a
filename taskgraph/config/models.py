"""Configuration models for taskgraph."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SchedulerConfig(BaseModel):
    """Round-based scheduler configuration."""

    max_parallel: int = Field(default=5, ge=1, description="Max tasks admitted per round")


class ExecutorConfig(BaseModel):
    """Command executor configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    timeout_sec: float = Field(default=600, gt=0, description="Per-task command timeout")
    working_dir: Optional[Path] = Field(default=None, description="Directory commands run in")
    shell: str = Field(default="/bin/sh", description="Shell used to run commands")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = Field(default="INFO", description="Log level")
    log_dir: Path = Field(default=Path(".taskgraph/logs"), description="Log directory")
    rotation_mb: int = Field(default=10, description="Log rotation size (MB)")
    retention_days: int = Field(default=7, description="Log retention days")


class TaskGraphConfig(BaseModel):
    """Main configuration model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
