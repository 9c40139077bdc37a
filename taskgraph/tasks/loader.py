"""Task file loading."""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Task

logger = logging.getLogger(__name__)


class TaskLoadError(Exception):
    """Task file loading error."""

    pass


def _normalize_dependencies(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise TaskLoadError(f"dependencies must be a list, got {type(raw).__name__}")
    return [str(dep).strip() for dep in raw if str(dep).strip()]


def parse_tasks(data: object, source: str = "<data>") -> list[Task]:
    """Build tasks from a parsed task document.

    Args:
        data: Parsed YAML document with a top-level ``tasks`` list
        source: Name used in error messages

    Returns:
        Tasks in document order

    Raises:
        TaskLoadError: If the document is malformed
    """
    if not isinstance(data, dict) or "tasks" not in data:
        raise TaskLoadError(f"{source}: expected a mapping with a 'tasks' list")

    entries = data["tasks"]
    if not isinstance(entries, list):
        raise TaskLoadError(f"{source}: 'tasks' must be a list")

    tasks: list[Task] = []
    seen: set[str] = set()

    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise TaskLoadError(f"{source}: task #{index} is not a mapping: {entry!r}")

        fields = dict(entry)
        raw_id = fields.get("id")
        task_id = "" if raw_id is None else str(raw_id).strip()
        if not task_id:
            raise TaskLoadError(f"{source}: task #{index} is missing an id")
        if task_id in seen:
            raise TaskLoadError(f"{source}: duplicate task id: {task_id}")
        seen.add(task_id)

        raw_deps = fields.pop("depends_on", None)
        if "dependencies" in fields:
            raw_deps = fields["dependencies"]
        try:
            fields["dependencies"] = _normalize_dependencies(raw_deps)
        except TaskLoadError as e:
            raise TaskLoadError(f"{source}: task {task_id}: {e}")

        fields["id"] = task_id
        fields.pop("status", None)
        fields.pop("result", None)

        try:
            tasks.append(Task(**fields))
        except ValidationError as e:
            raise TaskLoadError(f"{source}: invalid task {task_id}: {e}")

    logger.info(f"Loaded {len(tasks)} tasks from {source}")
    return tasks


def load_tasks(task_path: Path) -> list[Task]:
    """Load task descriptors from a YAML task file.

    Args:
        task_path: Path to task file

    Returns:
        Tasks in file order

    Raises:
        TaskLoadError: If file missing or invalid
    """
    if not task_path.exists():
        raise TaskLoadError(f"Task file not found: {task_path}")

    try:
        with open(task_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TaskLoadError(f"Invalid YAML in {task_path}: {e}")

    if not data:
        raise TaskLoadError(f"Empty task file: {task_path}")

    return parse_tasks(data, source=str(task_path))
