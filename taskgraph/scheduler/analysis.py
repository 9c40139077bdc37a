"""Structural analysis of the task dependency relation."""

import logging
from collections.abc import Mapping
from typing import Optional

from ..tasks.models import Task
from .errors import GraphCycleError

logger = logging.getLogger(__name__)

DEFAULT_TASK_COST = 1.0


def find_cycle(tasks: Mapping[str, Task]) -> Optional[list[str]]:
    """Find a dependency cycle.

    Depth-first walk over dependencies keeping a visited set and the ids on
    the current path. A dependency already on the path closes a cycle.
    Dependencies that are not in ``tasks`` are ignored.

    Args:
        tasks: Tasks keyed by id, in store order

    Returns:
        Cycle path with the first id repeated at the end, or None
    """
    visited: set[str] = set()

    for root in tasks:
        if root in visited:
            continue

        visited.add(root)
        path = [root]
        on_path = {root}
        stack = [iter(tasks[root].dependencies)]

        while stack:
            for dep in stack[-1]:
                if dep not in tasks:
                    continue
                if dep in on_path:
                    start = path.index(dep)
                    return path[start:] + [dep]
                if dep not in visited:
                    visited.add(dep)
                    path.append(dep)
                    on_path.add(dep)
                    stack.append(iter(tasks[dep].dependencies))
                    break
            else:
                stack.pop()
                on_path.discard(path.pop())

    return None


def has_cycle(tasks: Mapping[str, Task]) -> bool:
    """Check whether the dependency relation contains a cycle."""
    return find_cycle(tasks) is not None


def ensure_acyclic(tasks: Mapping[str, Task]) -> None:
    """Raise GraphCycleError if the graph has a cycle."""
    cycle = find_cycle(tasks)
    if cycle:
        raise GraphCycleError(
            "Cycle detected in task dependencies: " + " -> ".join(cycle),
            cycle=cycle,
        )


def topological_sort(tasks: Mapping[str, Task]) -> list[str]:
    """Order task ids so every task follows all of its dependencies.

    Dependency-first DFS postorder. Independent tasks keep store order.

    Args:
        tasks: Tasks keyed by id, in store order

    Returns:
        Every task id exactly once

    Raises:
        GraphCycleError: If the graph has a cycle
    """
    ensure_acyclic(tasks)

    order: list[str] = []
    visited: set[str] = set()

    for root in tasks:
        if root in visited:
            continue

        visited.add(root)
        stack = [(root, iter(tasks[root].dependencies))]

        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep in tasks and dep not in visited:
                    visited.add(dep)
                    stack.append((dep, iter(tasks[dep].dependencies)))
                    break
            else:
                stack.pop()
                order.append(node)

    return order


def parallel_batches(tasks: Mapping[str, Task]) -> list[list[str]]:
    """Group tasks into dependency levels.

    Each batch holds tasks whose present dependencies all sit in earlier
    batches. Missing dependency ids are ignored here.

    Raises:
        GraphCycleError: If the graph has a cycle
    """
    ensure_acyclic(tasks)

    dependents: dict[str, list[str]] = {task_id: [] for task_id in tasks}
    indegree: dict[str, int] = {task_id: 0 for task_id in tasks}

    for task_id, task in tasks.items():
        for dep in set(task.dependencies):
            if dep not in tasks or dep == task_id:
                continue
            dependents[dep].append(task_id)
            indegree[task_id] += 1

    batches: list[list[str]] = []
    ready = [task_id for task_id in tasks if indegree[task_id] == 0]
    while ready:
        batches.append(ready)
        next_ready: set[str] = set()
        for node in ready:
            for dependent in dependents[node]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    next_ready.add(dependent)
        ready = [task_id for task_id in tasks if task_id in next_ready]

    return batches


def critical_path(tasks: Mapping[str, Task]) -> tuple[list[str], float]:
    """Find the dependency chain with the largest summed estimated cost.

    Tasks without an ``estimated_cost`` count as DEFAULT_TASK_COST.

    Returns:
        (path of task ids from first to last, total cost)

    Raises:
        GraphCycleError: If the graph has a cycle
    """
    order = topological_sort(tasks)
    if not order:
        return [], 0.0

    best_cost: dict[str, float] = {}
    best_prev: dict[str, Optional[str]] = {}

    for task_id in order:
        task = tasks[task_id]
        cost = task.estimated_cost if task.estimated_cost is not None else DEFAULT_TASK_COST
        prev = None
        prev_cost = 0.0
        for dep in task.dependencies:
            if dep in best_cost and (prev is None or best_cost[dep] > prev_cost):
                prev = dep
                prev_cost = best_cost[dep]
        best_cost[task_id] = prev_cost + cost
        best_prev[task_id] = prev

    end = max(order, key=lambda task_id: best_cost[task_id])
    path = []
    node: Optional[str] = end
    while node is not None:
        path.append(node)
        node = best_prev[node]
    path.reverse()

    logger.debug(f"Critical path: {' -> '.join(path)} (cost {best_cost[end]:.2f})")
    return path, best_cost[end]
