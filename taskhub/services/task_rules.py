"""
Task status state machine.

Strict linear workflow: TODO -> IN_PROGRESS -> DONE. DONE is terminal and
a status never "transitions" to itself.
"""

from __future__ import annotations

from taskhub.schemas.common import TaskStatus

INITIAL_STATUS = TaskStatus.TODO

VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.DONE}),
    TaskStatus.DONE: frozenset(),
}


def allowed_transitions(current: TaskStatus) -> frozenset[TaskStatus]:
    return VALID_TRANSITIONS.get(current, frozenset())


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    if current == target:
        return False
    return target in allowed_transitions(current)


def reachable_statuses(start: TaskStatus = INITIAL_STATUS) -> frozenset[TaskStatus]:
    """BFS over the transition table. Includes the start status itself."""
    visited: set[TaskStatus] = set()
    queue = [start]
    while queue:
        current = queue.pop(0)
        if current in visited:
            continue
        visited.add(current)
        queue.extend(allowed_transitions(current))
    return frozenset(visited)
