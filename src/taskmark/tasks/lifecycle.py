"""Task status state machine.

Transition table (previous status is read from the task itself)::

    target       previous     stamps                              event
    IN_PROGRESS  DONE         updated, clear completed            reopened
    IN_PROGRESS  OPEN         updated                             started
    DONE         any other    updated, completed=today            completed
    OPEN         DONE         updated, clear completed            reopened
    OPEN         IN_PROGRESS  updated                             (none)
    same         same         (none)                              (none)

Only movements that change completion or velocity metrics produce an event;
demoting IN_PROGRESS back to OPEN is not logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from taskmark import log
from taskmark.errors import ValidationError
from taskmark.tasks.model import Task, TaskAction, TaskStatus

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "open": TaskStatus.OPEN,
    "todo": TaskStatus.OPEN,
    "in_progress": TaskStatus.IN_PROGRESS,
    "in-progress": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS,
    "progress": TaskStatus.IN_PROGRESS,
    "started": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
}


@dataclass(frozen=True)
class Transition:
    previous: TaskStatus
    status: TaskStatus
    action: TaskAction | None

    @property
    def changed(self) -> bool:
        return self.previous != self.status


def parse_status(token: TaskStatus | str) -> TaskStatus:
    """Accept a :class:`TaskStatus` or a user-typed token like ``in-progress``."""
    if isinstance(token, TaskStatus):
        return token
    status = _STATUS_ALIASES.get((token or "").strip().lower())
    if status is None:
        raise ValidationError(f"Invalid status: {token!r} (use open, in-progress or done).")
    return status


def _action_for(previous: TaskStatus, target: TaskStatus) -> TaskAction | None:
    if target == TaskStatus.DONE:
        return TaskAction.COMPLETED
    if previous == TaskStatus.DONE:
        return TaskAction.REOPENED
    if target == TaskStatus.IN_PROGRESS:
        return TaskAction.STARTED
    return None


def apply_transition(task: Task, target: TaskStatus | str, today: date) -> Transition:
    """Move *task* to *target* in place, stamping dates per the table above."""
    target = parse_status(target)
    previous = task.status
    if previous == target:
        return Transition(previous, target, None)

    task.status = target
    task.updated_date = today
    if target == TaskStatus.DONE:
        task.completed_date = today
    else:
        task.completed_date = None

    action = _action_for(previous, target)
    log.debug(
        f"Task {task.id}: {previous.value} -> {target.value}"
        + (f" ({action.value})" if action else " (not logged)")
    )
    return Transition(previous, target, action)
