"""Project analytics derived by replaying work-log events."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from taskmark import log
from taskmark.errors import TaskmarkError
from taskmark.io_utils import read_lines, read_text
from taskmark.tasks.codec import parse_tasks
from taskmark.tasks.model import Task, TaskAction, TaskStatus
from taskmark.workspace import Workspace
from taskmark.worklog import TaskEvent, parse_events

STAGNANT_AFTER_DAYS = 7
WEEK = timedelta(days=7)


@dataclass
class Insights:
    total_tasks: int = 0
    open_tasks: int = 0
    in_progress_tasks: int = 0
    done_tasks: int = 0
    completed_this_week: int = 0
    completion_rate: float = 0.0
    most_used_tag: str = "None"
    productivity_score: float = 0.0
    stagnant_tasks: int = 0
    average_completion_days: float = 0.0
    tag_frequency: dict[str, int] = field(default_factory=dict)
    daily_activity: dict[date, int] = field(default_factory=dict)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_insights(
    events: Iterable[TaskEvent],
    tasks: Sequence[Task],
    today: date,
) -> Insights:
    """Fold *events* and the current task snapshot into :class:`Insights`.

    Only the counts come from *tasks*; every historical fact (last change,
    weekly completions, tags, activity) comes from the events.
    """
    events = list(events)

    total = len(tasks)
    open_count = sum(1 for t in tasks if t.status == TaskStatus.OPEN)
    in_progress = sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS)
    done = sum(1 for t in tasks if t.status == TaskStatus.DONE)
    completion_rate = (done * 100.0 / total) if total else 0.0

    last_change: dict[int, date] = {}
    created: dict[int, date] = {}
    completed: dict[int, date] = {}
    daily: dict[date, int] = {}
    tag_frequency: dict[str, int] = {}
    completed_this_week = 0
    week_start = today - WEEK

    for event in events:
        previous = last_change.get(event.task_id)
        if previous is None or event.date > previous:
            last_change[event.task_id] = event.date
        daily[event.date] = daily.get(event.date, 0) + 1

        if event.action == TaskAction.CREATED:
            created[event.task_id] = event.date
        elif event.action == TaskAction.COMPLETED:
            completed[event.task_id] = event.date
            if event.date >= week_start:
                completed_this_week += 1

        for tag in event.tags:
            tag = tag.strip()
            if tag:
                tag_frequency[tag] = tag_frequency.get(tag, 0) + 1

    stagnant = sum(
        1
        for t in tasks
        if t.status != TaskStatus.DONE
        and t.id in last_change
        and (today - last_change[t.id]).days > STAGNANT_AFTER_DAYS
    )

    velocity = min(completed_this_week * 10.0, 100.0)
    score = _clamp(completion_rate * 0.5 + velocity * 0.4 - stagnant * 5.0, 0.0, 100.0)

    # max() keeps the first maximal key, so ties go to the first-seen tag
    most_used = max(tag_frequency, key=tag_frequency.__getitem__) if tag_frequency else "None"

    durations = [(completed[i] - created[i]).days for i in completed if i in created]
    average_days = sum(durations) / len(durations) if durations else 0.0

    return Insights(
        total_tasks=total,
        open_tasks=open_count,
        in_progress_tasks=in_progress,
        done_tasks=done,
        completed_this_week=completed_this_week,
        completion_rate=completion_rate,
        most_used_tag=most_used,
        productivity_score=score,
        stagnant_tasks=stagnant,
        average_completion_days=average_days,
        tag_frequency=tag_frequency,
        daily_activity=daily,
    )


def generate_insights(workspace: Workspace, project: str, today: date | None = None) -> Insights:
    """Read the project's tasks and work log and compute insights.

    Never raises on I/O or parse trouble: analytics degrade to a neutral
    :class:`Insights` instead of breaking the caller.
    """
    today = today or date.today()
    try:
        tasks_path = workspace.tasks_file(project)
        log_path = workspace.work_log_file(project)
        tasks = parse_tasks(read_lines(tasks_path), today=today).task_file.tasks if tasks_path.is_file() else []
        events = parse_events(read_text(log_path)) if log_path.is_file() else []
    except (OSError, ValueError, TaskmarkError) as exc:
        log.warn(f"Insights unavailable for {project}: {exc}")
        return Insights()
    return compute_insights(events, tasks, today)
