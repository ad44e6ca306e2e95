"""File-backed task store: one ``tasks.md`` per project.

Every mutation is a whole-file cycle under :func:`~taskmark.io_utils.file_lock`:
load through the codec, mutate in memory, commit atomically, then append
any lifecycle event to the project's work log. A failing log append is
reported and swallowed; the committed task change always stands.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path

from taskmark import log
from taskmark.errors import NotFoundError, StoreIOError, ValidationError
from taskmark.io_utils import file_lock, read_lines, write_lines
from taskmark.tasks.codec import format_tasks, parse_tasks
from taskmark.tasks.lifecycle import Transition, apply_transition, parse_status
from taskmark.tasks.model import (
    DEFAULT_PRIORITY,
    PRIORITIES,
    SubTask,
    Task,
    TaskAction,
    TaskFile,
    TaskStatus,
)
from taskmark.workspace import Workspace
from taskmark.worklog import WorkLog

_BAD_TAG = re.compile(r"[\s,<>]")


def _validate_priority(priority: int) -> int:
    if priority not in PRIORITIES:
        raise ValidationError(f"Priority must be one of {', '.join(map(str, PRIORITIES))}, got {priority}.")
    return priority


def _validate_tags(tags: Iterable[str] | None) -> list[str]:
    cleaned: list[str] = []
    for raw in tags or ():
        tag = raw.strip().lstrip("#")
        if not tag:
            continue
        if _BAD_TAG.search(tag):
            raise ValidationError(f"Invalid tag {raw!r}: tags cannot contain spaces, commas, < or >.")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def _clean_description(description: str) -> str:
    lines = [line.rstrip() for line in (description or "").strip().split("\n")]
    if not lines or not lines[0].strip():
        raise ValidationError("Task title cannot be blank.")
    lines[0] = lines[0].strip()
    return "\n".join(lines)


class TaskStore:
    """Task operations for every project in a :class:`Workspace`."""

    def __init__(self, workspace: Workspace, *, today: Callable[[], date] = date.today) -> None:
        self.workspace = workspace
        self._today = today

    # ── reading ──────────────────────────────────────────────────

    def _read(self, project: str, path: Path) -> TaskFile:
        if not path.is_file():
            return TaskFile(project=project)
        try:
            lines = read_lines(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreIOError(f"Failed to read {path.name} for {project}: {exc}") from exc
        result = parse_tasks(
            lines,
            strict=self.workspace.config.strict_parsing,
            today=self._today(),
        )
        log.parse_issues(path, result.issues)
        if not result.task_file.project:
            result.task_file.project = project
        return result.task_file

    def load(self, project: str) -> TaskFile:
        """Parse the project's tasks file. A missing file is an empty project."""
        return self._read(project, self.workspace.tasks_file(project))

    def list_tasks(self, project: str, status: TaskStatus | str | None = None) -> list[Task]:
        task_file = self.load(project)
        if status is None:
            return sorted(task_file.tasks, key=lambda t: t.id)
        return task_file.by_status(parse_status(status))

    def get_task(self, project: str, task_id: int) -> Task:
        return self._require(self.load(project), task_id)

    @staticmethod
    def _require(task_file: TaskFile, task_id: int) -> Task:
        task = task_file.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task #{task_id} not found.")
        return task

    # ── read-modify-write cycle ──────────────────────────────────

    @contextmanager
    def _modify(self, project: str) -> Iterator[TaskFile]:
        """Yield the loaded task file and commit it if the block exits cleanly."""
        path = self.workspace.tasks_file(project)
        with file_lock(path):
            task_file = self._read(project, path)
            yield task_file
            try:
                self.workspace.ensure_project(project)
                write_lines(path, format_tasks(task_file))
            except OSError as exc:
                raise StoreIOError(f"Failed to write {path.name} for {project}: {exc}") from exc
            log.debug(f"Wrote {path}")

    def _work_log(self, project: str) -> WorkLog:
        return WorkLog(self.workspace.work_log_file(project), project, today=self._today)

    def _record(self, project: str, task: Task, action: TaskAction, previous: TaskStatus | None) -> None:
        try:
            self._work_log(project).append_task_event(task, action, previous)
        except Exception as exc:
            log.warn(f"Task #{task.id} saved, but the work log was not updated: {exc}")

    # ── tasks ────────────────────────────────────────────────────

    def create_task(
        self,
        project: str,
        description: str,
        tags: Iterable[str] | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> Task:
        """Append a new OPEN task with the next id and log ``created``."""
        text = _clean_description(description)
        priority = _validate_priority(priority)
        clean_tags = _validate_tags(tags)
        with self._modify(project) as task_file:
            task = Task(
                id=task_file.allocate_id(),
                description=text,
                priority=priority,
                tags=clean_tags,
                created_date=self._today(),
            )
            task_file.tasks.append(task)
        self._record(project, task, TaskAction.CREATED, None)
        return task

    def delete_task(self, project: str, task_id: int) -> Task:
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task_file.tasks.remove(task)
        return task

    def update_description(self, project: str, task_id: int, description: str) -> Task:
        text = _clean_description(description)
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task.description = text
            task.updated_date = self._today()
        return task

    def update_priority(self, project: str, task_id: int, priority: int) -> Task:
        priority = _validate_priority(priority)
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task.priority = priority
            task.updated_date = self._today()
        return task

    def update_tags(self, project: str, task_id: int, tags: Iterable[str]) -> Task:
        clean_tags = _validate_tags(tags)
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task.tags = clean_tags
            task.updated_date = self._today()
        return task

    # ── lifecycle ────────────────────────────────────────────────

    def move_task(self, project: str, task_id: int, status: TaskStatus | str) -> Transition:
        """Apply a status transition and log it when the table says so."""
        target = parse_status(status)
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            transition = apply_transition(task, target, self._today())
        if transition.action is not None:
            self._record(project, task, transition.action, transition.previous)
        return transition

    def start_task(self, project: str, task_id: int) -> Transition:
        return self.move_task(project, task_id, TaskStatus.IN_PROGRESS)

    def complete_task(self, project: str, task_id: int) -> Transition:
        return self.move_task(project, task_id, TaskStatus.DONE)

    def reopen_task(self, project: str, task_id: int) -> Transition:
        return self.move_task(project, task_id, TaskStatus.OPEN)

    # ── subtasks ─────────────────────────────────────────────────

    @staticmethod
    def _require_subtask(task: Task, index: int) -> SubTask:
        if index < 0 or index >= len(task.subtasks):
            raise NotFoundError(f"Task #{task.id} has no subtask {index + 1}.")
        return task.subtasks[index]

    def add_subtask(self, project: str, task_id: int, title: str) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Subtask title cannot be blank.")
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task.subtasks.append(SubTask(title))
            task.updated_date = self._today()
        return task

    def toggle_subtask(self, project: str, task_id: int, index: int) -> Task:
        """Flip the done flag of the subtask at zero-based *index*."""
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            subtask = self._require_subtask(task, index)
            subtask.done = not subtask.done
            task.updated_date = self._today()
        return task

    def remove_subtask(self, project: str, task_id: int, index: int) -> Task:
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            self._require_subtask(task, index)
            del task.subtasks[index]
            task.updated_date = self._today()
        return task

    def set_subtasks(self, project: str, task_id: int, subtasks: Iterable[SubTask]) -> Task:
        """Replace the whole checklist; blank titles are dropped."""
        cleaned = [SubTask(s.title.strip(), s.done) for s in subtasks if s.title.strip()]
        with self._modify(project) as task_file:
            task = self._require(task_file, task_id)
            task.subtasks = cleaned
            task.updated_date = self._today()
        return task
