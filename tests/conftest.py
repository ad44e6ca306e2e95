"""Shared fixtures for taskmark tests.

File handling in tests:
- Every workspace lives under tmp_path so tests are isolated and cleaned up.
- Stores get a fixed ``today`` clock so date assertions are deterministic.
- Use taskmark.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from taskmark import log
from taskmark.config import Config
from taskmark.tasks.model import SubTask, Task, TaskFile, TaskStatus
from taskmark.tasks.store import TaskStore
from taskmark.workflows.store import WorkflowStore
from taskmark.workspace import Workspace

TODAY = date(2026, 3, 16)


class Clock:
    """Mutable clock so a test can move 'today' between operations."""

    def __init__(self, today: date = TODAY) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture(autouse=True)
def _quiet_debug():
    log.set_verbose(False)
    yield
    log.set_verbose(False)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """An empty workspace rooted in tmp_path."""
    return Workspace(Config(workspace=str(tmp_path / "Work")))


@pytest.fixture
def task_store(workspace: Workspace, clock: Clock) -> TaskStore:
    return TaskStore(workspace, today=clock)


@pytest.fixture
def workflow_store(workspace: Workspace, clock: Clock) -> WorkflowStore:
    return WorkflowStore(workspace, today=clock)


def make_task(
    id: int,
    title: str = "",
    status: TaskStatus = TaskStatus.OPEN,
    priority: int = 2,
    tags: list[str] | None = None,
    created: date = TODAY,
    updated: date | None = None,
    completed: date | None = None,
    subtasks: list[SubTask] | None = None,
    body: list[str] | None = None,
) -> Task:
    description = "\n".join([title or f"Task {id}", *(body or [])])
    if status == TaskStatus.DONE and completed is None:
        completed = created
    return Task(
        id=id,
        description=description,
        status=status,
        priority=priority,
        tags=tags or [],
        created_date=created,
        updated_date=updated,
        completed_date=completed,
        subtasks=subtasks or [],
    )


def make_task_file(tasks: list[Task], project: str = "demo", next_id: int | None = None) -> TaskFile:
    if next_id is None:
        next_id = max((t.id for t in tasks), default=0) + 1
    return TaskFile(project=project, tasks=tasks, next_id=next_id)


@pytest.fixture(name="make_task")
def make_task_fixture():
    """Factory fixture: ``make_task(3, "Write docs", status=TaskStatus.DONE)``."""
    return make_task


@pytest.fixture(name="make_task_file")
def make_task_file_fixture():
    return make_task_file
