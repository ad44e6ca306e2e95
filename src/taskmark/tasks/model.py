"""Task and TaskFile data models used by the codec, lifecycle engine and store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class TaskStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def glyph(self) -> str:
        return _STATUS_GLYPHS[self]

    @classmethod
    def from_label(cls, label: str) -> TaskStatus | None:
        return _LABEL_TO_STATUS.get(label.strip().lower())

    @classmethod
    def from_glyph(cls, glyph: str) -> TaskStatus | None:
        return _GLYPH_TO_STATUS.get(glyph.lower())


_STATUS_LABELS = {
    TaskStatus.OPEN: "Open",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}
_STATUS_GLYPHS = {
    TaskStatus.OPEN: " ",
    TaskStatus.IN_PROGRESS: "~",
    TaskStatus.DONE: "x",
}
_LABEL_TO_STATUS = {label.lower(): status for status, label in _STATUS_LABELS.items()}
_GLYPH_TO_STATUS = {glyph: status for status, glyph in _STATUS_GLYPHS.items()}


class TaskAction(str, Enum):
    """Lifecycle movements worth a durable event."""

    CREATED = "created"
    STARTED = "started"
    COMPLETED = "completed"
    REOPENED = "reopened"


PRIORITIES = (1, 2, 3)
DEFAULT_PRIORITY = 2


@dataclass
class SubTask:
    title: str
    done: bool = False


@dataclass
class Task:
    id: int
    description: str
    status: TaskStatus = TaskStatus.OPEN
    priority: int = DEFAULT_PRIORITY
    tags: list[str] = field(default_factory=list)
    created_date: date = field(default_factory=date.today)
    updated_date: date | None = None
    completed_date: date | None = None
    subtasks: list[SubTask] = field(default_factory=list)

    @property
    def title(self) -> str:
        """First line of the description."""
        return self.description.split("\n", 1)[0].strip()

    @property
    def body_lines(self) -> list[str]:
        return self.description.split("\n")[1:]

    def done_subtask_count(self) -> int:
        return sum(1 for s in self.subtasks if s.done)


@dataclass
class TaskFile:
    """One project's tasks plus the inline id counter."""

    project: str = ""
    tasks: list[Task] = field(default_factory=list)
    next_id: int = 1

    def get_task(self, task_id: int) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def max_id(self) -> int:
        return max((t.id for t in self.tasks), default=0)

    def allocate_id(self) -> int:
        """Hand out the next id and advance the counter past every known id."""
        task_id = max(self.next_id, self.max_id() + 1)
        self.next_id = task_id + 1
        return task_id

    def by_status(self, status: TaskStatus) -> list[Task]:
        return sorted((t for t in self.tasks if t.status == status), key=lambda t: t.id)
