"""Append-only work log: one markdown file per project, one block per day.

Layout::

    # <project> – Work Log

    ## 2026-10-19

    ### Assigned
    - Started Task #3 – Write docs #task #started
      <!-- TASK_EVENT: id=3 action=started previousStatus=OPEN status=IN_PROGRESS date=2026-10-19 tags= -->

    ### Done
    -
    ...

Ordering contract: within a section, entries are inserted directly under
the header, so the newest entry is always first. Analytics never depends on
this order; human readers do.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Callable

from taskmark import log
from taskmark.errors import ValidationError, WorkLogError
from taskmark.io_utils import file_lock, read_lines, read_text, write_lines
from taskmark.tasks.model import Task, TaskAction, TaskStatus
from taskmark.workspace import Workspace

PLACEHOLDER = "-"
BLOCK_SEPARATOR = "---"

_EVENT_BLOCK = re.compile(r"TASK_EVENT:(.*?)-->", re.DOTALL)
_EVENT_FIELD = re.compile(r"(\w+)=(\S*)")


class LogSection(str, Enum):
    ASSIGNED = "assigned"
    DONE = "done"
    CHANGES = "changes"
    COMMANDS = "commands"
    NOTES = "notes"

    @property
    def label(self) -> str:
        return _SECTION_LABELS[self]

    @property
    def header(self) -> str:
        return f"### {self.label}"

    @classmethod
    def parse(cls, token: LogSection | str | None) -> LogSection:
        if isinstance(token, LogSection):
            return token
        if not token or not token.strip():
            return cls.DONE
        key = token.strip().lower()
        for section in cls:
            if key in (section.value, section.label.lower()):
                return section
        raise ValidationError(
            f"Invalid section: {token!r} (use {', '.join(s.value for s in cls)})."
        )


_SECTION_LABELS = {
    LogSection.ASSIGNED: "Assigned",
    LogSection.DONE: "Done",
    LogSection.CHANGES: "Changes Suggested",
    LogSection.COMMANDS: "Commands Used",
    LogSection.NOTES: "Notes",
}

_EVENT_SECTIONS = {
    TaskAction.CREATED: LogSection.ASSIGNED,
    TaskAction.STARTED: LogSection.ASSIGNED,
    TaskAction.COMPLETED: LogSection.DONE,
    TaskAction.REOPENED: LogSection.DONE,
}

_EVENT_VERBS = {
    TaskAction.CREATED: "Created",
    TaskAction.STARTED: "Started",
    TaskAction.COMPLETED: "Completed",
    TaskAction.REOPENED: "Reopened",
}


@dataclass(frozen=True)
class TaskEvent:
    """An immutable fact about a task status change."""

    task_id: int
    action: TaskAction
    previous_status: TaskStatus | None
    status: TaskStatus
    date: date
    tags: tuple[str, ...] = field(default_factory=tuple)


# ── event annotations ────────────────────────────────────────────────


def format_event(event: TaskEvent) -> str:
    previous = event.previous_status.value if event.previous_status else "NONE"
    return (
        f"<!-- TASK_EVENT: id={event.task_id} action={event.action.value} "
        f"previousStatus={previous} status={event.status.value} "
        f"date={event.date.isoformat()} tags={','.join(event.tags)} -->"
    )


def _parse_event(block: str) -> TaskEvent | None:
    fields = {k: v for k, v in _EVENT_FIELD.findall(block)}
    try:
        previous = fields.get("previousStatus", "NONE")
        return TaskEvent(
            task_id=int(fields["id"]),
            action=TaskAction(fields["action"]),
            previous_status=None if previous in ("", "NONE") else TaskStatus(previous),
            status=TaskStatus(fields.get("status", "")),
            date=date.fromisoformat(fields["date"]),
            tags=tuple(t for t in fields.get("tags", "").split(",") if t.strip()),
        )
    except (KeyError, ValueError):
        return None


def parse_events(text: str) -> list[TaskEvent]:
    """Extract every ``TASK_EVENT`` annotation; malformed blocks are skipped.

    Accepts both the single-line form and the older multi-line form where
    each ``key=value`` sits on its own line.
    """
    events: list[TaskEvent] = []
    for m in _EVENT_BLOCK.finditer(text):
        event = _parse_event(m.group(1))
        if event is None:
            log.debug(f"Skipping malformed TASK_EVENT: {' '.join(m.group(1).split())}")
            continue
        events.append(event)
    return events


# ── block / section editing on a list of lines ───────────────────────


def normalize_tags(tags: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(t.strip().lstrip("#").lower() for t in tags if t.strip().lstrip("#")))


def format_entry(text: str, tags: Iterable[str] = ()) -> list[str]:
    """First line as a bullet with trailing ``#tag`` tokens, the rest indented."""
    parts = text.strip("\n").split("\n")
    tag_str = "".join(f" #{t}" for t in normalize_tags(tags))
    return [f"- {parts[0].rstrip()}{tag_str}", *(f"  {p.rstrip()}" for p in parts[1:])]


def find_block(lines: Sequence[str], day: date) -> int:
    header = f"## {day.isoformat()}"
    for i, line in enumerate(lines):
        if line.strip() == header:
            return i
    return -1


def _block_end(lines: Sequence[str], start: int) -> int:
    for i in range(start + 1, len(lines)):
        if lines[i].startswith("## "):
            return i
    return len(lines)


def _find_section(lines: Sequence[str], start: int, section: LogSection) -> int:
    for i in range(start + 1, _block_end(lines, start)):
        if lines[i].strip() == section.header:
            return i
    return -1


def _content_end(lines: Sequence[str], start: int) -> int:
    """Index just after the last content line of a block (before blanks and ``---``)."""
    end = _block_end(lines, start)
    while end > start + 1 and lines[end - 1].strip() in ("", BLOCK_SEPARATOR):
        end -= 1
    return end


def _block_template(day: date) -> list[str]:
    lines = ["", f"## {day.isoformat()}", ""]
    for section in LogSection:
        lines.extend([section.header, PLACEHOLDER, ""])
    lines.append(BLOCK_SEPARATOR)
    return lines


def ensure_block(lines: list[str], day: date) -> int:
    """Make sure *day* has a block with all five sections. Returns its index.

    A missing block is appended whole. An existing block that lacks some
    sections gets only those, each at its canonical position, without
    touching existing entries.
    """
    start = find_block(lines, day)
    if start == -1:
        lines.extend(_block_template(day))
        return find_block(lines, day)

    order = list(LogSection)
    for idx, section in enumerate(order):
        if _find_section(lines, start, section) != -1:
            continue
        later = (_find_section(lines, start, s) for s in order[idx + 1:])
        pos = next((p for p in later if p != -1), -1)
        if pos != -1:
            lines[pos:pos] = [section.header, PLACEHOLDER, ""]
        else:
            pos = _content_end(lines, start)
            lines[pos:pos] = ["", section.header, PLACEHOLDER]
    return start


def insert_entry(lines: list[str], start: int, section: LogSection, entry: list[str]) -> None:
    """Insert *entry* directly under *section*'s header, newest first."""
    header = _find_section(lines, start, section)
    if header == -1:
        raise WorkLogError(f"Section not found: {section.header}")
    end = _block_end(lines, start)
    pos = header + 1
    if pos < end and not lines[pos].strip():
        pos += 1
    if pos < end and lines[pos].strip() == PLACEHOLDER:
        lines[pos:pos + 1] = entry
    else:
        lines[pos:pos] = entry


# ── file-backed log ──────────────────────────────────────────────────


class WorkLog:
    """Read/append access to one project's ``work-log.md``."""

    def __init__(self, path: Path, project: str, *, today: Callable[[], date] = date.today) -> None:
        self.path = path
        self.project = project
        self._today = today

    def _load(self) -> list[str]:
        if not self.path.is_file():
            return [f"# {self.project} – Work Log"]
        return read_lines(self.path)

    def _commit(self, lines: list[str]) -> None:
        write_lines(self.path, lines)
        log.debug(f"Wrote {self.path}")

    def ensure_today_block(self) -> None:
        """Create today's block (or its missing sections). Idempotent."""
        try:
            with file_lock(self.path):
                lines = self._load()
                before = list(lines)
                ensure_block(lines, self._today())
                if lines != before or not self.path.is_file():
                    self._commit(lines)
        except (OSError, UnicodeDecodeError) as exc:
            raise WorkLogError(f"Failed to update work log: {exc}") from exc

    def append_entry(
        self,
        section: LogSection | str | None,
        text: str | None,
        tags: Iterable[str] = (),
    ) -> None:
        """Add an entry to today's *section*. Blank text only ensures the block."""
        if text is None or not text.strip():
            self.ensure_today_block()
            return
        target = LogSection.parse(section)
        entry = format_entry(text, tags)
        try:
            with file_lock(self.path):
                lines = self._load()
                start = ensure_block(lines, self._today())
                insert_entry(lines, start, target, entry)
                self._commit(lines)
        except (OSError, UnicodeDecodeError) as exc:
            raise WorkLogError(f"Failed to update work log: {exc}") from exc

    def append_task_event(
        self,
        task: Task,
        action: TaskAction,
        previous: TaskStatus | None,
    ) -> TaskEvent:
        event = TaskEvent(
            task_id=task.id,
            action=action,
            previous_status=previous,
            status=task.status,
            date=self._today(),
            tags=tuple(task.tags),
        )
        message = f"{_EVENT_VERBS[action]} Task #{task.id} – {task.title}"
        self.append_entry(
            _EVENT_SECTIONS[action],
            f"{message}\n{format_event(event)}",
            tags=["task", action.value],
        )
        return event

    def read_events(self) -> list[TaskEvent]:
        if not self.path.is_file():
            return []
        return parse_events(read_text(self.path))

    def collect_entries(
        self,
        start: date,
        end: date,
        sections: Iterable[LogSection | str] | None = None,
    ) -> dict[str, list[str]]:
        """Bulleted entries per section label for date blocks in ``[start, end]``."""
        wanted = [LogSection.parse(s) for s in sections] if sections else list(LogSection)
        labels = {s.label: s for s in wanted}
        collected: dict[str, list[str]] = {s.label: [] for s in wanted}
        if not self.path.is_file():
            return collected

        day: date | None = None
        current: str | None = None
        for line in read_lines(self.path):
            stripped = line.strip()
            if stripped.startswith("## "):
                try:
                    day = date.fromisoformat(stripped[3:].strip())
                except ValueError:
                    day = None
                current = None
                continue
            if day is None or day < start or day > end:
                continue
            if stripped.startswith("### "):
                current = stripped[4:].strip()
                continue
            if current in labels and line.startswith("- "):
                text = line[2:].strip()
                if text and text != PLACEHOLDER:
                    collected[current].append(text)
        return collected


def search_logs(workspace: Workspace, query: str, by_tag: bool = False) -> list[tuple[str, str]]:
    """Linear scan of every project's work log. Unreadable logs are skipped."""
    needle = query.strip().lower()
    if by_tag:
        needle = f"#{needle.lstrip('#')}"
    if not needle or needle == "#":
        return []

    matches: list[tuple[str, str]] = []
    for project in workspace.list_projects():
        path = workspace.work_log_file(project)
        if not path.is_file():
            continue
        try:
            lines = read_lines(path)
        except (OSError, UnicodeDecodeError) as exc:
            log.warn(f"Skipping unreadable work log {path}: {exc}")
            continue
        for line in lines:
            if needle in line.lower():
                matches.append((project, line.strip()))
    return matches
