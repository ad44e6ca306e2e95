"""Record codec for a project's ``tasks.md``.

Grammar::

    # Tasks – <project>
    <!-- NEXT_ID: <int> -->
    ## Open
    <id>. [ ] (P<priority>) <title>  <!-- created=<date> [updated=<date>] [completed=<date>] [tags=a,b] -->
        <continuation line>
        - [ ] <subtask title>
    ## In Progress
    <id>. [~] (P<priority>) <title>  <!-- ... -->
    ## Done
    <id>. [x] (P<priority>) <title>  <!-- ... -->

Parsing is best-effort: a malformed line never makes the whole file
unreadable. Each skipped or repaired line is reported as a
:class:`ParseIssue` next to the parsed result, unless ``strict=True`` in
which case :class:`~taskmark.errors.RecordParseError` is raised instead.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from taskmark.errors import RecordParseError
from taskmark.tasks.model import (
    DEFAULT_PRIORITY,
    PRIORITIES,
    SubTask,
    Task,
    TaskFile,
    TaskStatus,
)

INDENT = "    "

_FILE_TITLE = re.compile(r"^#\s+Tasks\s*[–-]\s*(.*?)\s*$")
_NEXT_ID = re.compile(r"<!--\s*NEXT_ID:\s*(\d+)\s*-->")
_SECTION = re.compile(r"^##\s+(.+?)\s*$")
_TASK_HEADER = re.compile(r"^(\d+)\.\s+\[(.)\]\s+(?:\(P(\d+)\)\s+)?(.*)$")
_TRAILING_COMMENT = re.compile(r"\s*<!--(.*?)-->\s*$")
_SUBTASK = re.compile(r"^ {4}- \[([ xX])\] (.+)$")
_TAGS = re.compile(r"\btags=([^\s>]*)")
_DATE_KEYS = ("created", "updated", "completed")
_DATE_PATTERNS = {key: re.compile(rf"\b{key}=(\S+)") for key in _DATE_KEYS}


@dataclass(frozen=True)
class ParseIssue:
    """A line that was skipped or repaired while parsing."""

    line_no: int
    line: str
    reason: str


@dataclass
class TaskParseResult:
    task_file: TaskFile
    issues: list[ParseIssue] = field(default_factory=list)


@dataclass
class _Meta:
    dates: dict[str, date] = field(default_factory=dict)
    tags: list[str] | None = None


@dataclass
class _Pending:
    """A task whose header has been read and whose body is still accumulating."""

    line_no: int
    line: str
    id: int
    status: TaskStatus
    priority: int
    title: str
    meta: _Meta
    body: list[str] = field(default_factory=list)
    subtasks: list[SubTask] = field(default_factory=list)


# ── parsing ──────────────────────────────────────────────────────────


def _read_meta(comment: str, meta: _Meta, line_no: int, line: str, issues: list[ParseIssue]) -> None:
    """Extract ``key=value`` tokens; order is irrelevant and any may be absent."""
    for key, pattern in _DATE_PATTERNS.items():
        m = pattern.search(comment)
        if not m:
            continue
        try:
            meta.dates[key] = date.fromisoformat(m.group(1))
        except ValueError:
            issues.append(ParseIssue(line_no, line, f"invalid {key} date {m.group(1)!r} ignored"))
    m = _TAGS.search(comment)
    if m:
        meta.tags = split_tags(m.group(1))


def split_tags(raw: str) -> list[str]:
    return list(dict.fromkeys(t.strip() for t in raw.split(",") if t.strip()))


def _build(pending: _Pending, today: date, issues: list[ParseIssue]) -> Task:
    dates = pending.meta.dates
    completed = dates.get("completed")
    if pending.status == TaskStatus.DONE and completed is None:
        completed = today
        issues.append(ParseIssue(pending.line_no, pending.line, "done task without completed date, using today"))
    elif pending.status != TaskStatus.DONE and completed is not None:
        completed = None
        issues.append(ParseIssue(pending.line_no, pending.line, "completed date dropped from unfinished task"))

    return Task(
        id=pending.id,
        description="\n".join([pending.title, *pending.body]),
        status=pending.status,
        priority=pending.priority,
        tags=pending.meta.tags or [],
        created_date=dates.get("created", today),
        updated_date=dates.get("updated"),
        completed_date=completed,
        subtasks=pending.subtasks,
    )


def _start_task(
    m: re.Match[str],
    line_no: int,
    line: str,
    section: TaskStatus | None,
    issues: list[ParseIssue],
) -> _Pending | None:
    status = section or TaskStatus.from_glyph(m.group(2))
    if status is None:
        issues.append(ParseIssue(line_no, line, f"unknown status glyph [{m.group(2)}], task skipped"))
        return None

    priority = DEFAULT_PRIORITY
    if m.group(3) is not None:
        if int(m.group(3)) in PRIORITIES:
            priority = int(m.group(3))
        else:
            issues.append(ParseIssue(line_no, line, f"priority P{m.group(3)} out of range, using P{DEFAULT_PRIORITY}"))

    rest = m.group(4)
    meta = _Meta()
    comment = _TRAILING_COMMENT.search(rest)
    if comment:
        _read_meta(comment.group(1), meta, line_no, line, issues)
        rest = rest[: comment.start()]
    title = rest.strip()
    if not title:
        issues.append(ParseIssue(line_no, line, "task without title skipped"))
        return None

    return _Pending(
        line_no=line_no,
        line=line,
        id=int(m.group(1)),
        status=status,
        priority=priority,
        title=title,
        meta=meta,
    )


def parse_tasks(
    lines: Iterable[str],
    *,
    strict: bool = False,
    today: date | None = None,
) -> TaskParseResult:
    """Parse ``tasks.md`` lines into a :class:`TaskFile`.

    Status comes from the enclosing section header; the checkbox glyph is
    only consulted under an unknown header. ``nextId`` is repaired upward so
    it always exceeds every parsed id, and duplicate ids are re-numbered.
    """
    today = today or date.today()
    issues: list[ParseIssue] = []
    built: list[Task] = []

    project = ""
    header_next_id: int | None = None
    section: TaskStatus | None = None
    pending: _Pending | None = None

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            built.append(_build(pending, today, issues))
            pending = None

    for line_no, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue

        m = _NEXT_ID.search(line)
        if m:
            header_next_id = int(m.group(1))
            continue

        if line.startswith("# "):
            m = _FILE_TITLE.match(line)
            if m:
                project = m.group(1)
            continue

        m = _SECTION.match(line)
        if m:
            flush()
            section = TaskStatus.from_label(m.group(1))
            if section is None:
                issues.append(ParseIssue(line_no, line, f"unknown section '{m.group(1)}'"))
            continue

        if line.startswith(INDENT):
            if pending is None:
                issues.append(ParseIssue(line_no, line, "indented line outside a task skipped"))
                continue
            sub = _SUBTASK.match(line)
            if sub:
                pending.subtasks.append(SubTask(sub.group(2).strip(), sub.group(1).lower() == "x"))
                continue
            stripped = line.strip()
            if stripped.startswith("<!--") and stripped.endswith("-->") and "=" in stripped:
                # legacy layout: metadata on its own indented line
                _read_meta(stripped[4:-3], pending.meta, line_no, line, issues)
                continue
            pending.body.append(line[len(INDENT):].rstrip())
            continue

        m = _TASK_HEADER.match(line)
        if m:
            flush()
            pending = _start_task(m, line_no, line, section, issues)
            continue

        issues.append(ParseIssue(line_no, line, "unrecognized line skipped"))

    flush()

    tasks: list[Task] = []
    duplicates: list[Task] = []
    seen: set[int] = set()
    for task in built:
        if task.id in seen:
            duplicates.append(task)
        else:
            seen.add(task.id)
            tasks.append(task)

    task_file = TaskFile(project=project, tasks=tasks)
    floor = task_file.max_id() + 1
    if header_next_id is None:
        if tasks:
            issues.append(ParseIssue(0, "", f"missing NEXT_ID header, using {floor}"))
        task_file.next_id = floor
    elif header_next_id < floor:
        issues.append(ParseIssue(0, "", f"NEXT_ID {header_next_id} raised to {floor}"))
        task_file.next_id = floor
    else:
        task_file.next_id = header_next_id

    for task in duplicates:
        old_id = task.id
        task.id = task_file.allocate_id()
        task_file.tasks.append(task)
        issues.append(ParseIssue(0, "", f"duplicate task id {old_id} renumbered to {task.id}"))

    if strict and issues:
        raise RecordParseError(issues)
    return TaskParseResult(task_file=task_file, issues=issues)


# ── serialization ────────────────────────────────────────────────────


def format_meta(task: Task) -> str:
    """Inline metadata in fixed key order, independent of how it was read."""
    tokens = [f"created={task.created_date.isoformat()}"]
    if task.updated_date is not None:
        tokens.append(f"updated={task.updated_date.isoformat()}")
    if task.completed_date is not None:
        tokens.append(f"completed={task.completed_date.isoformat()}")
    if task.tags:
        tokens.append(f"tags={','.join(task.tags)}")
    return " ".join(tokens)


def format_task(task: Task) -> list[str]:
    lines = [
        f"{task.id}. [{task.status.glyph}] (P{task.priority}) {task.title}  <!-- {format_meta(task)} -->"
    ]
    lines.extend(f"{INDENT}{body}" for body in task.body_lines)
    lines.extend(f"{INDENT}- [{'x' if s.done else ' '}] {s.title}" for s in task.subtasks)
    return lines


def format_tasks(task_file: TaskFile) -> list[str]:
    """Serialize a :class:`TaskFile`, sorting each status group by id."""
    next_id = max(task_file.next_id, task_file.max_id() + 1)
    lines = [
        f"# Tasks – {task_file.project}".rstrip(),
        "",
        f"<!-- NEXT_ID: {next_id} -->",
        "",
    ]
    for status in TaskStatus:
        lines.append(f"## {status.label}")
        for task in task_file.by_status(status):
            lines.extend(format_task(task))
        lines.append("")
    return lines
