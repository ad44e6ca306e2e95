"""Tests for taskmark.worklog: date blocks, sections and TASK_EVENT annotations."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from taskmark.errors import ValidationError, WorkLogError
from taskmark.io_utils import read_lines, read_text, write_text
from taskmark.tasks.model import TaskAction, TaskStatus
from taskmark.worklog import (
    LogSection,
    TaskEvent,
    WorkLog,
    ensure_block,
    format_entry,
    format_event,
    normalize_tags,
    parse_events,
    search_logs,
)

HEADERS = [
    "### Assigned",
    "### Done",
    "### Changes Suggested",
    "### Commands Used",
    "### Notes",
]


@pytest.fixture
def work_log(workspace, clock) -> WorkLog:
    return WorkLog(workspace.work_log_file("demo"), "demo", today=clock)


def _section(lines: list[str], header: str) -> list[str]:
    """Lines under *header* up to the next blank line."""
    start = lines.index(header) + 1
    out: list[str] = []
    for line in lines[start:]:
        if not line.strip():
            break
        out.append(line)
    return out


# ═══════════════════════════════════════════════════════════════════
#  Date blocks
# ═══════════════════════════════════════════════════════════════════


class TestEnsureBlock:
    """ensure_today_block creates missing structure and nothing else."""

    def test_creates_file_with_block(self, work_log):
        work_log.ensure_today_block()
        lines = read_lines(work_log.path)
        assert lines[0] == "# demo – Work Log"
        assert "## 2026-03-16" in lines
        assert [line for line in lines if line.startswith("### ")] == HEADERS
        for header in HEADERS:
            assert _section(lines, header) == ["-"]

    def test_idempotent(self, work_log):
        work_log.ensure_today_block()
        first = read_text(work_log.path)
        work_log.ensure_today_block()
        assert read_text(work_log.path) == first

    def test_new_day_appends_block(self, work_log, clock):
        work_log.ensure_today_block()
        clock.today += timedelta(days=1)
        work_log.ensure_today_block()
        lines = read_lines(work_log.path)
        assert lines.index("## 2026-03-16") < lines.index("## 2026-03-17")
        assert lines.count("### Done") == 2

    def test_repairs_missing_sections(self):
        """An older block gains only the sections it lacks, in canonical order."""
        lines = [
            "# demo – Work Log",
            "",
            "## 2026-03-16",
            "",
            "### Assigned",
            "- existing",
            "",
            "### Notes",
            "- a note",
        ]
        ensure_block(lines, date(2026, 3, 16))
        assert [line for line in lines if line.startswith("### ")] == HEADERS
        assert _section(lines, "### Assigned") == ["- existing"]
        assert _section(lines, "### Notes") == ["- a note"]
        assert _section(lines, "### Done") == ["-"]

    def test_repairs_missing_last_section_before_next_block(self):
        lines = [
            "## 2026-03-16",
            "",
            *[part for h in HEADERS[:-1] for part in (h, "-", "")],
            "---",
            "",
            "## 2026-03-17",
        ]
        ensure_block(lines, date(2026, 3, 16))
        notes = lines.index("### Notes")
        assert notes < lines.index("## 2026-03-17")
        assert lines[notes + 1] == "-"


# ═══════════════════════════════════════════════════════════════════
#  Entries
# ═══════════════════════════════════════════════════════════════════


class TestAppendEntry:
    """Entries land under their section header, newest first."""

    def test_replaces_placeholder(self, work_log):
        work_log.append_entry("done", "Fixed login bug", ["bug"])
        lines = read_lines(work_log.path)
        assert _section(lines, "### Done") == ["- Fixed login bug #bug"]

    def test_newest_first(self, work_log):
        work_log.append_entry(LogSection.NOTES, "first")
        work_log.append_entry(LogSection.NOTES, "second")
        lines = read_lines(work_log.path)
        assert _section(lines, "### Notes") == ["- second", "- first"]

    def test_multiline_entry(self, work_log):
        work_log.append_entry("commands", "pytest -x\nthen coverage")
        lines = read_lines(work_log.path)
        assert _section(lines, "### Commands Used") == ["- pytest -x", "  then coverage"]

    def test_default_section_is_done(self, work_log):
        work_log.append_entry(None, "shipped")
        assert _section(read_lines(work_log.path), "### Done") == ["- shipped"]

    def test_blank_text_only_ensures_block(self, work_log):
        work_log.append_entry("notes", "   ")
        lines = read_lines(work_log.path)
        assert _section(lines, "### Notes") == ["-"]

    def test_invalid_section(self, work_log):
        with pytest.raises(ValidationError, match="Invalid section"):
            work_log.append_entry("meetings", "text")

    def test_write_failure_wrapped(self, work_log, monkeypatch):
        def fail(path, lines):
            raise OSError("no space left")

        monkeypatch.setattr("taskmark.worklog.write_lines", fail)
        with pytest.raises(WorkLogError, match="no space left"):
            work_log.append_entry("done", "text")

    def test_undecodable_log_wrapped(self, work_log):
        work_log.path.parent.mkdir(parents=True)
        work_log.path.write_bytes(b"# demo \xff\xfe broken\n")
        with pytest.raises(WorkLogError):
            work_log.append_entry("done", "text")
        with pytest.raises(WorkLogError):
            work_log.ensure_today_block()

    def test_existing_content_preserved(self, work_log):
        work_log.path.parent.mkdir(parents=True)
        write_text(work_log.path, "# demo – Work Log\n\nSome intro the user wrote.\n")
        work_log.append_entry("done", "entry")
        text = read_text(work_log.path)
        assert "Some intro the user wrote." in text
        assert "- entry" in text


class TestFormatting:
    """Pure helpers for entries and tags."""

    def test_format_entry(self):
        assert format_entry("one\ntwo", ["A", "#b"]) == ["- one #a #b", "  two"]

    def test_normalize_tags(self):
        assert normalize_tags(["#Bug", "bug", " ", "#", "Ops "]) == ["bug", "ops"]

    @pytest.mark.parametrize("token,expected", [
        (None, LogSection.DONE),
        ("", LogSection.DONE),
        ("assigned", LogSection.ASSIGNED),
        ("Commands Used", LogSection.COMMANDS),
        ("CHANGES", LogSection.CHANGES),
    ])
    def test_section_tokens(self, token, expected):
        assert LogSection.parse(token) == expected


# ═══════════════════════════════════════════════════════════════════
#  Task events
# ═══════════════════════════════════════════════════════════════════


class TestTaskEvents:
    """TASK_EVENT annotations written and read back."""

    def test_append_task_event(self, work_log, make_task):
        task = make_task(3, "Write docs", status=TaskStatus.IN_PROGRESS, tags=["docs"])
        event = work_log.append_task_event(task, TaskAction.STARTED, TaskStatus.OPEN)

        lines = read_lines(work_log.path)
        assert _section(lines, "### Assigned") == [
            "- Started Task #3 – Write docs #task #started",
            "  <!-- TASK_EVENT: id=3 action=started previousStatus=OPEN "
            "status=IN_PROGRESS date=2026-03-16 tags=docs -->",
        ]
        assert work_log.read_events() == [event]

    def test_completed_goes_to_done(self, work_log, make_task):
        task = make_task(1, "Ship", status=TaskStatus.DONE)
        work_log.append_task_event(task, TaskAction.COMPLETED, TaskStatus.IN_PROGRESS)
        assert _section(read_lines(work_log.path), "### Done")[0].startswith("- Completed Task #1")

    def test_format_event_without_previous(self):
        event = TaskEvent(1, TaskAction.CREATED, None, TaskStatus.OPEN, date(2026, 3, 1))
        assert format_event(event) == (
            "<!-- TASK_EVENT: id=1 action=created previousStatus=NONE "
            "status=OPEN date=2026-03-01 tags= -->"
        )
        assert parse_events(format_event(event)) == [event]

    def test_parse_multiline_event(self):
        text = """
- Started Task #3
<!-- TASK_EVENT:
id=3
action=started
previousStatus=OPEN
status=IN_PROGRESS
date=2026-03-10
tags=api,backend
-->
"""
        assert parse_events(text) == [
            TaskEvent(3, TaskAction.STARTED, TaskStatus.OPEN, TaskStatus.IN_PROGRESS,
                      date(2026, 3, 10), ("api", "backend")),
        ]

    def test_malformed_events_skipped(self):
        text = "\n".join([
            "<!-- TASK_EVENT: id=x action=created previousStatus=NONE status=OPEN date=2026-03-01 tags= -->",
            "<!-- TASK_EVENT: id=2 action=exploded previousStatus=NONE status=OPEN date=2026-03-01 tags= -->",
            "<!-- TASK_EVENT: id=3 action=created previousStatus=NONE status=OPEN date=2026-03-01 tags= -->",
        ])
        assert [e.task_id for e in parse_events(text)] == [3]

    def test_read_events_missing_file(self, work_log):
        assert work_log.read_events() == []


# ═══════════════════════════════════════════════════════════════════
#  Summaries and search
# ═══════════════════════════════════════════════════════════════════


class TestCollectAndSearch:
    """Weekly summary collection and cross-project search."""

    def test_collect_entries_in_range(self, work_log, clock, make_task):
        clock.today = date(2026, 3, 2)
        work_log.append_entry("done", "too old")
        clock.today = date(2026, 3, 10)
        work_log.append_entry("done", "in range")
        work_log.append_task_event(make_task(1, "Start me"), TaskAction.STARTED, TaskStatus.OPEN)
        clock.today = date(2026, 3, 16)
        work_log.append_entry("notes", "also in range")

        collected = work_log.collect_entries(date(2026, 3, 9), date(2026, 3, 16))
        assert collected["Done"] == ["in range"]
        assert collected["Notes"] == ["also in range"]
        assert collected["Assigned"] == ["Started Task #1 – Start me #task #started"]
        assert collected["Commands Used"] == []

    def test_collect_selected_sections(self, work_log):
        work_log.append_entry("done", "x")
        collected = work_log.collect_entries(date(2026, 3, 1), date(2026, 3, 31), ["done"])
        assert collected == {"Done": ["x"]}

    def test_search_logs(self, workspace, clock):
        WorkLog(workspace.work_log_file("alpha"), "alpha", today=clock).append_entry(
            "done", "Fixed cache bug", ["bug"]
        )
        WorkLog(workspace.work_log_file("beta"), "beta", today=clock).append_entry(
            "notes", "Cache warmed up"
        )
        hits = search_logs(workspace, "cache")
        assert sorted(project for project, _ in hits) == ["alpha", "beta"]

        by_tag = search_logs(workspace, "bug", by_tag=True)
        assert by_tag == [("alpha", "- Fixed cache bug #bug")]

    def test_search_skips_hidden_and_undecodable(self, workspace, clock):
        """Tool folders like .obsidian and broken logs never abort the search."""
        (workspace.projects_dir / ".obsidian").mkdir(parents=True)
        WorkLog(workspace.work_log_file("alpha"), "alpha", today=clock).append_entry("done", "cache hit")
        broken = workspace.work_log_file("beta")
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b"cache \xff\n")

        assert search_logs(workspace, "cache") == [("alpha", "- cache hit")]

    def test_search_blank_query(self, workspace):
        assert search_logs(workspace, "  ") == []
