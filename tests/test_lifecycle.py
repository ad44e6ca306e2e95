"""Tests for taskmark.tasks.lifecycle: the task status state machine."""

from __future__ import annotations

from datetime import date

import pytest

from taskmark.errors import ValidationError
from taskmark.tasks.lifecycle import apply_transition, parse_status
from taskmark.tasks.model import TaskAction, TaskStatus

TODAY = date(2026, 3, 16)
EARLIER = date(2026, 3, 1)


# ═══════════════════════════════════════════════════════════════════
#  Transition table
# ═══════════════════════════════════════════════════════════════════


# (previous, target, logged action)
TABLE = [
    (TaskStatus.DONE, TaskStatus.IN_PROGRESS, TaskAction.REOPENED),
    (TaskStatus.OPEN, TaskStatus.IN_PROGRESS, TaskAction.STARTED),
    (TaskStatus.OPEN, TaskStatus.DONE, TaskAction.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskAction.COMPLETED),
    (TaskStatus.DONE, TaskStatus.OPEN, TaskAction.REOPENED),
    (TaskStatus.IN_PROGRESS, TaskStatus.OPEN, None),
]


class TestTransitionTable:
    """Every (previous, target) pair stamps and logs per the table."""

    @pytest.mark.parametrize("previous,target,action", TABLE)
    def test_transition(self, make_task, previous, target, action):
        task = make_task(1, status=previous, created=EARLIER)
        result = apply_transition(task, target, TODAY)

        assert result.previous == previous
        assert result.status == target
        assert result.action == action
        assert result.changed
        assert task.status == target
        assert task.updated_date == TODAY
        if target == TaskStatus.DONE:
            assert task.completed_date == TODAY
        else:
            assert task.completed_date is None

    @pytest.mark.parametrize("status", list(TaskStatus))
    def test_same_status_is_noop(self, make_task, status):
        """No stamps, no event."""
        task = make_task(1, status=status, created=EARLIER, updated=EARLIER)
        before = task.completed_date
        result = apply_transition(task, status, TODAY)

        assert result.action is None
        assert not result.changed
        assert task.updated_date == EARLIER
        assert task.completed_date == before

    def test_reopen_clears_completed(self, make_task):
        task = make_task(1, status=TaskStatus.DONE, completed=EARLIER)
        apply_transition(task, TaskStatus.OPEN, TODAY)
        assert task.completed_date is None

    def test_accepts_string_target(self, make_task):
        task = make_task(1)
        result = apply_transition(task, "in-progress", TODAY)
        assert result.action == TaskAction.STARTED


# ═══════════════════════════════════════════════════════════════════
#  Status tokens
# ═══════════════════════════════════════════════════════════════════


class TestParseStatus:
    """User-typed status tokens."""

    @pytest.mark.parametrize("token,expected", [
        ("open", TaskStatus.OPEN),
        ("TODO", TaskStatus.OPEN),
        ("in_progress", TaskStatus.IN_PROGRESS),
        ("In Progress", TaskStatus.IN_PROGRESS),
        ("in-progress", TaskStatus.IN_PROGRESS),
        ("done", TaskStatus.DONE),
        (" completed ", TaskStatus.DONE),
    ])
    def test_aliases(self, token, expected):
        assert parse_status(token) == expected

    def test_enum_passthrough(self):
        assert parse_status(TaskStatus.DONE) is TaskStatus.DONE

    @pytest.mark.parametrize("token", ["", "finished", "blocked"])
    def test_invalid(self, token):
        with pytest.raises(ValidationError, match="Invalid status"):
            parse_status(token)
