"""Failure taxonomy shared by every store operation.

Collaborators (CLI, GUI, agent adapters) catch :class:`TaskmarkError` and show
``str(exc)``; the message is always short and human-readable.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskmark.tasks.codec import ParseIssue


class TaskmarkError(Exception):
    """Base class for failures surfaced to callers."""


class NotFoundError(TaskmarkError):
    """A task, template, run, step or subtask could not be resolved."""


class AmbiguousIdError(NotFoundError):
    """An id prefix matched more than one entity."""

    def __init__(self, kind: str, query: str, matches: Sequence[str]) -> None:
        self.kind = kind
        self.query = query
        self.matches = list(matches)
        super().__init__(
            f"Ambiguous prefix '{query}' matches {len(self.matches)} {kind}s."
        )


class ValidationError(TaskmarkError):
    """Caller input was rejected (blank title, bad priority, unknown status...)."""


class RecordParseError(ValidationError):
    """Strict parsing found malformed lines in a record file."""

    def __init__(self, issues: Sequence["ParseIssue"]) -> None:
        self.issues = list(issues)
        first = self.issues[0] if self.issues else None
        detail = f" (line {first.line_no}: {first.reason})" if first else ""
        super().__init__(f"{len(self.issues)} malformed line(s){detail}")


class StoreIOError(TaskmarkError):
    """Reading or writing primary record data failed."""


class WorkLogError(TaskmarkError):
    """Appending to a work log failed. Never blocks the triggering mutation."""
