"""Workflow templates and the runs executed from them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class StepStatus(str, Enum):
    TODO = "TODO"
    DONE = "DONE"
    SKIPPED = "SKIPPED"

    @property
    def symbol(self) -> str:
        return _STEP_SYMBOLS[self]


_STEP_SYMBOLS = {
    StepStatus.TODO: "○",
    StepStatus.DONE: "✓",
    StepStatus.SKIPPED: "–",
}


class RunStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TemplateStep:
    title: str
    description: str | None = None
    expected_result: str | None = None
    code_blocks: list[str] = field(default_factory=list)
    substep_titles: list[str] = field(default_factory=list)


@dataclass
class WorkflowTemplate:
    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    steps: list[TemplateStep] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created: date = field(default_factory=date.today)


@dataclass
class SubStep:
    title: str
    done: bool = False


@dataclass
class RunStep:
    title: str
    status: StepStatus = StepStatus.TODO
    description: str | None = None
    notes: str | None = None
    expected_result: str | None = None
    actual_result: str | None = None
    code_blocks: list[str] = field(default_factory=list)
    actual_command: str | None = None
    substeps: list[SubStep] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @classmethod
    def from_template(cls, step: TemplateStep) -> RunStep:
        """A fresh TODO step owning its own copy of the template step's data."""
        return cls(
            title=step.title,
            description=step.description,
            expected_result=step.expected_result,
            code_blocks=list(step.code_blocks),
            substeps=[SubStep(title) for title in step.substep_titles],
        )

    def done_substep_count(self) -> int:
        return sum(1 for s in self.substeps if s.done)


@dataclass
class WorkflowRun:
    name: str
    template_id: str | None = None
    project: str | None = None
    status: RunStatus = RunStatus.IN_PROGRESS
    created: date = field(default_factory=date.today)
    completed: date | None = None
    steps: list[RunStep] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def done_step_count(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.DONE)

    def active_step_count(self) -> int:
        """Steps that still count toward completion (everything not skipped)."""
        return sum(1 for s in self.steps if s.status != StepStatus.SKIPPED)

    def is_finished(self) -> bool:
        active = self.active_step_count()
        return active > 0 and self.done_step_count() == active

    def refresh_status(self, today: date) -> bool:
        """Keep COMPLETED in step with the steps. Returns True if status changed.

        An ABANDONED run is left alone: only an explicit status change
        brings it back.
        """
        if self.status == RunStatus.ABANDONED:
            return False
        finished = self.is_finished()
        if finished and self.status != RunStatus.COMPLETED:
            self.status = RunStatus.COMPLETED
            self.completed = today
            return True
        if not finished and self.status == RunStatus.COMPLETED:
            self.status = RunStatus.IN_PROGRESS
            self.completed = None
            return True
        return False
