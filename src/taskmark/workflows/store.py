"""File-backed workflow templates and runs: one markdown file per entity.

Lookups scan the templates dir (or every runs dir) and resolve the user's id
with :func:`taskmark.ids.resolve_id`. Step and substep indices are zero-based.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import TypeVar

from taskmark import log
from taskmark.errors import NotFoundError, StoreIOError, ValidationError
from taskmark.ids import resolve_id
from taskmark.io_utils import file_lock, read_lines, write_lines
from taskmark.workflows.codec import (
    clean_text,
    format_run,
    format_template,
    one_line,
    parse_run,
    parse_template,
)
from taskmark.workflows.model import (
    RunStatus,
    RunStep,
    StepStatus,
    TemplateStep,
    WorkflowRun,
    WorkflowTemplate,
)
from taskmark.workspace import Workspace, slugify

T = TypeVar("T")


def _require_name(name: str | None, kind: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{kind} name cannot be blank.")
    return name


def _require_index(items: list[T], index: int, what: str = "Step") -> T:
    if index < 0 or index >= len(items):
        raise NotFoundError(f"{what} {index + 1} not found (have {len(items)}).")
    return items[index]


def _move(items: list[T], index: int, up: bool) -> bool:
    """Swap ``items[index]`` one slot up or down. At a boundary nothing moves."""
    _require_index(items, index)
    target = index - 1 if up else index + 1
    if target < 0 or target >= len(items):
        return False
    items[index], items[target] = items[target], items[index]
    return True


def _commands(commands: str | None) -> list[str]:
    return [commands.strip()] if commands and commands.strip() else []


def parse_step_status(token: StepStatus | str) -> StepStatus:
    if isinstance(token, StepStatus):
        return token
    key = (token or "").strip().upper()
    if key in StepStatus.__members__:
        return StepStatus[key]
    raise ValidationError(f"Invalid step status: {token!r} (use todo, done or skipped).")


def parse_run_status(token: RunStatus | str) -> RunStatus:
    if isinstance(token, RunStatus):
        return token
    key = (token or "").strip().upper().replace("-", "_").replace(" ", "_")
    if key in RunStatus.__members__:
        return RunStatus[key]
    raise ValidationError(f"Invalid run status: {token!r} (use in-progress, completed or abandoned).")


class WorkflowStore:
    def __init__(self, workspace: Workspace, *, today: Callable[[], date] = date.today) -> None:
        self.workspace = workspace
        self._today = today

    # ── file plumbing ────────────────────────────────────────────

    @staticmethod
    def _md_files(directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.suffix == ".md" and p.is_file())

    def _write(self, path: Path, lines: list[str]) -> None:
        try:
            write_lines(path, lines)
        except OSError as exc:
            raise StoreIOError(f"Failed to write {path.name}: {exc}") from exc
        log.debug(f"Wrote {path}")

    @staticmethod
    def _unique_path(directory: Path, base: str) -> Path:
        path = directory / f"{base}.md"
        suffix = 2
        while path.exists():
            path = directory / f"{base}-{suffix}.md"
            suffix += 1
        return path

    def _scan(self, paths: Iterable[Path], parse: Callable[..., T | None]) -> list[tuple[Path, T]]:
        """Parse every file; unreadable or foreign files are skipped with a warning."""
        found: list[tuple[Path, T]] = []
        for path in paths:
            try:
                entity = parse(read_lines(path), today=self._today())
            except (OSError, UnicodeDecodeError) as exc:
                log.warn(f"Skipping unreadable {path.name}: {exc}")
                continue
            if entity is None:
                log.debug(f"Skipping {path}: not a workflow file")
                continue
            found.append((path, entity))
        return found

    def _reload(self, path: Path, parse: Callable[..., T | None], kind: str) -> T:
        try:
            entity = parse(read_lines(path), today=self._today())
        except FileNotFoundError as exc:
            raise NotFoundError(f"{kind.capitalize()} file disappeared: {path.name}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreIOError(f"Failed to read {path.name}: {exc}") from exc
        if entity is None:
            raise StoreIOError(f"{path.name} is no longer a valid {kind} file.")
        return entity

    # ── templates ────────────────────────────────────────────────

    def _template_entries(self) -> list[tuple[Path, WorkflowTemplate]]:
        return self._scan(self._md_files(self.workspace.templates_dir), parse_template)

    def _find_template(self, template_id: str) -> tuple[Path, WorkflowTemplate]:
        entries = self._template_entries()
        resolved = resolve_id((t.id for _, t in entries), template_id, kind="template")
        return next(e for e in entries if e[1].id == resolved)

    @contextmanager
    def _modify_template(self, template_id: str) -> Iterator[WorkflowTemplate]:
        path, _ = self._find_template(template_id)
        with file_lock(path):
            template = self._reload(path, parse_template, "template")
            yield template
            self._write(path, format_template(template))

    def create_template(
        self,
        name: str,
        description: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> WorkflowTemplate:
        template = WorkflowTemplate(
            name=_require_name(name, "Template"),
            description=clean_text(description),
            tags=[t.strip() for t in tags or () if t.strip()],
            created=self._today(),
        )
        directory = self.workspace.templates_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = self._unique_path(directory, slugify(template.name))
        with file_lock(path):
            self._write(path, format_template(template))
        return template

    def get_template(self, template_id: str) -> WorkflowTemplate:
        return self._find_template(template_id)[1]

    def list_templates(self) -> list[WorkflowTemplate]:
        """Newest first."""
        templates = [t for _, t in self._template_entries()]
        return sorted(templates, key=lambda t: t.created, reverse=True)

    def delete_template(self, template_id: str) -> WorkflowTemplate:
        path, template = self._find_template(template_id)
        with file_lock(path):
            try:
                path.unlink()
            except OSError as exc:
                raise StoreIOError(f"Failed to delete {path.name}: {exc}") from exc
        return template

    def add_template_step(
        self,
        template_id: str,
        title: str,
        description: str | None = None,
        expected_result: str | None = None,
        commands: str | None = None,
        substeps: Iterable[str] | None = None,
    ) -> WorkflowTemplate:
        step = TemplateStep(
            title=_require_name(title, "Step"),
            description=clean_text(description),
            expected_result=one_line(expected_result),
            code_blocks=_commands(commands),
            substep_titles=[s.strip() for s in substeps or () if s.strip()],
        )
        with self._modify_template(template_id) as template:
            template.steps.append(step)
        return template

    def edit_template_step(
        self,
        template_id: str,
        index: int,
        title: str,
        description: str | None = None,
        expected_result: str | None = None,
        commands: str | None = None,
    ) -> WorkflowTemplate:
        """Replace a step's content in place. Its substeps are kept."""
        title = _require_name(title, "Step")
        with self._modify_template(template_id) as template:
            step = _require_index(template.steps, index)
            step.title = title
            step.description = clean_text(description)
            step.expected_result = one_line(expected_result)
            step.code_blocks = _commands(commands)
        return template

    def delete_template_step(self, template_id: str, index: int) -> WorkflowTemplate:
        with self._modify_template(template_id) as template:
            _require_index(template.steps, index)
            del template.steps[index]
        return template

    def move_template_step(self, template_id: str, index: int, up: bool) -> WorkflowTemplate:
        with self._modify_template(template_id) as template:
            _move(template.steps, index, up)
        return template

    # ── runs ─────────────────────────────────────────────────────

    def _run_entries(self, dirs: Iterable[Path] | None = None) -> list[tuple[Path, WorkflowRun]]:
        dirs = self.workspace.run_dirs() if dirs is None else dirs
        paths = [p for d in dirs for p in self._md_files(d)]
        return self._scan(paths, parse_run)

    def _find_run(self, run_id: str) -> tuple[Path, WorkflowRun]:
        entries = self._run_entries()
        resolved = resolve_id((r.id for _, r in entries), run_id, kind="run")
        return next(e for e in entries if e[1].id == resolved)

    @contextmanager
    def _modify_run(self, run_id: str) -> Iterator[WorkflowRun]:
        """Yield the run for mutation, re-derive its auto-status, then commit."""
        path, _ = self._find_run(run_id)
        with file_lock(path):
            run = self._reload(path, parse_run, "run")
            yield run
            if run.refresh_status(self._today()):
                log.debug(f"Run {run.id}: status -> {run.status.value}")
            self._write(path, format_run(run))

    @staticmethod
    def _newest_first(runs: Iterable[WorkflowRun]) -> list[WorkflowRun]:
        return sorted(runs, key=lambda r: r.created, reverse=True)

    def create_run(
        self,
        name: str | None,
        template_id: str | None = None,
        project: str | None = None,
    ) -> WorkflowRun:
        """Start a run, copying the template's steps when one is given.

        The run owns its copy: later template edits reach it only through
        :meth:`sync_run_from_template`.
        """
        template = self.get_template(template_id) if template_id and template_id.strip() else None
        if template is not None and not (name or "").strip():
            name = template.name
        run = WorkflowRun(
            name=_require_name(name, "Run"),
            template_id=template.id if template else None,
            project=self.workspace.validate_project(project) if project and project.strip() else None,
            created=self._today(),
        )
        if template is not None:
            run.steps = [RunStep.from_template(step) for step in template.steps]

        directory = (
            self.workspace.project_runs_dir(run.project) if run.project else self.workspace.global_runs_dir
        )
        directory.mkdir(parents=True, exist_ok=True)
        path = self._unique_path(directory, f"{run.created.isoformat()}-{slugify(run.name)}")
        with file_lock(path):
            self._write(path, format_run(run))
        return run

    def get_run(self, run_id: str) -> WorkflowRun:
        return self._find_run(run_id)[1]

    def list_runs(self, project: str | None = None) -> list[WorkflowRun]:
        """Runs of one project, or the global runs when *project* is empty."""
        if project and project.strip():
            directory = self.workspace.project_runs_dir(project)
        else:
            directory = self.workspace.global_runs_dir
        return self._newest_first(r for _, r in self._run_entries([directory]))

    def list_all_runs(self) -> list[WorkflowRun]:
        return self._newest_first(r for _, r in self._run_entries())

    def delete_run(self, run_id: str) -> WorkflowRun:
        path, run = self._find_run(run_id)
        with file_lock(path):
            try:
                path.unlink()
            except OSError as exc:
                raise StoreIOError(f"Failed to delete {path.name}: {exc}") from exc
        return run

    def add_run_step(
        self,
        run_id: str,
        title: str,
        description: str | None = None,
        expected_result: str | None = None,
        commands: str | None = None,
    ) -> WorkflowRun:
        step = RunStep(
            title=_require_name(title, "Step"),
            description=clean_text(description),
            expected_result=one_line(expected_result),
            code_blocks=_commands(commands),
        )
        with self._modify_run(run_id) as run:
            run.steps.append(step)
        return run

    def delete_run_step(self, run_id: str, index: int) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            _require_index(run.steps, index)
            del run.steps[index]
        return run

    def move_run_step(self, run_id: str, index: int, up: bool) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            _move(run.steps, index, up)
        return run

    def set_step_status(self, run_id: str, index: int, status: StepStatus | str) -> WorkflowRun:
        target = parse_step_status(status)
        with self._modify_run(run_id) as run:
            _require_index(run.steps, index).status = target
        return run

    def add_step_note(self, run_id: str, index: int, note: str) -> WorkflowRun:
        """Append *note* below the step's existing notes."""
        note = clean_text(note)
        if note is None:
            raise ValidationError("Note cannot be blank.")
        with self._modify_run(run_id) as run:
            step = _require_index(run.steps, index)
            step.notes = f"{step.notes}\n{note}" if step.notes else note
        return run

    def set_step_notes(self, run_id: str, index: int, notes: str | None) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            _require_index(run.steps, index).notes = clean_text(notes)
        return run

    def set_step_actual_result(self, run_id: str, index: int, actual: str | None) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            _require_index(run.steps, index).actual_result = one_line(actual)
        return run

    def set_step_actual_command(self, run_id: str, index: int, command: str | None) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            step = _require_index(run.steps, index)
            step.actual_command = command.strip() if command and command.strip() else None
        return run

    def toggle_substep(self, run_id: str, index: int, substep_index: int) -> WorkflowRun:
        with self._modify_run(run_id) as run:
            step = _require_index(run.steps, index)
            substep = _require_index(step.substeps, substep_index, "Substep")
            substep.done = not substep.done
        return run

    def set_run_status(self, run_id: str, status: RunStatus | str) -> WorkflowRun:
        """Set the run status explicitly; COMPLETED stamps today, others clear it."""
        target = parse_run_status(status)
        path, _ = self._find_run(run_id)
        with file_lock(path):
            run = self._reload(path, parse_run, "run")
            run.status = target
            run.completed = self._today() if target == RunStatus.COMPLETED else None
            self._write(path, format_run(run))
        return run

    def sync_run_from_template(self, run_id: str) -> WorkflowRun:
        """Merge the template's current steps into the run without losing progress.

        For each index present in both, only title, guidance, expected result
        and code blocks are refreshed; status, notes, actual result, actual
        command and substep progress stay as executed. Template steps beyond
        the run's length are appended as new TODO steps. Run steps beyond the
        template's length are left alone.
        """
        run = self.get_run(run_id)
        if not run.template_id:
            raise ValidationError(f"Run '{run.name}' was not created from a template.")
        template = self.get_template(run.template_id)

        with self._modify_run(run.id) as run:
            for run_step, template_step in zip(run.steps, template.steps):
                run_step.title = template_step.title
                run_step.description = template_step.description
                run_step.expected_result = template_step.expected_result
                run_step.code_blocks = list(template_step.code_blocks)
            for template_step in template.steps[len(run.steps):]:
                run.steps.append(RunStep.from_template(template_step))
        log.debug(f"Synced run {run.id} from template {template.id}")
        return run
