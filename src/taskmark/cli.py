"""taskmark CLI: a thin shell over the task, work-log and workflow stores.

Installed as the ``taskmark`` console_script.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass

import click
from rich.markup import escape

from taskmark import __version__
from taskmark import log
from taskmark.config import Config
from taskmark.errors import TaskmarkError
from taskmark.insights import generate_insights
from taskmark.tasks.lifecycle import Transition
from taskmark.tasks.model import Task, TaskStatus
from taskmark.tasks.store import TaskStore
from taskmark.workflows.model import WorkflowRun
from taskmark.workflows.store import WorkflowStore
from taskmark.workspace import Workspace
from taskmark.worklog import LogSection, WorkLog


class TaskmarkGroup(click.Group):
    """Turn every :class:`TaskmarkError` into a one-line error and exit 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except TaskmarkError as exc:
            log.error(str(exc))
            sys.exit(1)


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@dataclass
class AppContext:
    workspace: Workspace

    @property
    def tasks(self) -> TaskStore:
        return TaskStore(self.workspace)

    @property
    def workflows(self) -> WorkflowStore:
        return WorkflowStore(self.workspace)


pass_app = click.make_pass_decorator(AppContext)


@click.group(cls=TaskmarkGroup, context_settings=CONTEXT_SETTINGS)
@click.option("--workspace", "workspace_dir", default="", help="Workspace root (default: $TASKMARK_WORKSPACE or ~/Work)")
@click.option("--strict", is_flag=True, help="Fail on malformed lines in record files")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="taskmark")
@click.pass_context
def main(ctx: click.Context, workspace_dir: str, strict: bool, verbose: bool) -> None:
    """taskmark: tasks, work logs and workflows kept as markdown files.

    \b
    EXAMPLES:
      taskmark task add website "Fix login redirect" -t auth -p 1
      taskmark task done website 3
      taskmark log add website "Pair-reviewed the auth PR" --section notes
      taskmark insights website
      taskmark flow run-create --template release --project website
    """
    log.set_verbose(verbose)
    cfg = Config(workspace=workspace_dir, strict_parsing=strict, verbose=verbose)
    ctx.obj = AppContext(Workspace(cfg))
    log.debug(f"Workspace: {cfg.workspace_path}")


# ── formatting helpers ───────────────────────────────────────────────


def _task_line(task: Task) -> str:
    line = f"#{task.id} \\[{task.status.glyph}] (P{task.priority}) {escape(task.title)}"
    if task.subtasks:
        line += f" [dim]({task.done_subtask_count()}/{len(task.subtasks)})[/dim]"
    if task.tags:
        line += f" [cyan]{escape(' '.join('#' + t for t in task.tags))}[/cyan]"
    return line


def _print_run(run: WorkflowRun) -> None:
    scope = run.project or "global"
    log.console.print(f"[bold]{escape(run.name)}[/bold] [dim]{run.id}[/dim]")
    log.console.print(
        f"Status: [yellow]{run.status.value}[/yellow]  Scope: {escape(scope)}  "
        f"Steps: {run.done_step_count()}/{run.active_step_count()}"
    )
    for number, step in enumerate(run.steps, start=1):
        line = f"  {step.status.symbol} {number}. {escape(step.title)}"
        if step.substeps:
            line += f" [dim]({step.done_substep_count()}/{len(step.substeps)})[/dim]"
        log.console.print(line)
        if step.notes:
            for note in step.notes.split("\n"):
                log.console.print(f"      [dim]{escape(note)}[/dim]")


# ── Subcommand group: task ───────────────────────────────────────────


@main.group(context_settings=CONTEXT_SETTINGS)
def task() -> None:
    """Create, move and inspect project tasks."""


@task.command("add")
@click.argument("project")
@click.argument("title")
@click.option("--priority", "-p", type=int, default=2, show_default=True, help="1 (high) to 3 (low)")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@pass_app
def task_add(app: AppContext, project: str, title: str, priority: int, tags: tuple[str, ...]) -> None:
    """Add an OPEN task to PROJECT."""
    created = app.tasks.create_task(project, title, tags=list(tags), priority=priority)
    log.success(f"Created task #{created.id}: {created.title}")


@task.command("list")
@click.argument("project")
@click.option("--status", "-s", default=None, help="open, in-progress or done")
@pass_app
def task_list(app: AppContext, project: str, status: str | None) -> None:
    """List PROJECT's tasks grouped by status."""
    tasks = app.tasks.list_tasks(project, status)
    if not tasks:
        log.info(f"No tasks in {project}.")
        return
    for group in TaskStatus:
        members = [t for t in tasks if t.status == group]
        if not members:
            continue
        log.console.print(f"[bold]{group.label}[/bold]")
        for t in members:
            log.console.print(f"  {_task_line(t)}")


@task.command("show")
@click.argument("project")
@click.argument("task_id", type=int)
@pass_app
def task_show(app: AppContext, project: str, task_id: int) -> None:
    """Show one task with its body and subtasks."""
    t = app.tasks.get_task(project, task_id)
    log.console.print(_task_line(t))
    for line in t.body_lines:
        log.console.print(f"  {escape(line)}")
    for number, sub in enumerate(t.subtasks, start=1):
        log.console.print(f"  {number}. \\[{'x' if sub.done else ' '}] {escape(sub.title)}")
    dates = f"created {t.created_date.isoformat()}"
    if t.updated_date:
        dates += f", updated {t.updated_date.isoformat()}"
    if t.completed_date:
        dates += f", completed {t.completed_date.isoformat()}"
    log.console.print(f"[dim]{dates}[/dim]")


def _report_move(task_id: int, transition: Transition) -> None:
    if not transition.changed:
        log.info(f"Task #{task_id} is already {transition.status.label}.")
    else:
        log.success(f"Task #{task_id}: {transition.previous.label} -> {transition.status.label}")


@task.command("move")
@click.argument("project")
@click.argument("task_id", type=int)
@click.argument("status")
@pass_app
def task_move(app: AppContext, project: str, task_id: int, status: str) -> None:
    """Move a task to STATUS (open, in-progress, done)."""
    _report_move(task_id, app.tasks.move_task(project, task_id, status))


@task.command("start")
@click.argument("project")
@click.argument("task_id", type=int)
@pass_app
def task_start(app: AppContext, project: str, task_id: int) -> None:
    """Move a task to In Progress."""
    _report_move(task_id, app.tasks.start_task(project, task_id))


@task.command("done")
@click.argument("project")
@click.argument("task_id", type=int)
@pass_app
def task_done(app: AppContext, project: str, task_id: int) -> None:
    """Mark a task Done."""
    _report_move(task_id, app.tasks.complete_task(project, task_id))


@task.command("reopen")
@click.argument("project")
@click.argument("task_id", type=int)
@pass_app
def task_reopen(app: AppContext, project: str, task_id: int) -> None:
    """Move a task back to Open."""
    _report_move(task_id, app.tasks.reopen_task(project, task_id))


@task.command("delete")
@click.argument("project")
@click.argument("task_id", type=int)
@pass_app
def task_delete(app: AppContext, project: str, task_id: int) -> None:
    """Delete a task. Its work-log history stays."""
    removed = app.tasks.delete_task(project, task_id)
    log.success(f"Deleted task #{removed.id}: {removed.title}")


@task.command("subtask-add")
@click.argument("project")
@click.argument("task_id", type=int)
@click.argument("title")
@pass_app
def task_subtask_add(app: AppContext, project: str, task_id: int, title: str) -> None:
    """Append a subtask to a task's checklist."""
    t = app.tasks.add_subtask(project, task_id, title)
    log.success(f"Task #{t.id} now has {len(t.subtasks)} subtask(s).")


@task.command("subtask-toggle")
@click.argument("project")
@click.argument("task_id", type=int)
@click.argument("number", type=int)
@pass_app
def task_subtask_toggle(app: AppContext, project: str, task_id: int, number: int) -> None:
    """Check or uncheck subtask NUMBER (1-based)."""
    t = app.tasks.toggle_subtask(project, task_id, number - 1)
    sub = t.subtasks[number - 1]
    log.success(f"Subtask {number} of task #{t.id} is now {'done' if sub.done else 'open'}.")


# ── Subcommand group: log ────────────────────────────────────────────


@main.group("log", context_settings=CONTEXT_SETTINGS)
def log_group() -> None:
    """Write to a project's work log."""


@log_group.command("add")
@click.argument("project")
@click.argument("text", default="")
@click.option(
    "--section",
    default="done",
    show_default=True,
    help=", ".join(s.value for s in LogSection),
)
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@pass_app
def log_add(app: AppContext, project: str, text: str, section: str, tags: tuple[str, ...]) -> None:
    """Add TEXT to today's SECTION. Without TEXT, only today's block is created."""
    ws = app.workspace
    ws.ensure_project(project)
    work_log = WorkLog(ws.work_log_file(project), project)
    work_log.append_entry(section, text, tags)
    if text.strip():
        log.success(f"Logged to {LogSection.parse(section).label} in {project}.")
    else:
        log.success(f"Today's block is ready in {project}.")


# ── Subcommand: insights ─────────────────────────────────────────────


@main.command()
@click.argument("project")
@pass_app
def insights(app: AppContext, project: str) -> None:
    """Show analytics replayed from PROJECT's work log."""
    result = generate_insights(app.workspace, project)
    c = log.console
    c.print(f"[bold]Insights: {escape(project)}[/bold]")
    c.print(
        f"Tasks: {result.total_tasks} (open {result.open_tasks}, "
        f"in progress {result.in_progress_tasks}, done {result.done_tasks})"
    )
    c.print(f"Completion rate: {result.completion_rate:.1f}%")
    c.print(f"Completed this week: {result.completed_this_week}")
    c.print(f"Stagnant tasks: {result.stagnant_tasks}")
    c.print(f"Most used tag: {escape(result.most_used_tag)}")
    c.print(f"Average days to complete: {result.average_completion_days:.1f}")
    c.print(f"[bold]Productivity score: {result.productivity_score:.0f}/100[/bold]")


# ── Subcommand group: flow ───────────────────────────────────────────


@main.group(context_settings=CONTEXT_SETTINGS)
def flow() -> None:
    """Workflow templates and their runs."""


@flow.command("template-create")
@click.argument("name")
@click.option("--description", "-d", default=None, help="Template overview")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@pass_app
def flow_template_create(app: AppContext, name: str, description: str | None, tags: tuple[str, ...]) -> None:
    """Create an empty workflow template."""
    template = app.workflows.create_template(name, description, list(tags))
    log.success(f"Created template {template.name} ({template.id})")


@flow.command("template-list")
@pass_app
def flow_template_list(app: AppContext) -> None:
    """List templates, newest first."""
    templates = app.workflows.list_templates()
    if not templates:
        log.info("No workflow templates.")
        return
    for template in templates:
        log.console.print(
            f"[dim]{template.id[:8]}[/dim] {escape(template.name)} "
            f"({len(template.steps)} steps, {template.created.isoformat()})"
        )


@flow.command("step-add")
@click.argument("template_id")
@click.argument("title")
@click.option("--description", "-d", default=None, help="Guidance for the step")
@click.option("--expected", "-e", default=None, help="Expected result")
@click.option("--command", "-c", "command", default=None, help="Command to run")
@pass_app
def flow_step_add(
    app: AppContext,
    template_id: str,
    title: str,
    description: str | None,
    expected: str | None,
    command: str | None,
) -> None:
    """Append a step to a template."""
    template = app.workflows.add_template_step(template_id, title, description, expected, command)
    log.success(f"Template {template.name} now has {len(template.steps)} step(s).")


@flow.command("run-create")
@click.argument("name", default="")
@click.option("--template", "template_id", default=None, help="Template id or unique prefix")
@click.option("--project", default=None, help="Scope the run to a project")
@pass_app
def flow_run_create(app: AppContext, name: str, template_id: str | None, project: str | None) -> None:
    """Start a run, optionally copying a template's steps."""
    run = app.workflows.create_run(name, template_id, project)
    log.success(f"Started run {run.name} ({run.id}) with {len(run.steps)} step(s).")


@flow.command("run-list")
@click.option("--project", default=None, help="Only this project's runs")
@click.option("--all", "show_all", is_flag=True, help="Global and every project's runs")
@pass_app
def flow_run_list(app: AppContext, project: str | None, show_all: bool) -> None:
    """List runs, newest first."""
    store = app.workflows
    runs = store.list_all_runs() if show_all else store.list_runs(project)
    if not runs:
        log.info("No workflow runs.")
        return
    for run in runs:
        log.console.print(
            f"[dim]{run.id[:8]}[/dim] {escape(run.name)} [yellow]{run.status.value}[/yellow] "
            f"{run.done_step_count()}/{run.active_step_count()}"
        )


@flow.command("run-show")
@click.argument("run_id")
@pass_app
def flow_run_show(app: AppContext, run_id: str) -> None:
    """Show a run and its steps."""
    _print_run(app.workflows.get_run(run_id))


@flow.command("step-status")
@click.argument("run_id")
@click.argument("step", type=int)
@click.argument("status")
@pass_app
def flow_step_status(app: AppContext, run_id: str, step: int, status: str) -> None:
    """Set STEP (1-based) to todo, done or skipped."""
    run = app.workflows.set_step_status(run_id, step - 1, status)
    log.success(f"Step {step} is {run.steps[step - 1].status.value}; run is {run.status.value}.")


@flow.command("step-note")
@click.argument("run_id")
@click.argument("step", type=int)
@click.argument("note")
@pass_app
def flow_step_note(app: AppContext, run_id: str, step: int, note: str) -> None:
    """Append NOTE to STEP (1-based)."""
    app.workflows.add_step_note(run_id, step - 1, note)
    log.success(f"Note added to step {step}.")


@flow.command("sync")
@click.argument("run_id")
@pass_app
def flow_sync(app: AppContext, run_id: str) -> None:
    """Pull template edits into a run without touching its progress."""
    run = app.workflows.sync_run_from_template(run_id)
    log.success(f"Synced {run.name}: {len(run.steps)} step(s).")


if __name__ == "__main__":
    main()
