"""Markdown codec for workflow template and run files.

Template::

    # <name>
    <!-- WORKFLOW_TEMPLATE: id=<id> created=<date> [tags=a,b] -->
    <description>
    ## Step 1: <title>
    <guidance>
    **Expected:** <one line>
    ```
    <command>
    ```
    - [ ] <substep title>

Run::

    # <name>
    <!-- WORKFLOW_RUN: id=<id> [templateId=<id>] [project=<p>] status=<s> created=<date> [completed=<date>] -->
    ## Step 1: <title>
    <!-- STEP: id=<id> status=TODO|DONE|SKIPPED -->
    **Guidance:**
    <guidance, ends at the first blank line>
    <notes>
    **Expected:** <one line>
    **Actual:** <one line>
    ```
    <command>
    ```
    **Actual Command:**
    ```
    <command actually used>
    ```
        - [x] <substep title>

Blank lines inside free text are not preserved. A file without a title or
metadata comment is not a workflow file and parses to ``None``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date
from urllib.parse import quote, unquote

from taskmark.workflows.model import (
    RunStatus,
    RunStep,
    StepStatus,
    SubStep,
    TemplateStep,
    WorkflowRun,
    WorkflowTemplate,
)

FENCE = "```"
SUBSTEP_INDENT = "    "

_TEMPLATE_META = re.compile(r"<!--\s*WORKFLOW_TEMPLATE:(.*?)-->")
_RUN_META = re.compile(r"<!--\s*WORKFLOW_RUN:(.*?)-->")
_STEP_META = re.compile(r"<!--\s*STEP:(.*?)-->")
_STEP_HEADER = re.compile(r"^##\s+Step\s+\d+:\s*(.*?)\s*$")

_ID = re.compile(r"\bid=([\w-]+)")
_TEMPLATE_ID = re.compile(r"\btemplateId=([\w-]+)")
_PROJECT = re.compile(r"\bproject=(\S+)")
_STATUS = re.compile(r"\bstatus=(\w+)")
_CREATED = re.compile(r"\bcreated=(\d{4}-\d{2}-\d{2})")
_COMPLETED = re.compile(r"\bcompleted=(\d{4}-\d{2}-\d{2})")
_TAGS = re.compile(r"\btags=([^\s>]+)")

_TEMPLATE_SUBSTEP = re.compile(r"^- \[[ xX]\] (.+)$")
_RUN_SUBSTEP = re.compile(r"^ {4}- \[([ xX])\] (.+)$")

EXPECTED = "**Expected:**"
ACTUAL = "**Actual:**"
GUIDANCE = "**Guidance:**"
ACTUAL_COMMAND = "**Actual Command:**"


# ── shared helpers ───────────────────────────────────────────────────


def one_line(text: str | None) -> str | None:
    """Fold multi-line text onto a single line; blank becomes ``None``."""
    if text is None:
        return None
    folded = " ".join(part.strip() for part in text.splitlines() if part.strip())
    return folded or None


def clean_text(text: str | None) -> str | None:
    """Trim text and drop blank lines; blank becomes ``None``."""
    if text is None:
        return None
    kept = [line.rstrip() for line in text.splitlines() if line.strip()]
    return "\n".join(kept).strip() or None


def _date(pattern: re.Pattern[str], meta: str) -> date | None:
    m = pattern.search(meta)
    if not m:
        return None
    try:
        return date.fromisoformat(m.group(1))
    except ValueError:
        return None


def _split(lines: Iterable[str]) -> tuple[list[str], list[tuple[str, list[str]]]]:
    """Split a file into head lines and ``(step title, body lines)`` pairs."""
    head: list[str] = []
    steps: list[tuple[str, list[str]]] = []
    in_fence = False
    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith(FENCE):
            in_fence = not in_fence
        m = None if in_fence else _STEP_HEADER.match(line)
        if m:
            steps.append((m.group(1), []))
        elif steps:
            steps[-1][1].append(line)
        else:
            head.append(line)
    return head, steps


def _read_head(head: list[str], meta_pattern: re.Pattern[str]) -> tuple[str | None, str | None, list[str]]:
    name: str | None = None
    meta: str | None = None
    rest: list[str] = []
    for line in head:
        if name is None and line.startswith("# "):
            name = line[2:].strip()
            continue
        if meta is None:
            m = meta_pattern.search(line)
            if m:
                meta = m.group(1)
                continue
        if name is not None and meta is not None:
            rest.append(line)
    return name, meta, rest


def _fenced(block: str) -> list[str]:
    return [FENCE, *block.strip().split("\n"), FENCE, ""]


def _close_block(block: list[str]) -> str:
    return "\n".join(block).strip()


# ── templates ────────────────────────────────────────────────────────


def _parse_template_step(title: str, lines: list[str]) -> TemplateStep:
    step = TemplateStep(title=title)
    text: list[str] = []
    block: list[str] | None = None
    for line in lines:
        if line.startswith(FENCE):
            if block is None:
                block = []
            else:
                step.code_blocks.append(_close_block(block))
                block = None
            continue
        if block is not None:
            block.append(line)
            continue
        if line.startswith(EXPECTED):
            step.expected_result = line[len(EXPECTED):].strip() or None
            continue
        m = _TEMPLATE_SUBSTEP.match(line)
        if m:
            step.substep_titles.append(m.group(1).strip())
            continue
        text.append(line)
    if block is not None:
        step.code_blocks.append(_close_block(block))
    step.description = clean_text("\n".join(text))
    return step


def parse_template(lines: Iterable[str], today: date | None = None) -> WorkflowTemplate | None:
    head, sections = _split(lines)
    name, meta, rest = _read_head(head, _TEMPLATE_META)
    if name is None or meta is None:
        return None
    m = _ID.search(meta)
    if not m:
        return None

    tags = _TAGS.search(meta)
    return WorkflowTemplate(
        id=m.group(1),
        name=name,
        description=clean_text("\n".join(rest)),
        tags=[t.strip() for t in tags.group(1).split(",") if t.strip()] if tags else [],
        created=_date(_CREATED, meta) or today or date.today(),
        steps=[_parse_template_step(title, body) for title, body in sections],
    )


def format_template(template: WorkflowTemplate) -> list[str]:
    meta = [f"id={template.id}", f"created={template.created.isoformat()}"]
    if template.tags:
        meta.append(f"tags={','.join(template.tags)}")
    lines = [f"# {template.name}", "", f"<!-- WORKFLOW_TEMPLATE: {' '.join(meta)} -->", ""]

    description = clean_text(template.description)
    if description:
        lines.extend([description, ""])

    for number, step in enumerate(template.steps, start=1):
        lines.extend([f"## Step {number}: {step.title}", ""])
        guidance = clean_text(step.description)
        if guidance:
            lines.extend([guidance, ""])
        expected = one_line(step.expected_result)
        if expected:
            lines.extend([f"{EXPECTED} {expected}", ""])
        for block in step.code_blocks:
            lines.extend(_fenced(block))
        if step.substep_titles:
            lines.extend(f"- [ ] {title}" for title in step.substep_titles)
            lines.append("")
    return lines


# ── runs ─────────────────────────────────────────────────────────────


def _parse_run_step(title: str, lines: list[str]) -> RunStep:
    step = RunStep(title=title)
    notes: list[str] = []
    guidance: list[str] = []
    block: list[str] | None = None
    block_is_command = False
    next_is_command = False
    in_guidance = False
    meta_seen = False

    for line in lines:
        stripped = line.strip()
        if not meta_seen:
            m = _STEP_META.search(stripped)
            if m:
                meta_seen = True
                step_id = _ID.search(m.group(1))
                if step_id:
                    step.id = step_id.group(1)
                status = _STATUS.search(m.group(1))
                if status and status.group(1) in StepStatus.__members__:
                    step.status = StepStatus[status.group(1)]
                continue

        if line.startswith(FENCE):
            if block is None:
                block = []
                block_is_command, next_is_command = next_is_command, False
            else:
                text = _close_block(block)
                if block_is_command:
                    step.actual_command = text or None
                else:
                    step.code_blocks.append(text)
                block = None
            continue
        if block is not None:
            block.append(line)
            continue

        if stripped == ACTUAL_COMMAND:
            next_is_command = True
            in_guidance = False
            continue
        if stripped == GUIDANCE:
            in_guidance = True
            continue
        if in_guidance:
            if stripped:
                guidance.append(line)
                continue
            in_guidance = False

        m = _RUN_SUBSTEP.match(line)
        if m:
            step.substeps.append(SubStep(m.group(2).strip(), m.group(1).lower() == "x"))
            continue
        if stripped.startswith(EXPECTED):
            step.expected_result = stripped[len(EXPECTED):].strip() or None
            continue
        if stripped.startswith(ACTUAL):
            step.actual_result = stripped[len(ACTUAL):].strip() or None
            continue
        notes.append(line)

    if block is not None:
        text = _close_block(block)
        if block_is_command:
            step.actual_command = text or None
        else:
            step.code_blocks.append(text)
    step.description = clean_text("\n".join(guidance))
    step.notes = clean_text("\n".join(notes))
    return step


def parse_run(lines: Iterable[str], today: date | None = None) -> WorkflowRun | None:
    head, sections = _split(lines)
    name, meta, _ = _read_head(head, _RUN_META)
    if name is None or meta is None:
        return None
    m = _ID.search(meta)
    if not m:
        return None

    template_id = _TEMPLATE_ID.search(meta)
    project = _PROJECT.search(meta)
    status = _STATUS.search(meta)
    return WorkflowRun(
        id=m.group(1),
        name=name,
        template_id=template_id.group(1) if template_id else None,
        project=unquote(project.group(1)) if project else None,
        status=RunStatus[status.group(1)]
        if status and status.group(1) in RunStatus.__members__
        else RunStatus.IN_PROGRESS,
        created=_date(_CREATED, meta) or today or date.today(),
        completed=_date(_COMPLETED, meta),
        steps=[_parse_run_step(title, body) for title, body in sections],
    )


def format_run(run: WorkflowRun) -> list[str]:
    meta = [f"id={run.id}"]
    if run.template_id:
        meta.append(f"templateId={run.template_id}")
    if run.project:
        meta.append(f"project={quote(run.project, safe='')}")
    meta.append(f"status={run.status.value}")
    meta.append(f"created={run.created.isoformat()}")
    if run.completed is not None:
        meta.append(f"completed={run.completed.isoformat()}")
    lines = [f"# {run.name}", "", f"<!-- WORKFLOW_RUN: {' '.join(meta)} -->", ""]

    for number, step in enumerate(run.steps, start=1):
        lines.extend([
            f"## Step {number}: {step.title}",
            f"<!-- STEP: id={step.id} status={step.status.value} -->",
            "",
        ])
        guidance = clean_text(step.description)
        if guidance:
            lines.extend([GUIDANCE, guidance, ""])
        notes = clean_text(step.notes)
        if notes:
            lines.extend([notes, ""])
        expected = one_line(step.expected_result)
        if expected:
            lines.extend([f"{EXPECTED} {expected}", ""])
        actual = one_line(step.actual_result)
        if actual:
            lines.extend([f"{ACTUAL} {actual}", ""])
        for block in step.code_blocks:
            lines.extend(_fenced(block))
        if step.actual_command and step.actual_command.strip():
            lines.append(ACTUAL_COMMAND)
            lines.extend(_fenced(step.actual_command))
        if step.substeps:
            lines.extend(
                f"{SUBSTEP_INDENT}- [{'x' if s.done else ' '}] {s.title}" for s in step.substeps
            )
            lines.append("")
    return lines
