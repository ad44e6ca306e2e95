"""On-disk layout of a workspace: where each project's records live."""

from __future__ import annotations

import re
from pathlib import Path

from taskmark.config import Config
from taskmark.errors import ValidationError

TASKS_FILENAME = "tasks.md"
WORK_LOG_FILENAME = "work-log.md"

_INVALID_PROJECT = re.compile(r"[\\/]|^\.")


def slugify(text: str, max_len: int = 40, fallback: str = "workflow") -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_len].rstrip("-") or fallback


class Workspace:
    """Resolves record paths under one workspace root.

    ::

        <root>/01_Projects/<project>/notes/tasks.md
        <root>/01_Projects/<project>/notes/work-log.md
        <root>/01_Projects/<project>/workflows/      project-scoped runs
        <root>/06_Workflows/templates/
        <root>/06_Workflows/runs/                    global runs
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.root = config.workspace_path

    # ── projects ─────────────────────────────────────────────────

    @property
    def projects_dir(self) -> Path:
        return self.root / self.config.projects_dirname

    def validate_project(self, project: str) -> str:
        name = (project or "").strip()
        if not name:
            raise ValidationError("Project name cannot be blank.")
        if _INVALID_PROJECT.search(name):
            raise ValidationError(f"Invalid project name: {project!r}")
        return name

    def project_dir(self, project: str) -> Path:
        return self.projects_dir / self.validate_project(project)

    def tasks_file(self, project: str) -> Path:
        return self.project_dir(project) / "notes" / TASKS_FILENAME

    def work_log_file(self, project: str) -> Path:
        return self.project_dir(project) / "notes" / WORK_LOG_FILENAME

    def project_runs_dir(self, project: str) -> Path:
        return self.project_dir(project) / "workflows"

    def ensure_project(self, project: str) -> Path:
        """Create the project's notes directory if missing. Returns the project dir."""
        directory = self.project_dir(project)
        (directory / "notes").mkdir(parents=True, exist_ok=True)
        return directory

    def list_projects(self) -> list[str]:
        if not self.projects_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.projects_dir.iterdir() if p.is_dir() and not _INVALID_PROJECT.search(p.name)
        )

    # ── workflows ────────────────────────────────────────────────

    @property
    def templates_dir(self) -> Path:
        return self.root / self.config.workflows_dirname / "templates"

    @property
    def global_runs_dir(self) -> Path:
        return self.root / self.config.workflows_dirname / "runs"

    def run_dirs(self) -> list[Path]:
        """Global runs dir first, then every project's workflows dir."""
        dirs = [self.global_runs_dir]
        dirs.extend(self.projects_dir / name / "workflows" for name in self.list_projects())
        return dirs
