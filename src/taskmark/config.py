"""Configuration defaults and env overrides for taskmark."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

WORKSPACE_ENV = "TASKMARK_WORKSPACE"

DEFAULT_PROJECTS_DIRNAME = "01_Projects"
DEFAULT_WORKFLOWS_DIRNAME = "06_Workflows"


@dataclass
class Config:
    """Explicit configuration handed to :class:`taskmark.workspace.Workspace`.

    Nothing in the package reads configuration from module globals; callers
    build one ``Config`` and pass it down.
    """

    # Layout
    workspace: str = ""
    projects_dirname: str = DEFAULT_PROJECTS_DIRNAME
    workflows_dirname: str = DEFAULT_WORKFLOWS_DIRNAME

    # Parsing: raise on malformed record lines instead of skipping them
    strict_parsing: bool = False

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.workspace:
            self.workspace = os.environ.get(WORKSPACE_ENV) or str(Path.home() / "Work")

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace).expanduser()
