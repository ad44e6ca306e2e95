"""Tests for taskmark.config.Config defaults and workspace resolution."""

from __future__ import annotations

from pathlib import Path

from taskmark.config import DEFAULT_PROJECTS_DIRNAME, DEFAULT_WORKFLOWS_DIRNAME, WORKSPACE_ENV, Config
from taskmark.workspace import Workspace, slugify


def test_defaults(monkeypatch):
    """Without an override the workspace is ~/Work."""
    monkeypatch.delenv(WORKSPACE_ENV, raising=False)
    cfg = Config()
    assert cfg.workspace_path == Path.home() / "Work"
    assert cfg.projects_dirname == DEFAULT_PROJECTS_DIRNAME == "01_Projects"
    assert cfg.workflows_dirname == DEFAULT_WORKFLOWS_DIRNAME == "06_Workflows"
    assert cfg.strict_parsing is False


def test_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv(WORKSPACE_ENV, str(tmp_path))
    assert Config().workspace_path == tmp_path


def test_explicit_beats_env(monkeypatch, tmp_path):
    monkeypatch.setenv(WORKSPACE_ENV, "/somewhere/else")
    assert Config(workspace=str(tmp_path)).workspace_path == tmp_path


def test_tilde_expanded(monkeypatch):
    monkeypatch.delenv(WORKSPACE_ENV, raising=False)
    assert Config(workspace="~/notes").workspace_path == Path.home() / "notes"


def test_custom_layout(tmp_path):
    """Directory names come from the config, not from constants."""
    ws = Workspace(Config(workspace=str(tmp_path), projects_dirname="P", workflows_dirname="W"))
    assert ws.tasks_file("demo") == tmp_path / "P" / "demo" / "notes" / "tasks.md"
    assert ws.templates_dir == tmp_path / "W" / "templates"
    assert ws.global_runs_dir == tmp_path / "W" / "runs"


def test_run_dirs_lists_projects(tmp_path):
    ws = Workspace(Config(workspace=str(tmp_path)))
    ws.ensure_project("beta")
    ws.ensure_project("alpha")
    assert ws.list_projects() == ["alpha", "beta"]
    assert ws.run_dirs() == [
        ws.global_runs_dir,
        ws.project_runs_dir("alpha"),
        ws.project_runs_dir("beta"),
    ]


def test_list_projects_skips_hidden_dirs(tmp_path):
    ws = Workspace(Config(workspace=str(tmp_path)))
    ws.ensure_project("alpha")
    (ws.projects_dir / ".obsidian").mkdir()
    (ws.projects_dir / ".git").mkdir()
    assert ws.list_projects() == ["alpha"]


def test_slugify():
    assert slugify("Release 1.2 (hotfix)") == "release-1-2-hotfix"
    assert slugify("!!!") == "workflow"
    assert len(slugify("x" * 100)) == 40
