"""Shared fixtures for dark-factory tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use darkfactory.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from darkfactory.config import JobConfig, resolve_job_paths, save_job
from darkfactory.io_utils import write_text
from darkfactory.tasks.graph import TaskGraph
from darkfactory.tasks.model import Complexity, GraphDocument, Task, TaskStatus

INTEGRATION_BRANCH = "develop"


def _git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo with one commit, checked out on ``develop``."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init"], cwd=repo, capture_output=True, check=True)
    _git(repo, "config", "user.name", "Test")
    _git(repo, "config", "user.email", "test@test")
    _git(repo, "config", "commit.gpgsign", "false")
    write_text(repo / "README.md", "# Test\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-m", "Initial")
    _git(repo, "checkout", "-b", INTEGRATION_BRANCH)
    return repo


def _make_task(
    title: str = "",
    status: TaskStatus | str = TaskStatus.PENDING,
    dependencies: list[str] | None = None,
    complexity: Complexity | str = Complexity.MEDIUM,
    attempts: int = 0,
    file: str = "",
) -> Task:
    return Task(
        title=title or "Task",
        status=TaskStatus.parse(status),
        dependencies=dependencies or [],
        file=file,
        complexity=Complexity.parse(complexity),
        attempts=attempts,
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


@pytest.fixture
def make_doc():
    """Factory fixture: ``make_doc({"T001": task, ...}, project="p")``."""

    def _make(tasks: dict[str, Task], project: str = "test-project") -> GraphDocument:
        return GraphDocument(project=project, tasks=dict(tasks))

    return _make


@pytest.fixture
def scenario_doc(make_doc) -> GraphDocument:
    """T001 complete; T002 <- T001; T003 <- T001, T002; T004 standalone."""
    return make_doc(
        {
            "T001": _make_task("Init workspace", status="complete", complexity="low"),
            "T002": _make_task("Build foundation", dependencies=["T001"]),
            "T003": _make_task("Implement feature", dependencies=["T001", "T002"], complexity="high"),
            "T004": _make_task("Write docs", complexity="low"),
        }
    )


@pytest.fixture
def graph_file(tmp_path: Path, scenario_doc: GraphDocument) -> Path:
    """The scenario document persisted to ``task-graph.json``."""
    path = tmp_path / "task-graph.json"
    TaskGraph.create(path, scenario_doc.project, scenario_doc.tasks)
    return path


@pytest.fixture
def job_project(tmp_path: Path, scenario_doc: GraphDocument) -> Path:
    """A project root holding job ``test`` with the scenario graph and spec files."""
    root = tmp_path / "project"
    root.mkdir()
    job = JobConfig(
        name="test",
        integration_branch=INTEGRATION_BRANCH,
        worktree_base="../worktrees",
        created_at="2026-01-01T00:00:00+00:00",
    )
    save_job(job, root)
    paths = resolve_job_paths("test", root)
    paths.output_dir.mkdir(parents=True)

    tasks = {}
    for tid, task in scenario_doc.tasks.items():
        task.file = f"{job.tasks_dir}/{tid}.md"
        write_text(root / task.file, f"# {tid}: {task.title}\n\nSpec body for {tid}.\n")
        tasks[tid] = task
    TaskGraph.create(paths.task_graph, scenario_doc.project, tasks)
    return root


@pytest.fixture
def read_json():
    """Read a JSON file from disk, bypassing the code under test."""

    def _read(path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    return _read
