"""CLI tests: every command against a real job directory via Click's CliRunner."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest
from click.testing import CliRunner

from darkfactory import __version__
from darkfactory.cli import main
from darkfactory.io_utils import read_text, write_text
from darkfactory.tasks.graph import TaskGraph


@pytest.fixture
def cli_runner(monkeypatch):
    """Click CliRunner with job env vars cleared."""
    monkeypatch.delenv("DF_JOB", raising=False)
    monkeypatch.delenv("DF_PROJECT_ROOT", raising=False)
    return CliRunner()


@pytest.fixture
def run(cli_runner, job_project: Path):
    """Invoke a command against the ``test`` job in ``job_project``."""

    def _run(*args: str):
        return cli_runner.invoke(main, [*args, "--job", "test", "--project-root", str(job_project)])

    return _run


def _graph(job_project: Path) -> TaskGraph:
    return TaskGraph.load(job_project / "jobs" / "test" / "task-graph.json")


# ── Main entry and help ────────────────────────────────────────────────


class TestCliHelpAndVersion:
    def test_help(self, cli_runner):
        r = cli_runner.invoke(main, ["-h"])
        assert r.exit_code == 0
        assert "WORKFLOW" in r.output
        for command in ("ready", "set-status", "move-deps", "worktree", "task-state"):
            assert command in r.output

    def test_version(self, cli_runner):
        r = cli_runner.invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_worktree_help(self, cli_runner):
        r = cli_runner.invoke(main, ["worktree", "--help"])
        assert r.exit_code == 0
        for command in ("create", "remove", "merge", "list"):
            assert command in r.output


# ── Job resolution ───────────────────────────────────────────────────


class TestJobResolution:
    def test_missing_job_flag(self, cli_runner, job_project: Path):
        r = cli_runner.invoke(main, ["ready", "--project-root", str(job_project)])
        assert r.exit_code == 1
        assert "--job <name> is required" in r.output

    def test_unknown_job(self, cli_runner, job_project: Path):
        r = cli_runner.invoke(main, ["ready", "--job", "ghost", "--project-root", str(job_project)])
        assert r.exit_code == 1
        assert "ghost" in r.output

    def test_env_vars(self, cli_runner, job_project: Path):
        r = cli_runner.invoke(
            main, ["ready", "--json"], env={"DF_JOB": "test", "DF_PROJECT_ROOT": str(job_project)}
        )
        assert r.exit_code == 0, r.output
        assert [t["id"] for t in json.loads(r.output)] == ["T002", "T004"]

    def test_malformed_graph(self, run, job_project: Path):
        write_text(job_project / "jobs" / "test" / "task-graph.json", "{broken")
        r = run("status")
        assert r.exit_code == 1
        assert "Malformed document" in r.output


# ── Read-only views ──────────────────────────────────────────────────


class TestViews:
    def test_status_text(self, run):
        r = run("status")
        assert r.exit_code == 0, r.output
        assert "Total: 4" in r.output
        assert "T003: Implement feature" in r.output
        assert "waiting on T002" in r.output

    def test_status_json(self, run):
        r = run("status", "--json")
        data = json.loads(r.output)
        assert data == {
            "total": 4,
            "pending": 3,
            "in_progress": 0,
            "complete": 1,
            "failed": 0,
            "skipped": 0,
            "remaining": 3,
        }

    def test_ready_json(self, run):
        r = run("ready", "--json")
        assert r.exit_code == 0, r.output
        assert json.loads(r.output) == [
            {
                "id": "T002",
                "title": "Build foundation",
                "complexity": "medium",
                "tier": "heavy",
                "file": "jobs/test/tasks/T002.md",
            },
            {
                "id": "T004",
                "title": "Write docs",
                "complexity": "low",
                "tier": "light",
                "file": "jobs/test/tasks/T004.md",
            },
        ]

    def test_ready_text(self, run):
        r = run("ready")
        assert "T004: Write docs (low -> light)" in r.output

    def test_ready_empty(self, run, job_project: Path):
        tg = _graph(job_project)
        for tid in ("T002", "T004"):
            tg.set_status(tid, "in-progress")
        r = run("ready")
        assert r.exit_code == 0
        assert "No tasks ready for work." in r.output

    def test_ready_respects_failed_policy(self, run, job_project: Path):
        job_file = job_project / "jobs" / "test" / "job.json"
        raw = json.loads(read_text(job_file))
        raw["failed_deps_unblock"] = False
        write_text(job_file, json.dumps(raw))
        _graph(job_project).set_status("T001", "failed")

        r = run("ready", "--json")
        assert [t["id"] for t in json.loads(r.output)] == ["T004"]

    def test_get_prints_spec(self, run):
        r = run("get", "T002")
        assert r.exit_code == 0
        assert "Spec body for T002." in r.output

    def test_get_unknown(self, run):
        r = run("get", "T999")
        assert r.exit_code == 1
        assert "Task T999 not found" in r.output

    def test_dependents(self, run):
        assert json.loads(run("dependents", "T001", "--json").output) == ["T002", "T003"]
        r = run("dependents", "T004")
        assert "No tasks depend on T004" in r.output

    def test_list_after(self, run):
        r = run("list", "--after", "T001", "--json")
        assert r.exit_code == 0, r.output
        data = json.loads(r.output)
        assert [t["id"] for t in data] == ["T002", "T003"]
        assert data[0]["content"].startswith("# T002: Build foundation")

    def test_list_before_text(self, run):
        r = run("list", "--before", "T003")
        assert "--- T001: Init workspace [complete] ---" in r.output
        assert "--- T002: Build foundation [pending] ---" in r.output

    def test_list_missing_spec_file(self, run, job_project: Path):
        (job_project / "jobs" / "test" / "tasks" / "T002.md").unlink()
        data = json.loads(run("list", "--after", "T001", "--json").output)
        assert data[0]["content"] == "[File not found: jobs/test/tasks/T002.md]"

    def test_list_flags_exclusive(self, run):
        assert run("list", "--after", "T001", "--before", "T003").exit_code == 2
        assert run("list").exit_code == 2

    def test_task_state(self, run, job_project: Path, tmp_path: Path):
        assert json.loads(run("task-state", "T002", "--json").output) == {
            "taskId": "T002",
            "state": "pending",
        }
        _graph(job_project).set_status("T002", "in-progress")
        (tmp_path / "worktrees" / "T002").mkdir(parents=True)
        assert run("task-state", "T002").output.strip() == "T002: worktree-created"

        write_text(job_project / "jobs" / "test" / "tasks" / "output" / "T002.md", "PASS\n")
        assert run("task-state", "T002").output.strip() == "T002: evaluating"
        assert run("task-state", "T001").output.strip() == "T001: complete"

    def test_task_state_unknown(self, run):
        assert run("task-state", "T999").exit_code == 1


# ── Mutations ────────────────────────────────────────────────────────


class TestMutations:
    def test_set_status(self, run, job_project: Path):
        r = run("set-status", "T002", "in-progress")
        assert r.exit_code == 0, r.output
        assert "T002 -> in-progress" in r.output
        assert _graph(job_project).require_task("T002").status.value == "in-progress"

    def test_set_status_invalid(self, run, job_project: Path):
        before = read_text(job_project / "jobs" / "test" / "task-graph.json")
        r = run("set-status", "T002", "done")
        assert r.exit_code == 1
        assert 'Invalid status "done"' in r.output
        assert read_text(job_project / "jobs" / "test" / "task-graph.json") == before

    def test_set_status_unknown_task(self, run):
        r = run("set-status", "T999", "complete")
        assert r.exit_code == 1
        assert "Task T999 not found" in r.output

    def test_add_task(self, run, job_project: Path):
        r = run("add-task", "--title", "Add cache", "--deps", "T002, T004", "--complexity", "low")
        assert r.exit_code == 0, r.output
        assert "Created T005: Add cache" in r.output
        assert "File: jobs/test/tasks/T005.md" in r.output

        task = _graph(job_project).require_task("T005")
        assert task.dependencies == ["T002", "T004"]
        assert task.complexity.value == "low"
        spec = read_text(job_project / "jobs" / "test" / "tasks" / "T005.md")
        assert spec.startswith("# T005: Add cache")

    def test_add_task_bad_complexity(self, run):
        assert run("add-task", "--title", "x", "--complexity", "epic").exit_code == 2

    def test_amend_task(self, run, job_project: Path):
        r = run("amend-task", "T004", "--title", "Write more docs", "--deps", "T001")
        assert r.exit_code == 0, r.output
        task = _graph(job_project).require_task("T004")
        assert task.title == "Write more docs"
        assert task.dependencies == ["T001"]

    def test_amend_task_nothing(self, run):
        assert run("amend-task", "T004").exit_code == 2

    def test_add_dep(self, run, job_project: Path):
        assert run("add-dep", "T004", "T002").exit_code == 0
        r = run("add-dep", "T004", "T002")
        assert "already depends on" in r.output
        assert _graph(job_project).require_task("T004").dependencies == ["T002"]

    def test_move_deps(self, run, job_project: Path):
        r = run("move-deps", "--from", "T001", "--to", "T010,T011")
        assert r.exit_code == 0, r.output
        assert "Rewired 2 task(s)" in r.output
        assert "Updated: T002" in r.output
        assert "Updated: T003" in r.output
        assert _graph(job_project).require_task("T003").dependencies == ["T010", "T011", "T002"]

    def test_attempt(self, run, job_project: Path):
        assert run("attempt", "T002").output.strip() == "1"
        assert run("attempt", "T002").output.strip() == "2"
        assert _graph(job_project).require_task("T002").attempts == 2

    def test_reset_interrupted(self, run, job_project: Path):
        _graph(job_project).set_status("T002", "in-progress")
        r = run("reset-interrupted")
        assert "Reset 1 interrupted task(s)" in r.output
        assert _graph(job_project).require_task("T002").status.value == "pending"
        assert "No interrupted tasks" in run("reset-interrupted").output


# ── Import ───────────────────────────────────────────────────────────


class TestImportTasks:
    @pytest.fixture
    def extraction(self, tmp_path: Path) -> Path:
        path = tmp_path / "extraction.json"
        write_text(
            path,
            json.dumps(
                {
                    "project": "demo",
                    "tasks": [
                        {"id": "T001", "title": "Init", "estimated_complexity": "low"},
                        {"id": "T002", "title": "Build", "dependencies": ["T001"]},
                    ],
                }
            ),
        )
        return path

    def test_dry_run_writes_nothing(self, run, job_project: Path, extraction: Path):
        before = read_text(job_project / "jobs" / "test" / "task-graph.json")
        r = run("import-tasks", str(extraction), "--dry-run")
        assert r.exit_code == 0, r.output
        assert "Extracted 2 tasks:" in r.output
        assert "T002: Build (deps: T001) [medium]" in r.output
        assert read_text(job_project / "jobs" / "test" / "task-graph.json") == before

    def test_import_replaces_graph(self, run, job_project: Path, extraction: Path):
        r = run("import-tasks", str(extraction))
        assert r.exit_code == 0, r.output
        tg = _graph(job_project)
        assert tg.project == "demo"
        assert tg.all_task_ids() == ["T001", "T002"]
        assert "## Acceptance Criteria" in read_text(job_project / "jobs" / "test" / "tasks" / "T002.md")


# ── Git-backed commands ──────────────────────────────────────────────


def _git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True)


class TestInitAndCurrentJob:
    def test_init_creates_job_and_branch(self, cli_runner, git_repo: Path):
        r = cli_runner.invoke(
            main,
            ["init", "--name", "My Feature", "--architecture", "specs/ARCH.md", "--project-root", str(git_repo)],
        )
        assert r.exit_code == 0, r.output
        assert (git_repo / "jobs" / "my-feature" / "job.json").is_file()
        assert _git(git_repo, "branch", "--show-current").stdout.strip() == "job/my-feature"
        assert "initialize job" in _git(git_repo, "log", "-1", "--format=%s").stdout

        r = cli_runner.invoke(main, ["current-job", "--project-root", str(git_repo)])
        assert r.exit_code == 0
        assert r.output.strip() == "my-feature"

    def test_init_twice_fails(self, cli_runner, git_repo: Path):
        args = ["init", "--name", "dup", "--architecture", "A.md", "--project-root", str(git_repo)]
        assert cli_runner.invoke(main, args).exit_code == 0
        r = cli_runner.invoke(main, args)
        assert r.exit_code == 1
        assert "already exists" in r.output

    def test_init_refuses_existing_branch_before_scaffolding(self, cli_runner, git_repo: Path):
        assert _git(git_repo, "branch", "job/dup").returncode == 0
        r = cli_runner.invoke(
            main, ["init", "--name", "Dup", "--architecture", "A.md", "--project-root", str(git_repo)]
        )
        assert r.exit_code == 1
        assert "Branch job/dup already exists" in r.output
        assert not (git_repo / "jobs" / "dup").exists()
        assert _git(git_repo, "branch", "--show-current").stdout.strip() == "develop"

    def test_current_job_off_job_branch(self, cli_runner, git_repo: Path):
        r = cli_runner.invoke(main, ["current-job", "--project-root", str(git_repo)])
        assert r.exit_code == 1
        assert "Not on a job branch" in r.output


class TestWorktreeCommands:
    @pytest.fixture
    def git_job(self, cli_runner, git_repo: Path) -> Path:
        r = cli_runner.invoke(
            main, ["init", "--name", "wt", "--architecture", "A.md", "--project-root", str(git_repo)]
        )
        assert r.exit_code == 0, r.output
        r = cli_runner.invoke(
            main,
            ["add-task", "--title", "Parser", "--job", "wt", "--project-root", str(git_repo)],
        )
        assert r.exit_code == 0, r.output
        return git_repo

    def _wt(self, cli_runner, repo: Path, *args: str):
        return cli_runner.invoke(main, ["worktree", *args, "--job", "wt", "--project-root", str(repo)])

    def test_create_merge_remove(self, cli_runner, git_job: Path):
        r = self._wt(cli_runner, git_job, "create", "T001")
        assert r.exit_code == 0, r.output
        path = Path(r.output.strip().splitlines()[-1])
        assert path.name == "T001"
        assert path.is_dir()

        listing = json.loads(self._wt(cli_runner, git_job, "list", "--json").output)
        assert listing["tasks"] == ["T001"]

        (path / "parser.py").write_text("x = 1\n")
        _git(path, "add", "parser.py")
        _git(path, "commit", "-m", "wip")

        r = self._wt(cli_runner, git_job, "merge", "T001")
        assert r.exit_code == 0, r.output
        assert _git(git_job, "log", "-1", "--format=%s").stdout.strip() == "feat(T001): Parser"

        r = self._wt(cli_runner, git_job, "remove", "T001")
        assert r.exit_code == 0, r.output
        assert not path.exists()
        assert "No active worktrees" in self._wt(cli_runner, git_job, "list").output

    def test_merge_without_changes_exits_1(self, cli_runner, git_job: Path):
        assert self._wt(cli_runner, git_job, "create", "T001").exit_code == 0
        assert self._wt(cli_runner, git_job, "merge", "T001").exit_code == 1
