"""Job configuration, job paths, worktree settings and fixed constants."""

from __future__ import annotations

import json
import subprocess
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from darkfactory.errors import JobError, MalformedDocument
from darkfactory.io_utils import atomic_write_text, read_text
from darkfactory.tasks.model import Tier


VERSION = "2.0.0"

JOBS_DIR = "jobs"
JOB_FILE = "job.json"
TASK_GRAPH_FILE = "task-graph.json"
JOB_BRANCH_PREFIX = "job/"
DEFAULT_WORKTREE_BASE = "../.df-worktrees"
DEFAULT_TIER = "heavy"

# Written into a worktree once failing tests for the task are committed.
SCAFFOLD_MARKER = ".df-scaffolds-ready"
# Evaluation result artifact: <output_dir>/<task_id>.<RESULT_EXT>
RESULT_EXT = "md"

# job.json fields that are not plain strings
_JOB_FIELD_TYPES: dict[str, type] = {
    "architecture_files": list,
    "failed_deps_unblock": bool,
}
_TIERS = frozenset(t.value for t in Tier)


@dataclass
class JobConfig:
    """Static per-job settings, persisted as ``jobs/<name>/job.json``."""

    name: str
    architecture_files: list[str] = field(default_factory=list)
    task_graph: str = ""
    tasks_dir: str = ""
    output_dir: str = ""
    integration_branch: str = ""
    worktree_base: str = DEFAULT_WORKTREE_BASE
    branch_prefix: str = ""
    # Default execution tier for the conductor; not read by the engine itself.
    tier: str = DEFAULT_TIER
    # Whether a failed upstream task unblocks its dependents.
    failed_deps_unblock: bool = True
    created_at: str = ""

    def __post_init__(self) -> None:
        base = f"{JOBS_DIR}/{self.name}"
        if not self.task_graph:
            self.task_graph = f"{base}/{TASK_GRAPH_FILE}"
        if not self.tasks_dir:
            self.tasks_dir = f"{base}/tasks"
        if not self.output_dir:
            self.output_dir = f"{base}/tasks/output"
        if not self.integration_branch:
            self.integration_branch = f"{JOB_BRANCH_PREFIX}{self.name}"
        if not self.branch_prefix:
            self.branch_prefix = f"df/{self.name}/"
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat(timespec="seconds")

    @classmethod
    def from_dict(cls, raw: Any, path: Path | str = "<memory>") -> JobConfig:
        if not isinstance(raw, dict):
            raise MalformedDocument(path, "job config must be a JSON object")
        if not isinstance(raw.get("name"), str) or not raw["name"]:
            raise MalformedDocument(path, "job config is missing 'name'")
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in raw:
                continue
            value = raw[f.name]
            expected = _JOB_FIELD_TYPES.get(f.name, str)
            if not isinstance(value, expected):
                raise MalformedDocument(
                    path, f"'{f.name}' must be {expected.__name__}, got {type(value).__name__}"
                )
            values[f.name] = value
        if not all(isinstance(a, str) for a in values.get("architecture_files", [])):
            raise MalformedDocument(path, "'architecture_files' must be a list of strings")
        if values.get("tier", DEFAULT_TIER) not in _TIERS:
            raise MalformedDocument(
                path, f"'tier' must be one of: {', '.join(sorted(_TIERS))}"
            )
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class JobPaths:
    job_dir: Path
    job_file: Path
    task_graph: Path
    tasks_dir: Path
    output_dir: Path


@dataclass(frozen=True)
class WorktreeConfig:
    """Where task worktrees live and how their branches are named."""

    project_root: Path
    worktree_base: Path
    branch_prefix: str
    integration_branch: str

    def worktree_dir(self, task_id: str) -> Path:
        return self.worktree_base / task_id

    def branch_name(self, task_id: str) -> str:
        return f"{self.branch_prefix}{task_id}"


def resolve_job_paths(job_name: str, project_root: Path) -> JobPaths:
    job_dir = project_root / JOBS_DIR / job_name
    return JobPaths(
        job_dir=job_dir,
        job_file=job_dir / JOB_FILE,
        task_graph=job_dir / TASK_GRAPH_FILE,
        tasks_dir=job_dir / "tasks",
        output_dir=job_dir / "tasks" / "output",
    )


def load_job(job_name: str, project_root: Path) -> JobConfig:
    job_file = resolve_job_paths(job_name, project_root).job_file
    if not job_file.is_file():
        raise JobError(f"Job '{job_name}' not found (expected {job_file})")
    try:
        raw = json.loads(read_text(job_file))
    except json.JSONDecodeError as exc:
        raise MalformedDocument(job_file, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    return JobConfig.from_dict(raw, job_file)


def save_job(job: JobConfig, project_root: Path) -> Path:
    job_file = resolve_job_paths(job.name, project_root).job_file
    job_file.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(job_file, json.dumps(job.to_dict(), indent=2) + "\n")
    return job_file


def require_job(job_name: str | None, project_root: Path) -> tuple[JobConfig, JobPaths]:
    """Load the named job, or explain how to find one when no name was given."""
    if not job_name:
        raise JobError(
            "--job <name> is required.\n\n"
            "To find the current job from your git branch, run:\n"
            "  dark-factory current-job"
        )
    return load_job(job_name, project_root), resolve_job_paths(job_name, project_root)


def worktree_config_from_job(job: JobConfig, project_root: Path) -> WorktreeConfig:
    return WorktreeConfig(
        project_root=project_root,
        worktree_base=(project_root / job.worktree_base).resolve(),
        branch_prefix=job.branch_prefix,
        integration_branch=job.integration_branch,
    )


def resolve_repo_root() -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path.cwd()
