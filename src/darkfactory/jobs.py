"""Jobs: naming, scaffolding, task spec documents and extraction import."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from darkfactory.config import JOB_BRANCH_PREFIX, JobConfig, resolve_job_paths, save_job
from darkfactory.errors import InvalidComplexity, JobError, MalformedDocument
from darkfactory.io_utils import read_text, write_text
from darkfactory.tasks.graph import TaskGraph
from darkfactory.tasks.model import Complexity, Task, dedupe


def sanitize_job_name(text: str) -> str:
    """Convert free text to a branch-safe job name (lowercase, hyphens)."""
    name = text.lower().strip()
    name = re.sub(r"[\s_]+", "-", name)
    name = re.sub(r"[^a-z0-9-]", "", name)
    name = re.sub(r"-{2,}", "-", name).strip("-")
    if not name:
        raise JobError("Job name must contain at least one alphanumeric character")
    return name


def parse_job_from_branch(branch: str) -> str | None:
    """``job/<name>`` -> ``<name>``; anything else -> ``None``."""
    if not branch.startswith(JOB_BRANCH_PREFIX):
        return None
    return branch[len(JOB_BRANCH_PREFIX):] or None


def init_job(name: str, architecture_files: list[str], project_root: Path) -> JobConfig:
    """Create ``jobs/<name>/`` with ``job.json``, an empty graph and the output dir."""
    job_name = sanitize_job_name(name)
    paths = resolve_job_paths(job_name, project_root)
    if paths.job_dir.is_dir():
        raise JobError(f"Job '{job_name}' already exists")

    paths.output_dir.mkdir(parents=True, exist_ok=True)
    job = JobConfig(name=job_name, architecture_files=list(architecture_files))
    save_job(job, project_root)
    TaskGraph.create(paths.task_graph, project=job_name)
    return job


# ── Task spec documents ─────────────────────────────────────────────

_PLACEHOLDER = "[TODO: {}]"


def _bullets(items: list[str], template: str = "- `{}`") -> str:
    return "\n".join(template.format(i) for i in items)


def render_task_spec(
    task_id: str,
    title: str,
    dependencies: list[str],
    complexity: Complexity,
    *,
    description: str = "",
    files: list[str] | None = None,
    implementation_details: str = "",
    acceptance_criteria: str = "",
    verification_steps: list[str] | None = None,
    context_files: list[str] | None = None,
) -> str:
    """Markdown body of a task specification document."""
    deps = ", ".join(dependencies) if dependencies else "None"
    sections = [
        ("Description", description or _PLACEHOLDER.format("Add description")),
        ("Files Created/Modified", _bullets(files) if files else _PLACEHOLDER.format("List files")),
        (
            "Implementation Details",
            implementation_details or _PLACEHOLDER.format("Add implementation details"),
        ),
        (
            "Acceptance Criteria",
            acceptance_criteria or _PLACEHOLDER.format("Define acceptance criteria"),
        ),
        (
            "Verification Steps",
            _bullets(verification_steps, "- [ ] {}")
            if verification_steps
            else _PLACEHOLDER.format("Define verification steps"),
        ),
        (
            "Context Files",
            _bullets(context_files) if context_files else _PLACEHOLDER.format("List context files"),
        ),
    ]
    lines = [
        f"# {task_id}: {title}",
        "",
        f"**Dependencies**: {deps}",
        f"**Estimated Complexity**: {complexity.value.capitalize()}",
        "",
    ]
    for heading, body in sections:
        lines += [f"## {heading}", "", body, ""]
    return "\n".join(lines)


# ── Extraction import ───────────────────────────────────────────────

@dataclass
class ExtractedTask:
    id: str
    title: str
    description: str = ""
    dependencies: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    acceptance_criteria: str = ""
    verification_steps: list[str] = field(default_factory=list)
    context_files: list[str] = field(default_factory=list)
    estimated_complexity: Complexity = Complexity.MEDIUM
    implementation_details: str = ""


@dataclass
class Extraction:
    project: str
    tasks: list[ExtractedTask] = field(default_factory=list)


def _str_list(raw: dict[str, Any], key: str, path: Path) -> list[str]:
    value = raw.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedDocument(path, f"task {raw['id']}: '{key}' must be a list of strings")
    return list(value)


def _extracted_task(raw: Any, path: Path) -> ExtractedTask:
    if not isinstance(raw, dict) or not raw.get("id") or not raw.get("title"):
        raise MalformedDocument(path, "every task needs an 'id' and a 'title'")
    try:
        complexity = Complexity.parse(raw.get("estimated_complexity", "medium"))
    except InvalidComplexity as exc:
        raise MalformedDocument(path, f"task {raw['id']}: {exc}") from exc
    return ExtractedTask(
        id=str(raw["id"]),
        title=str(raw["title"]),
        description=str(raw.get("description", "")),
        dependencies=_str_list(raw, "dependencies", path),
        files=_str_list(raw, "files", path),
        acceptance_criteria=str(raw.get("acceptance_criteria", "")),
        verification_steps=_str_list(raw, "verification_steps", path),
        context_files=_str_list(raw, "context_files", path),
        estimated_complexity=complexity,
        implementation_details=str(raw.get("implementation_details", "")),
    )


def read_extraction_file(path: Path) -> Extraction:
    """Parse an extraction result written by an external agent."""
    try:
        raw = json.loads(read_text(path))
    except json.JSONDecodeError as exc:
        raise MalformedDocument(path, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("tasks"), list):
        raise MalformedDocument(path, "extraction must be an object with a 'tasks' list")
    return Extraction(
        project=str(raw.get("project", "")),
        tasks=[_extracted_task(t, path) for t in raw["tasks"]],
    )


def write_job_task_files(
    extraction: Extraction,
    project_root: Path,
    job: JobConfig,
) -> list[Path]:
    """Write one spec file per task and a fresh graph. Returns every path written."""
    paths = resolve_job_paths(job.name, project_root)
    tasks_dir = project_root / job.tasks_dir
    tasks_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    tasks: dict[str, Task] = {}
    for t in extraction.tasks:
        spec_path = tasks_dir / f"{t.id}.md"
        write_text(
            spec_path,
            render_task_spec(
                t.id,
                t.title,
                t.dependencies,
                t.estimated_complexity,
                description=t.description,
                files=t.files,
                implementation_details=t.implementation_details,
                acceptance_criteria=t.acceptance_criteria,
                verification_steps=t.verification_steps,
                context_files=t.context_files,
            ),
        )
        written.append(spec_path)
        tasks[t.id] = Task(
            title=t.title,
            dependencies=dedupe(t.dependencies),
            file=f"{job.tasks_dir}/{t.id}.md",
            complexity=t.estimated_complexity,
        )

    TaskGraph.create(paths.task_graph, project=extraction.project or job.name, tasks=tasks)
    written.append(paths.task_graph)
    return written
