"""Dark Factory CLI: one short-lived process per graph operation.

Installed as ``dark-factory`` console_script via pipx / pip. Every command
loads the task graph fresh, mutates it at most once per call, persists it
atomically and exits.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import click
from rich.markup import escape

from darkfactory import __version__
from darkfactory import log as glog
from darkfactory.config import (
    JobConfig,
    JobPaths,
    WorktreeConfig,
    require_job,
    resolve_repo_root,
    worktree_config_from_job,
)
from darkfactory.errors import DarkFactoryError
from darkfactory.git_ops import add_and_commit
from darkfactory.tasks.graph import TaskGraph
from darkfactory.tasks.model import Complexity, TaskStatus

STATUS_ICONS: dict[TaskStatus, str] = {
    TaskStatus.COMPLETE: "[+]",
    TaskStatus.FAILED: "[x]",
    TaskStatus.IN_PROGRESS: "[>]",
    TaskStatus.SKIPPED: "[-]",
    TaskStatus.PENDING: "[ ]",
}


class DarkFactoryGroup(click.Group):
    """Turn engine errors into a logged message and exit status 1."""

    def invoke(self, ctx: click.Context):  # type: ignore[no-untyped-def]
        try:
            return super().invoke(ctx)
        except (DarkFactoryError, OSError) as exc:
            glog.error(str(exc))
            ctx.exit(1)


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _split_ids(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


# ── Job context ──────────────────────────────────────────────────────


@dataclass
class JobContext:
    project_root: Path
    job: JobConfig
    paths: JobPaths

    @property
    def worktree_config(self) -> WorktreeConfig:
        return worktree_config_from_job(self.job, self.project_root)

    def load_graph(self) -> TaskGraph:
        return TaskGraph.load(self.paths.task_graph)

    def auto_commit(self, files: list[Path], message: str) -> None:
        if add_and_commit(files, message, cwd=self.project_root):
            glog.debug(f"Committed: {message}")


def _project_root(raw: Path | None) -> Path:
    return (raw if raw is not None else resolve_repo_root()).resolve()


def job_options(f: Callable) -> Callable:
    """Attach ``--job`` and ``--project-root`` and pass a :class:`JobContext` as ``jc``."""

    @click.option("--job", "job_name", envvar="DF_JOB", default=None, help="Job name")
    @click.option(
        "--project-root",
        type=click.Path(file_okay=False, path_type=Path),
        envvar="DF_PROJECT_ROOT",
        default=None,
        help="Project root directory (default: git toplevel or cwd)",
    )
    def wrapper(job_name: str | None, project_root: Path | None, **kwargs):  # type: ignore[no-untyped-def]
        root = _project_root(project_root)
        job, paths = require_job(job_name, root)
        return f(jc=JobContext(project_root=root, job=job, paths=paths), **kwargs)

    wrapper.__name__ = f.__name__
    wrapper.__doc__ = f.__doc__
    return wrapper


@click.group(cls=DarkFactoryGroup, context_settings=CONTEXT_SETTINGS)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="dark-factory")
def main(verbose: bool) -> None:
    """Dark Factory: task graph orchestration for agent-driven development.

    \b
    WORKFLOW:
      1. dark-factory init --name my-feature --architecture specs/ARCH.md
      2. dark-factory import-tasks extraction.json --job my-feature
      3. dark-factory ready --job my-feature
      4. dark-factory worktree create T001 --job my-feature
      5. dark-factory set-status T001 complete --job my-feature
      6. dark-factory worktree merge T001 --job my-feature
    """
    glog.set_verbose(verbose)


# ── Job setup ────────────────────────────────────────────────────────


@main.command()
@click.option("--name", required=True, help="Job name (will be sanitized)")
@click.option(
    "--architecture",
    "architecture",
    multiple=True,
    required=True,
    help="Path to an architecture/spec document (repeatable)",
)
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="DF_PROJECT_ROOT",
    default=None,
    help="Project root directory",
)
def init(name: str, architecture: tuple[str, ...], project_root: Path | None) -> None:
    """Initialize a new job and switch to its integration branch."""
    from darkfactory.config import JOB_BRANCH_PREFIX, resolve_job_paths
    from darkfactory.errors import JobError
    from darkfactory.git_ops import branch_exists, create_branch, output_of
    from darkfactory.jobs import init_job, sanitize_job_name

    root = _project_root(project_root)
    branch = f"{JOB_BRANCH_PREFIX}{sanitize_job_name(name)}"
    if branch_exists(branch, cwd=root):
        raise JobError(f"Branch {branch} already exists; check it out or pick another name")
    job = init_job(name, list(architecture), root)
    paths = resolve_job_paths(job.name, root)

    r = create_branch(job.integration_branch, cwd=root)
    if r.returncode != 0:
        glog.error(f"Failed to create branch {job.integration_branch}: {output_of(r).strip()}")
        sys.exit(1)

    add_and_commit([paths.job_file, paths.task_graph], f'feat: initialize job "{job.name}"', cwd=root)
    glog.success(f'Job "{job.name}" initialized on branch {job.integration_branch}')
    click.echo(f"Next: dark-factory import-tasks <extraction.json> --job {job.name}")


@main.command("current-job")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="DF_PROJECT_ROOT",
    default=None,
    help="Project root directory",
)
def current_job(project_root: Path | None) -> None:
    """Print the current job name from the git branch."""
    from darkfactory.git_ops import current_branch
    from darkfactory.jobs import parse_job_from_branch

    branch = current_branch(cwd=_project_root(project_root))
    if not branch:
        glog.error("Failed to determine current branch")
        sys.exit(1)
    job_name = parse_job_from_branch(branch)
    if not job_name:
        glog.error(
            f"Not on a job branch. Current branch: {branch}. "
            "Expected branch pattern: job/<job-name>"
        )
        sys.exit(1)
    click.echo(job_name)


@main.command("import-tasks")
@click.argument("extraction_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Print extracted tasks without writing files")
@job_options
def import_tasks(jc: JobContext, extraction_file: Path, dry_run: bool) -> None:
    """Write task spec files and a fresh task graph from an extraction JSON."""
    from darkfactory.jobs import read_extraction_file, write_job_task_files

    extraction = read_extraction_file(extraction_file)

    if dry_run:
        click.echo(f"Extracted {len(extraction.tasks)} tasks:")
        for t in extraction.tasks:
            deps = f" (deps: {', '.join(t.dependencies)})" if t.dependencies else ""
            click.echo(f"  {t.id}: {t.title}{deps} [{t.estimated_complexity.value}]")
        return

    written = write_job_task_files(extraction, jc.project_root, jc.job)
    jc.auto_commit(written, f'feat: extract {len(extraction.tasks)} tasks for job "{jc.job.name}"')
    glog.success(f'Imported {len(extraction.tasks)} tasks for job "{jc.job.name}"')


# ── Read-only views ──────────────────────────────────────────────────


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@job_options
def status(jc: JobContext, as_json: bool) -> None:
    """Show task graph summary."""
    from dataclasses import asdict

    from darkfactory.scheduler import blocked_by

    tg = jc.load_graph()
    summary = tg.summary()

    if as_json:
        click.echo(json.dumps({**asdict(summary), "remaining": tg.remaining_count()}))
        return

    glog.console.print(f"Project: [cyan]{escape(tg.project)}[/cyan]")
    glog.console.print(
        f"Total: {summary.total} | Pending: {summary.pending} | "
        f"In Progress: {summary.in_progress} | Complete: {summary.complete} | "
        f"Failed: {summary.failed} | Skipped: {summary.skipped}"
    )
    glog.console.print()
    for tid in tg.all_task_ids():
        task = tg.require_task(tid)
        icon = escape(STATUS_ICONS.get(task.status, "[ ]"))
        line = f"  {icon} {tid}: {escape(task.title)} ({task.complexity.value}, {task.tier.value})"
        if task.status == TaskStatus.PENDING:
            waiting = blocked_by(tg.document, tid)
            if waiting:
                line += f" [dim]waiting on {', '.join(waiting)}[/dim]"
        glog.console.print(line)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@job_options
def ready(jc: JobContext, as_json: bool) -> None:
    """List tasks ready for work (all dependencies terminal)."""
    tg = jc.load_graph()
    tasks = tg.ready_tasks(failed_unblocks=jc.job.failed_deps_unblock)

    if as_json:
        click.echo(json.dumps([t.to_dict() for t in tasks]))
        return

    if not tasks:
        glog.info("No tasks ready for work.")
        return

    glog.console.print(f"{len(tasks)} task(s) ready:\n")
    for t in tasks:
        glog.console.print(
            f"  {t.id}: {escape(t.title)} ({t.complexity.value} -> {t.tier.value})"
        )


@main.command()
@click.argument("task_id")
@job_options
def get(jc: JobContext, task_id: str) -> None:
    """Print a task's specification document."""
    from darkfactory.io_utils import read_text

    task = jc.load_graph().require_task(task_id)
    click.echo(read_text(jc.project_root / task.file))


@main.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@job_options
def dependents(jc: JobContext, task_id: str, as_json: bool) -> None:
    """List tasks that directly depend on TASK_ID."""
    tg = jc.load_graph()
    ids = tg.dependents(task_id)

    if as_json:
        click.echo(json.dumps(ids))
        return

    if not ids:
        glog.info(f"No tasks depend on {task_id}")
        return

    glog.console.print(f"Tasks depending on {task_id}:")
    for tid in ids:
        task = tg.get_task(tid)
        glog.console.print(f"  {tid}: {escape(task.title if task else tid)}")


@main.command("list")
@click.option("--after", "after", default=None, help="Tasks that transitively depend on this task")
@click.option("--before", "before", default=None, help="Tasks this task transitively depends on")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@job_options
def list_tasks(jc: JobContext, after: str | None, before: str | None, as_json: bool) -> None:
    """List tasks upstream or downstream of a task, with their spec contents."""
    from darkfactory.io_utils import read_text

    if after and before:
        raise click.UsageError("--after and --before are mutually exclusive")
    if not after and not before:
        raise click.UsageError("Provide either --after or --before")

    tg = jc.load_graph()
    anchor = after or before
    ids = tg.transitive_downstream(anchor) if after else tg.transitive_upstream(anchor)

    results: list[dict[str, object]] = []
    for tid in ids:
        task = tg.get_task(tid)
        if task is None:
            continue
        try:
            content = read_text(jc.project_root / task.file)
        except OSError:
            content = f"[File not found: {task.file}]"
        results.append(
            {
                "id": tid,
                "title": task.title,
                "status": task.status.value,
                "complexity": task.complexity.value,
                "dependencies": list(task.dependencies),
                "content": content,
            }
        )

    if as_json:
        click.echo(json.dumps(results, indent=2))
        return

    if not results:
        glog.info(f"No tasks {'after' if after else 'before'} {anchor}")
        return

    for r in results:
        click.echo(f"--- {r['id']}: {r['title']} [{r['status']}] ---")
        click.echo(r["content"])
        click.echo()


@main.command("task-state")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@job_options
def task_state(jc: JobContext, task_id: str, as_json: bool) -> None:
    """Show a task's recovery state derived from durable artifacts."""
    from darkfactory.recovery import derive_state

    state = derive_state(
        task_id,
        jc.load_graph().document,
        jc.worktree_config.worktree_base,
        jc.paths.output_dir,
    )
    if as_json:
        click.echo(json.dumps({"taskId": task_id, "state": state.value}))
    else:
        click.echo(f"{task_id}: {state.value}")


# ── Mutations ────────────────────────────────────────────────────────


@main.command("set-status")
@click.argument("task_id")
@click.argument("new_status", metavar="STATUS")
@job_options
def set_status(jc: JobContext, task_id: str, new_status: str) -> None:
    """Update a task's status (pending, in-progress, complete, failed, skipped)."""
    parsed = TaskStatus.parse(new_status)
    tg = jc.load_graph()
    tg.set_status(task_id, parsed)
    glog.success(f"{task_id} -> {parsed.value}")
    jc.auto_commit([tg.path], f"dark-factory: set {task_id} status to {parsed.value}")


@main.command("add-task")
@click.option("--title", required=True, help="Task title")
@click.option("--id", "task_id", default="", help="Task ID (auto-generated if omitted)")
@click.option("--deps", default="", help="Comma-separated dependency task IDs")
@click.option(
    "--complexity",
    type=click.Choice([c.value for c in Complexity]),
    default=Complexity.MEDIUM.value,
    show_default=True,
)
@job_options
def add_task(jc: JobContext, title: str, task_id: str, deps: str, complexity: str) -> None:
    """Create a task spec file and add the task to the graph."""
    from darkfactory.io_utils import write_text
    from darkfactory.jobs import render_task_spec
    from darkfactory.tasks.model import Task

    tg = jc.load_graph()
    tid = task_id or tg.next_task_id()
    dep_ids = _split_ids(deps)
    level = Complexity.parse(complexity)

    rel_path = f"{jc.job.tasks_dir}/{tid}.md"
    spec_path = jc.project_root / rel_path
    spec_path.parent.mkdir(parents=True, exist_ok=True)
    write_text(spec_path, render_task_spec(tid, title, dep_ids, level))

    tg.add_task(tid, Task(title=title, dependencies=dep_ids, file=rel_path, complexity=level))
    glog.success(f"Created {tid}: {title}")
    click.echo(f"  File: {rel_path}")
    jc.auto_commit([tg.path, spec_path], f"dark-factory: add task {tid}")


@main.command("amend-task")
@click.argument("task_id")
@click.option("--title", default=None, help="New title")
@click.option("--complexity", type=click.Choice([c.value for c in Complexity]), default=None)
@click.option("--deps", default=None, help="Replace dependencies (comma-separated)")
@job_options
def amend_task(
    jc: JobContext, task_id: str, title: str | None, complexity: str | None, deps: str | None
) -> None:
    """Change selected fields of an existing task."""
    updates: dict[str, object] = {}
    if title is not None:
        updates["title"] = title
    if complexity is not None:
        updates["complexity"] = complexity
    if deps is not None:
        updates["dependencies"] = _split_ids(deps)
    if not updates:
        raise click.UsageError("Nothing to amend: pass --title, --complexity or --deps")

    tg = jc.load_graph()
    tg.amend_task(task_id, **updates)
    glog.success(f"Amended {task_id}: {', '.join(sorted(updates))}")
    jc.auto_commit([tg.path], f"dark-factory: amend task {task_id}")


@main.command("add-dep")
@click.argument("task_id")
@click.argument("dep_id")
@job_options
def add_dep(jc: JobContext, task_id: str, dep_id: str) -> None:
    """Make TASK_ID depend on DEP_ID."""
    tg = jc.load_graph()
    if tg.add_dep(task_id, dep_id):
        glog.success(f"{task_id} now depends on {dep_id}")
        jc.auto_commit([tg.path], f"dark-factory: add dependency {task_id} -> {dep_id}")
    else:
        glog.info(f"{task_id} already depends on {dep_id}")


@main.command("move-deps")
@click.option("--from", "from_id", required=True, help="Task ID to replace in dependency lists")
@click.option("--to", "to_ids", required=True, help="Comma-separated replacement task IDs")
@job_options
def move_deps(jc: JobContext, from_id: str, to_ids: str) -> None:
    """Rewire dependencies from one task to its replacement tasks."""
    targets = _split_ids(to_ids)
    tg = jc.load_graph()
    rewired = tg.move_deps(from_id, targets)
    glog.success(f"Rewired {len(rewired)} task(s) from {from_id} -> {', '.join(targets)}")
    for tid in rewired:
        click.echo(f"  Updated: {tid}")
    if rewired:
        jc.auto_commit([tg.path], f"dark-factory: move deps from {from_id} to {','.join(targets)}")


@main.command()
@click.argument("task_id")
@job_options
def attempt(jc: JobContext, task_id: str) -> None:
    """Record one more execution attempt for TASK_ID and print the new count."""
    tg = jc.load_graph()
    count = tg.increment_attempts(task_id)
    click.echo(str(count))
    jc.auto_commit([tg.path], f"dark-factory: {task_id} attempt {count}")


@main.command("reset-interrupted")
@job_options
def reset_interrupted(jc: JobContext) -> None:
    """Return every in-progress task to pending after a crash."""
    tg = jc.load_graph()
    count = tg.reset_interrupted_tasks()
    if count:
        glog.warn(f"Reset {count} interrupted task(s) to pending")
        jc.auto_commit([tg.path], f"dark-factory: reset {count} interrupted task(s)")
    else:
        glog.info("No interrupted tasks")


# ── Worktrees ────────────────────────────────────────────────────────


@main.group()
def worktree() -> None:
    """Manage git worktrees for tasks."""


@worktree.command("create")
@click.argument("task_id")
@job_options
def worktree_create(jc: JobContext, task_id: str) -> None:
    """Create a worktree and branch for TASK_ID; prints its path."""
    from darkfactory.worktree import create_worktree

    click.echo(str(create_worktree(task_id, jc.worktree_config)))


@worktree.command("remove")
@click.argument("task_id")
@job_options
def worktree_remove(jc: JobContext, task_id: str) -> None:
    """Remove TASK_ID's worktree and branch."""
    from darkfactory.worktree import remove_worktree

    remove_worktree(task_id, jc.worktree_config)
    glog.success(f"Removed worktree for {task_id}")


@worktree.command("merge")
@click.argument("task_id")
@job_options
def worktree_merge(jc: JobContext, task_id: str) -> None:
    """Squash-merge TASK_ID's branch into the integration branch."""
    from darkfactory.worktree import merge_task

    if not merge_task(task_id, jc.worktree_config, jc.load_graph()):
        sys.exit(1)


@worktree.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@job_options
def worktree_list(jc: JobContext, as_json: bool) -> None:
    """List task worktrees that exist on disk."""
    from darkfactory.worktree import list_worktrees

    base = jc.worktree_config.worktree_base
    ids = list_worktrees(base)

    if as_json:
        click.echo(json.dumps({"worktreeBase": str(base), "tasks": ids}))
        return

    if not ids:
        glog.info("No active worktrees")
        return

    click.echo(f"Worktrees in {base}:")
    for tid in ids:
        click.echo(f"  {tid}")
