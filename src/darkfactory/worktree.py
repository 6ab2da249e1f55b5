"""Worktree lifecycle: one isolated working copy and branch per task.

``create`` and ``remove`` are idempotent, so a crashed attempt can simply
be repeated. ``merge`` never leaves a half-merged tree behind: a conflict
is aborted and reported as ``False``.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

from darkfactory import git_ops, log
from darkfactory.config import WorktreeConfig
from darkfactory.errors import (
    MergeConflict,
    PushFailure,
    WorktreeCreateFailure,
    looks_like_branch_exists,
    looks_like_merge_conflict,
    looks_like_nothing_to_commit,
)
from darkfactory.tasks.graph import TaskGraph

TASK_ID_RE = re.compile(r"^T\d+$")


def _force_remove_dir(worktree_dir: Path, root: Path) -> None:
    git_ops.worktree_remove(worktree_dir, cwd=root)
    # Leftovers from a crash that git no longer tracks as a worktree
    if worktree_dir.exists():
        shutil.rmtree(worktree_dir, ignore_errors=True)
    git_ops.worktree_prune(cwd=root)


def create_worktree(task_id: str, config: WorktreeConfig) -> Path:
    """Create ``<worktree_base>/<task_id>`` on a fresh ``<prefix><task_id>`` branch.

    Any previous worktree at that path is removed first. If the branch already
    exists it is force-deleted and creation is retried once.
    Raises ``WorktreeCreateFailure`` when the retry fails too.
    """
    root = config.project_root
    branch = config.branch_name(task_id)
    worktree_dir = config.worktree_dir(task_id)

    _force_remove_dir(worktree_dir, root)
    worktree_dir.parent.mkdir(parents=True, exist_ok=True)

    r = git_ops.worktree_add_new_branch(worktree_dir, branch, config.integration_branch, cwd=root)
    if r.returncode != 0:
        first = git_ops.output_of(r)
        if looks_like_branch_exists(first):
            log.debug(f"Branch {branch} already exists, deleting and retrying")
        else:
            log.warn(f"Worktree creation for {task_id} failed, retrying: {first.strip()}")
        git_ops.delete_branch(branch, cwd=root)
        r = git_ops.worktree_add_new_branch(worktree_dir, branch, config.integration_branch, cwd=root)
        if r.returncode != 0:
            raise WorktreeCreateFailure(task_id, first + git_ops.output_of(r))

    log.info(f"Created worktree for {task_id} at {worktree_dir}")
    return worktree_dir


def remove_worktree(task_id: str, config: WorktreeConfig) -> None:
    """Force-remove the task's worktree and branch; absent targets are fine."""
    root = config.project_root
    _force_remove_dir(config.worktree_dir(task_id), root)
    if git_ops.delete_branch(config.branch_name(task_id), cwd=root):
        log.debug(f"Deleted branch {config.branch_name(task_id)}")


def _squash(task_id: str, branch: str, root: Path) -> None:
    r = git_ops.merge_squash(branch, cwd=root)
    if r.returncode != 0:
        raise MergeConflict(task_id, git_ops.conflicted_files(cwd=root), git_ops.output_of(r))


def _push(branch: str, root: Path) -> None:
    r = git_ops.push(branch, cwd=root)
    if r.returncode != 0:
        raise PushFailure(branch, git_ops.output_of(r))


def merge_task(task_id: str, config: WorktreeConfig, graph: TaskGraph) -> bool:
    """Squash-merge the task branch into the integration branch.

    Returns ``False`` on a conflict (after aborting the merge) or when the
    branch carries no changes. A failed push only logs a warning: the local
    commit stands and the next merge pushes again.
    """
    root = config.project_root
    branch = config.branch_name(task_id)
    task = graph.get_task(task_id)
    title = task.title if task else task_id

    if git_ops.current_branch(cwd=root) != config.integration_branch:
        r = git_ops.checkout(config.integration_branch, cwd=root)
        if r.returncode != 0:
            log.error(
                f"Cannot switch to {config.integration_branch}: {git_ops.output_of(r).strip()}"
            )
            return False

    try:
        _squash(task_id, branch, root)
    except MergeConflict as exc:
        if looks_like_merge_conflict(exc.output):
            log.error(str(exc))
        else:
            log.error(f"Merge of {branch} failed: {exc.output.strip()}")
        git_ops.abort_merge(cwd=root)
        return False

    r = git_ops.commit(f"feat({task_id}): {title}", cwd=root)
    if r.returncode != 0:
        if looks_like_nothing_to_commit(git_ops.output_of(r)):
            log.warn(f"{task_id}: no changes to merge")
        else:
            log.warn(f"{task_id}: commit failed: {git_ops.output_of(r).strip()}")
        return False

    try:
        _push(config.integration_branch, root)
    except PushFailure as exc:
        log.warn(f"{task_id}: push failed (will retry on next merge)")
        log.debug(exc.output.strip())

    log.success(f"Merged {task_id} into {config.integration_branch}")
    return True


def list_worktrees(worktree_base: Path) -> list[str]:
    """Task ids that currently have a worktree directory under *worktree_base*."""
    if not worktree_base.is_dir():
        return []
    return sorted(
        entry.name
        for entry in worktree_base.iterdir()
        if TASK_ID_RE.match(entry.name) and entry.is_dir()
    )
