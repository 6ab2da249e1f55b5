"""Git operations: worktrees, branches, squash merges, commits."""

from __future__ import annotations

import subprocess
from pathlib import Path

from darkfactory import log


def _git(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Run a git command against the repository at *cwd*, capturing output."""
    cmd = ["git"]
    if cwd is not None:
        cmd += ["-C", str(cwd)]
    cmd += list(args)
    log.debug(f"$ {' '.join(cmd)}")
    return subprocess.run(cmd, capture_output=True, text=True)


def output_of(r: subprocess.CompletedProcess[str]) -> str:
    """Combined stdout + stderr of a finished git call."""
    return (r.stdout or "") + (r.stderr or "")


def current_branch(cwd: Path | None = None) -> str:
    """Name of the checked-out branch, or ``""`` on a detached HEAD / error."""
    r = _git("branch", "--show-current", cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 else ""


def branch_exists(name: str, cwd: Path | None = None) -> bool:
    r = _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}", cwd=cwd)
    return r.returncode == 0


def checkout(branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("checkout", branch, cwd=cwd)


def create_branch(name: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Create *name* from HEAD and switch to it."""
    return _git("checkout", "-b", name, cwd=cwd)


def delete_branch(name: str, cwd: Path | None = None) -> bool:
    """Force-delete *name*. Returns ``False`` when there was nothing to delete."""
    r = _git("branch", "-D", name, cwd=cwd)
    return r.returncode == 0


def push(branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("push", "origin", branch, cwd=cwd)


def has_dirty_worktree(cwd: Path | None = None) -> bool:
    """``True`` when tracked files differ from HEAD (untracked files ignored)."""
    r = _git("status", "--porcelain", "--untracked-files=no", cwd=cwd)
    return bool(r.stdout.strip())


def conflicted_files(cwd: Path | None = None) -> list[str]:
    r = _git("diff", "--name-only", "--diff-filter=U", cwd=cwd)
    if r.returncode != 0 or not r.stdout.strip():
        return []
    return [f.strip() for f in r.stdout.strip().splitlines() if f.strip()]


# ── Merging ─────────────────────────────────────────────────────────

def merge_squash(branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("merge", "--squash", branch, cwd=cwd)


def abort_merge(cwd: Path | None = None) -> None:
    """Restore the tree after a failed merge.

    A squash merge leaves no ``MERGE_HEAD``, so ``merge --abort`` may refuse;
    fall back to ``reset --merge``, which keeps unrelated local edits.
    """
    remaining = conflicted_files(cwd=cwd)
    if _git("merge", "--abort", cwd=cwd).returncode == 0:
        return
    _git("reset", "--merge", cwd=cwd)
    still = conflicted_files(cwd=cwd) or remaining
    if still and has_dirty_worktree(cwd=cwd):
        _git("checkout", "HEAD", "--", *still, cwd=cwd)


def commit(message: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("commit", "-m", message, cwd=cwd)


def add_and_commit(files: list[Path | str], message: str, cwd: Path | None = None) -> bool:
    """Stage *files* and commit them if anything is staged.

    Returns ``True`` when a commit was made. Outside a repository, or when
    nothing changed, this is a no-op.
    """
    if not files:
        return False
    if _git("add", "--", *[str(f) for f in files], cwd=cwd).returncode != 0:
        return False
    if _git("diff", "--cached", "--quiet", cwd=cwd).returncode == 0:
        return False
    return commit(message, cwd=cwd).returncode == 0


# ── Worktree management ─────────────────────────────────────────────

def worktree_prune(cwd: Path | None = None) -> None:
    _git("worktree", "prune", cwd=cwd)


def worktree_add_new_branch(
    worktree_dir: Path, branch: str, base: str, cwd: Path | None = None
) -> subprocess.CompletedProcess[str]:
    """``git worktree add <dir> -b <branch> <base>``."""
    return _git("worktree", "add", str(worktree_dir), "-b", branch, base, cwd=cwd)


def worktree_remove(worktree_dir: Path, cwd: Path | None = None) -> bool:
    r = _git("worktree", "remove", str(worktree_dir), "--force", cwd=cwd)
    return r.returncode == 0
