"""Error taxonomy and classification of git output."""

from __future__ import annotations

from collections.abc import Iterable

MERGE_CONFLICT_PATTERNS: tuple[str, ...] = (
    "automatic merge failed",
    "conflict (content)",
    "conflict (add/add)",
    "conflict (modify/delete)",
    "conflict in ",
    "merge conflict",
)

BRANCH_EXISTS_PATTERNS: tuple[str, ...] = (
    "already exists",
)

NOTHING_TO_COMMIT_PATTERNS: tuple[str, ...] = (
    "nothing to commit",
    "no changes added to commit",
    "nothing added to commit",
)


class DarkFactoryError(Exception):
    """Base class for every error the engine reports to its caller."""


class MalformedDocument(DarkFactoryError):
    """A persisted document is not valid JSON or has the wrong structure."""

    def __init__(self, path: object, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Malformed document {self.path}: {reason}")


class NotFound(DarkFactoryError):
    """A referenced task id is absent from the graph."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class _InvalidChoice(DarkFactoryError):
    kind = "value"

    def __init__(self, value: object, allowed: Iterable[str]) -> None:
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(
            f'Invalid {self.kind} "{value}". Must be one of: {", ".join(self.allowed)}'
        )


class InvalidStatus(_InvalidChoice):
    kind = "status"


class InvalidComplexity(_InvalidChoice):
    kind = "complexity"


class MergeConflict(DarkFactoryError):
    """Squash merge could not complete; caught inside the worktree lifecycle."""

    def __init__(self, task_id: str, files: list[str], output: str) -> None:
        self.task_id = task_id
        self.files = files
        self.output = output
        detail = f" in {', '.join(files)}" if files else ""
        super().__init__(f"Merge conflict on {task_id}{detail}")


class PushFailure(DarkFactoryError):
    """Best-effort push of the integration branch failed."""

    def __init__(self, branch: str, output: str) -> None:
        self.branch = branch
        self.output = output
        super().__init__(f"Push of {branch} failed: {output.strip()}")


class WorktreeCreateFailure(DarkFactoryError):
    """Both worktree creation attempts failed."""

    def __init__(self, task_id: str, output: str) -> None:
        self.task_id = task_id
        self.output = output
        super().__init__(f"Failed to create worktree for {task_id}: {output.strip()}")


class JobError(DarkFactoryError):
    """Job lookup, naming or scaffolding problem."""


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(pattern in lower for pattern in patterns)


def looks_like_merge_conflict(text: str) -> bool:
    """Return ``True`` for textual git merge conflict failures."""
    if not text:
        return False
    return _contains_any(text, MERGE_CONFLICT_PATTERNS)


def looks_like_branch_exists(text: str) -> bool:
    """Return ``True`` when ``git worktree add -b`` refused an existing branch."""
    if not text:
        return False
    return _contains_any(text, BRANCH_EXISTS_PATTERNS)


def looks_like_nothing_to_commit(text: str) -> bool:
    """Return ``True`` when ``git commit`` found nothing staged."""
    if not text:
        return False
    return _contains_any(text, NOTHING_TO_COMMIT_PATTERNS)
