"""Recovery state: fine-grained task progress derived from what is on disk.

The state is never stored. It is recomputed from the persisted task status
plus three filesystem probes, so it stays correct after a crash:

    pending -> worktree-created -> scaffolding -> scaffolded
            -> executing -> evaluating -> complete | failed

``scaffolding`` and ``executing`` are held by running agents and leave no
artifact of their own; on disk they look like the state before them.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Protocol

from darkfactory.config import RESULT_EXT, SCAFFOLD_MARKER
from darkfactory.errors import NotFound
from darkfactory.tasks.model import GraphDocument, TaskStatus


class RecoveryState(str, Enum):
    PENDING = "pending"
    WORKTREE_CREATED = "worktree-created"
    SCAFFOLDING = "scaffolding"
    SCAFFOLDED = "scaffolded"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    FAILED = "failed"


class FileProbe(Protocol):
    def exists(self, path: Path) -> bool: ...


class LocalFileProbe:
    """Probe backed by the real filesystem."""

    def exists(self, path: Path) -> bool:
        return path.exists()


def derive_state(
    task_id: str,
    doc: GraphDocument,
    worktree_base: Path,
    output_dir: Path,
    probe: FileProbe | None = None,
    *,
    scaffold_marker: str = SCAFFOLD_MARKER,
    result_ext: str = RESULT_EXT,
) -> RecoveryState:
    """Derive the recovery state of *task_id*. Raises ``NotFound`` if absent."""
    task = doc.get_task(task_id)
    if task is None:
        raise NotFound(task_id)

    match task.status:
        case TaskStatus.COMPLETE | TaskStatus.SKIPPED:
            return RecoveryState.COMPLETE
        case TaskStatus.FAILED:
            return RecoveryState.FAILED

    probe = probe or LocalFileProbe()
    worktree_dir = worktree_base / task_id

    if probe.exists(output_dir / f"{task_id}.{result_ext}"):
        return RecoveryState.EVALUATING
    if probe.exists(worktree_dir / scaffold_marker):
        return RecoveryState.SCAFFOLDED
    if task.status == TaskStatus.IN_PROGRESS and probe.exists(worktree_dir):
        return RecoveryState.WORKTREE_CREATED
    return RecoveryState.PENDING
