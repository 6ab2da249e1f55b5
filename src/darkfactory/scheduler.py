"""Dependency resolution over a task graph document.

Every function here is a pure computation over an in-memory
:class:`GraphDocument`, except :func:`move_deps`, which rewrites
dependency lists in place and leaves persistence to the caller.

Dependency ids are never validated: a dangling reference simply never
becomes terminal, so the dependent task stays blocked.
"""

from __future__ import annotations

import re
from collections import deque

from darkfactory.tasks.model import (
    GraphDocument,
    ReadyTask,
    TaskStatus,
    TaskSummary,
    TERMINAL_STATUSES,
    dedupe,
)

TASK_ID_RE = re.compile(r"^T(\d+)$")

# Statuses that satisfy a dependency when failed upstreams must not unblock.
_SUCCESS_STATUSES = frozenset({TaskStatus.COMPLETE, TaskStatus.SKIPPED})


# ── ready set ────────────────────────────────────────────────────

def ready_tasks(doc: GraphDocument, *, failed_unblocks: bool = True) -> list[ReadyTask]:
    """Return pending tasks whose dependencies are all terminal, sorted by id.

    With ``failed_unblocks`` (the default) a ``failed`` dependency counts as
    terminal, exactly like ``complete`` and ``skipped``. Pass ``False`` to keep
    tasks behind a failed upstream blocked.
    """
    satisfying = TERMINAL_STATUSES if failed_unblocks else _SUCCESS_STATUSES
    done = {tid for tid, t in doc.tasks.items() if t.status in satisfying}

    ready: list[ReadyTask] = []
    for tid, task in doc.tasks.items():
        if task.status != TaskStatus.PENDING:
            continue
        if not all(dep in done for dep in task.dependencies):
            continue
        ready.append(
            ReadyTask(
                id=tid,
                title=task.title,
                complexity=task.complexity,
                tier=task.tier,
                file=task.file,
            )
        )
    return sorted(ready, key=lambda r: r.id)


def blocked_by(doc: GraphDocument, task_id: str) -> list[str]:
    """Dependencies of *task_id* that are not terminal yet (dangling ids included)."""
    task = doc.get_task(task_id)
    if task is None:
        return []
    blocking: list[str] = []
    for dep in task.dependencies:
        upstream = doc.get_task(dep)
        if upstream is None or not upstream.status.is_terminal:
            blocking.append(dep)
    return blocking


# ── traversal ────────────────────────────────────────────────────

def dependents(doc: GraphDocument, task_id: str) -> list[str]:
    """Ids of tasks that list *task_id* as a direct dependency."""
    return sorted(tid for tid, t in doc.tasks.items() if task_id in t.dependencies)


def transitive_downstream(doc: GraphDocument, task_id: str) -> list[str]:
    """Every task that transitively depends on *task_id*.

    Sorted by id for display; the order is not a topological order.
    """
    visited: set[str] = set()
    queue = deque([task_id])
    while queue:
        current = queue.popleft()
        for tid, task in doc.tasks.items():
            if current in task.dependencies and tid not in visited:
                visited.add(tid)
                queue.append(tid)
    return sorted(visited)


def transitive_upstream(doc: GraphDocument, task_id: str) -> list[str]:
    """Every task *task_id* transitively depends on, dangling ids included."""
    visited: set[str] = set()
    queue = deque([task_id])
    while queue:
        task = doc.get_task(queue.popleft())
        if task is None:
            continue
        for dep in task.dependencies:
            if dep not in visited:
                visited.add(dep)
                queue.append(dep)
    return sorted(visited)


# ── rewiring ─────────────────────────────────────────────────────

def move_deps(doc: GraphDocument, from_id: str, to_ids: list[str]) -> list[str]:
    """Replace *from_id* with *to_ids* in every dependency list.

    The replacement is spliced in at the position of *from_id*, then the
    list is deduplicated keeping first occurrences. The *from_id* task's own
    record is untouched. Returns the ids of the rewired tasks, sorted.
    """
    rewired: list[str] = []
    for tid, task in doc.tasks.items():
        if from_id not in task.dependencies:
            continue
        idx = task.dependencies.index(from_id)
        spliced = task.dependencies[:idx] + list(to_ids) + task.dependencies[idx + 1:]
        task.dependencies = dedupe(spliced)
        rewired.append(tid)
    return sorted(rewired)


# ── ids and counts ───────────────────────────────────────────────

def next_task_id(doc: GraphDocument) -> str:
    """One past the highest ``T<digits>`` id, zero-padded to three digits."""
    highest = 0
    for tid in doc.tasks:
        m = TASK_ID_RE.match(tid)
        if m:
            highest = max(highest, int(m.group(1)))
    return f"T{highest + 1:03d}"


def summarize(doc: GraphDocument) -> TaskSummary:
    counts = {status: 0 for status in TaskStatus}
    for task in doc.tasks.values():
        counts[task.status] += 1
    return TaskSummary(
        total=len(doc.tasks),
        pending=counts[TaskStatus.PENDING],
        in_progress=counts[TaskStatus.IN_PROGRESS],
        complete=counts[TaskStatus.COMPLETE],
        failed=counts[TaskStatus.FAILED],
        skipped=counts[TaskStatus.SKIPPED],
    )


def remaining_count(doc: GraphDocument) -> int:
    return sum(1 for t in doc.tasks.values() if not t.status.is_terminal)
