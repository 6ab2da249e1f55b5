"""Graph Store: the only writer of durable task state.

Usage::

    tg = TaskGraph.load(path)          # parse + validate, bound to path
    tg.ready_tasks()                    # read-only, in-memory snapshot
    tg.set_status("T001", "complete")   # mutate, then atomically persist

Every mutator saves before returning, so no change lives only in memory.
There is no locking: two processes that load the same file and both
mutate it race, and the last save wins.
"""

from __future__ import annotations

from dataclasses import fields, replace
from pathlib import Path
from typing import Any

from darkfactory import log, scheduler
from darkfactory.errors import NotFound
from darkfactory.io_utils import atomic_write_text
from darkfactory.tasks.io import document_to_dict, dump_document, load_document
from darkfactory.tasks.model import (
    Complexity,
    GraphDocument,
    ReadyTask,
    Task,
    TaskStatus,
    TaskSummary,
    dedupe,
)

_AMENDABLE = frozenset(f.name for f in fields(Task))


class TaskGraph:
    def __init__(self, doc: GraphDocument, path: Path) -> None:
        self._doc = doc
        self._path = path

    @classmethod
    def load(cls, path: Path | str) -> TaskGraph:
        """Load the document at *path*; raises ``MalformedDocument`` on bad content."""
        p = Path(path)
        return cls(load_document(p), p)

    @classmethod
    def create(cls, path: Path | str, project: str, tasks: dict[str, Task] | None = None) -> TaskGraph:
        """Write a fresh document to *path* and return a handle bound to it."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        tg = cls(GraphDocument(project=project, tasks=dict(tasks or {})), p)
        tg.save()
        return tg

    def save(self) -> None:
        atomic_write_text(self._path, dump_document(self._doc))
        log.debug(f"Saved task graph to {self._path}")

    # ── accessors ────────────────────────────────────────────────

    @property
    def path(self) -> Path:
        return self._path

    @property
    def project(self) -> str:
        return self._doc.project

    @property
    def document(self) -> GraphDocument:
        return self._doc

    def all_task_ids(self) -> list[str]:
        return sorted(self._doc.tasks)

    def get_task(self, task_id: str) -> Task | None:
        return self._doc.get_task(task_id)

    def require_task(self, task_id: str) -> Task:
        task = self._doc.get_task(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def to_dict(self) -> dict[str, Any]:
        return document_to_dict(self._doc)

    def summary(self) -> TaskSummary:
        return scheduler.summarize(self._doc)

    def remaining_count(self) -> int:
        return scheduler.remaining_count(self._doc)

    # ── resolver views ───────────────────────────────────────────

    def ready_tasks(self, *, failed_unblocks: bool = True) -> list[ReadyTask]:
        return scheduler.ready_tasks(self._doc, failed_unblocks=failed_unblocks)

    def dependents(self, task_id: str) -> list[str]:
        return scheduler.dependents(self._doc, task_id)

    def transitive_downstream(self, task_id: str) -> list[str]:
        return scheduler.transitive_downstream(self._doc, task_id)

    def transitive_upstream(self, task_id: str) -> list[str]:
        return scheduler.transitive_upstream(self._doc, task_id)

    def next_task_id(self) -> str:
        return scheduler.next_task_id(self._doc)

    # ── mutators (each one persists) ─────────────────────────────

    def set_status(self, task_id: str, status: str | TaskStatus) -> None:
        new_status = TaskStatus.parse(status)
        task = self.require_task(task_id)
        task.status = new_status
        self.save()
        log.debug(f"Task {task_id}: status -> {new_status.value}")

    def add_task(self, task_id: str, task: Task) -> None:
        """Insert *task* under *task_id*, replacing any existing record."""
        self._doc.tasks[task_id] = replace(task, dependencies=dedupe(task.dependencies))
        self.save()

    def amend_task(self, task_id: str, **updates: Any) -> None:
        """Merge only the provided fields into an existing task."""
        task = self.require_task(task_id)
        unknown = sorted(set(updates) - _AMENDABLE)
        if unknown:
            raise TypeError(f"unknown task field(s): {', '.join(unknown)}")
        if "status" in updates:
            updates["status"] = TaskStatus.parse(updates["status"])
        if "complexity" in updates:
            updates["complexity"] = Complexity.parse(updates["complexity"])
        if "dependencies" in updates:
            updates["dependencies"] = dedupe(list(updates["dependencies"]))
        for name, value in updates.items():
            setattr(task, name, value)
        self.save()

    def increment_attempts(self, task_id: str) -> int:
        task = self.require_task(task_id)
        task.attempts += 1
        self.save()
        return task.attempts

    def add_dep(self, task_id: str, dep_id: str) -> bool:
        """Append *dep_id* to the task's dependencies. Returns ``False`` if already present."""
        task = self.require_task(task_id)
        if dep_id in task.dependencies:
            return False
        task.dependencies.append(dep_id)
        self.save()
        return True

    def move_deps(self, from_id: str, to_ids: list[str]) -> list[str]:
        rewired = scheduler.move_deps(self._doc, from_id, to_ids)
        if rewired:
            self.save()
        return rewired

    def reset_interrupted_tasks(self) -> int:
        """Move every ``in-progress`` task back to ``pending``; return how many changed."""
        count = 0
        for tid, task in self._doc.tasks.items():
            if task.status == TaskStatus.IN_PROGRESS:
                task.status = TaskStatus.PENDING
                count += 1
                log.debug(f"Task {tid}: in-progress -> pending (interrupted)")
        if count:
            self.save()
        return count
