"""Task graph data models: statuses, complexity tiers and the graph document."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from darkfactory.errors import InvalidComplexity, InvalidStatus


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: str | TaskStatus) -> TaskStatus:
        """Coerce *value* to a status, raising ``InvalidStatus`` for unknown strings."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatus(value, [s.value for s in cls]) from None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.COMPLETE, TaskStatus.FAILED, TaskStatus.SKIPPED}
)


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str | Complexity) -> Complexity:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidComplexity(value, [c.value for c in cls]) from None


class Tier(str, Enum):
    """Execution-agent tier a task is assigned to."""

    LIGHT = "light"
    HEAVY = "heavy"


TIER_BY_COMPLEXITY: dict[Complexity, Tier] = {
    Complexity.LOW: Tier.LIGHT,
    Complexity.MEDIUM: Tier.HEAVY,
    Complexity.HIGH: Tier.HEAVY,
}


def dedupe(ids: list[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence of each."""
    return list(dict.fromkeys(ids))


@dataclass
class Task:
    title: str
    status: TaskStatus = TaskStatus.PENDING
    dependencies: list[str] = field(default_factory=list)
    file: str = ""
    complexity: Complexity = Complexity.MEDIUM
    attempts: int = 0

    @property
    def tier(self) -> Tier:
        return TIER_BY_COMPLEXITY[self.complexity]


@dataclass(frozen=True)
class ReadyTask:
    """A task eligible for work, with its assigned execution tier."""

    id: str
    title: str
    complexity: Complexity
    tier: Tier
    file: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "complexity": self.complexity.value,
            "tier": self.tier.value,
            "file": self.file,
        }


@dataclass(frozen=True)
class TaskSummary:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    complete: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class GraphDocument:
    """The persisted ``{project, tasks}`` document, keyed by task id."""

    project: str = ""
    tasks: dict[str, Task] = field(default_factory=dict)

    def get_task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)
