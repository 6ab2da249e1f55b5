"""Dark Factory: task graph, recovery state and worktree orchestration."""

from darkfactory.config import VERSION

__version__ = VERSION
