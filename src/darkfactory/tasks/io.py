"""Parse and serialize the task graph document (UTF-8 JSON)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from darkfactory.errors import DarkFactoryError, MalformedDocument
from darkfactory.io_utils import read_text
from darkfactory.tasks.model import Complexity, GraphDocument, Task, TaskStatus


def _require(value: Any, kind: type | tuple[type, ...], where: str, path: Path | str) -> Any:
    # bool is an int subclass; attempts must be a real integer
    if isinstance(value, bool) and kind is int:
        raise MalformedDocument(path, f"{where} must be an integer")
    if not isinstance(value, kind):
        raise MalformedDocument(path, f"{where} has the wrong type ({type(value).__name__})")
    return value


def task_from_dict(task_id: str, raw: Any, path: Path | str = "<memory>") -> Task:
    where = f"tasks.{task_id}"
    _require(raw, dict, where, path)
    missing = [k for k in ("title", "status", "dependencies", "file", "complexity", "attempts") if k not in raw]
    if missing:
        raise MalformedDocument(path, f"{where} is missing {', '.join(missing)}")

    deps = _require(raw["dependencies"], list, f"{where}.dependencies", path)
    for dep in deps:
        _require(dep, str, f"{where}.dependencies[]", path)

    try:
        status = TaskStatus.parse(_require(raw["status"], str, f"{where}.status", path))
        complexity = Complexity.parse(_require(raw["complexity"], str, f"{where}.complexity", path))
    except DarkFactoryError as exc:
        if isinstance(exc, MalformedDocument):
            raise
        raise MalformedDocument(path, f"{where}: {exc}") from exc

    return Task(
        title=_require(raw["title"], str, f"{where}.title", path),
        status=status,
        dependencies=list(deps),
        file=_require(raw["file"], str, f"{where}.file", path),
        complexity=complexity,
        attempts=_require(raw["attempts"], int, f"{where}.attempts", path),
    )


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "title": task.title,
        "status": task.status.value,
        "dependencies": list(task.dependencies),
        "file": task.file,
        "complexity": task.complexity.value,
        "attempts": task.attempts,
    }


def document_from_dict(raw: Any, path: Path | str = "<memory>") -> GraphDocument:
    _require(raw, dict, "document", path)
    if "project" not in raw or "tasks" not in raw:
        raise MalformedDocument(path, "document must have 'project' and 'tasks'")
    project = _require(raw["project"], str, "project", path)
    tasks = _require(raw["tasks"], dict, "tasks", path)
    return GraphDocument(
        project=project,
        tasks={tid: task_from_dict(tid, t, path) for tid, t in tasks.items()},
    )


def document_to_dict(doc: GraphDocument) -> dict[str, Any]:
    return {
        "project": doc.project,
        "tasks": {tid: task_to_dict(t) for tid, t in doc.tasks.items()},
    }


def parse_document(text: str, path: Path | str = "<memory>") -> GraphDocument:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDocument(path, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    return document_from_dict(raw, path)


def dump_document(doc: GraphDocument) -> str:
    """Pretty-printed JSON with a trailing newline."""
    return json.dumps(document_to_dict(doc), indent=2, ensure_ascii=False) + "\n"


def load_document(path: Path) -> GraphDocument:
    """Read and validate the graph document at *path*."""
    try:
        text = read_text(path)
    except UnicodeDecodeError as exc:
        raise MalformedDocument(path, "not valid UTF-8") from exc
    return parse_document(text, path)
