"""Task records — the unit of work a queue holds.

A :class:`TaskRecord` is an immutable ``{type, spec}`` pair.  The queue
never interprets ``spec`` except for the reserved ``fork`` type, whose spec
maps child queue names to continuations.

Tags:
    buildy, orchestration, task, fork

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from buildy.core.errors import QueueStructureError

FORK = "fork"


class TaskType(str, Enum):
    """Task-type identifiers recognised by buildy runners.

    Only ``FORK`` is handled by the queue itself; every other type is
    forwarded to the bound runner.
    """

    FILES = "files"
    CONCAT = "concat"
    JSLINT = "jslint"
    CSSLINT = "csslint"
    WRITE = "write"
    REPLACE = "replace"
    MINIFY = "minify"
    CSSMINIFY = "cssminify"
    TEMPLATE = "template"
    LOG = "log"
    FORK = FORK


@dataclass(frozen=True)
class TaskRecord:
    """One queued task.

    Attributes:
        type: Task-type identifier (see :class:`TaskType`)
        spec: Opaque configuration for that task type
    """

    type: str
    spec: Any = None

    @property
    def is_fork(self) -> bool:
        return self.type == FORK

    def to_dict(self) -> dict[str, Any]:
        """Serialize for event payloads and logging."""
        if self.is_fork:
            return {"type": self.type, "spec": sorted(self.spec)}
        return {"type": self.type, "spec": self.spec}


def normalize_task_type(task_type: str | TaskType) -> str:
    """Return the plain string identifier for a task type."""
    if isinstance(task_type, TaskType):
        return task_type.value
    if not isinstance(task_type, str) or not task_type:
        raise QueueStructureError(f"Task type must be a non-empty string, got {task_type!r}")
    return task_type


def validate_fork_spec(spec: Any) -> dict[str, Callable[..., Any]]:
    """Check a fork specification and return it as a plain dict.

    Raises:
        QueueStructureError: If the spec is not a non-empty mapping of
            string names to callables
    """
    if not isinstance(spec, Mapping) or not spec:
        raise QueueStructureError("Fork spec must be a non-empty mapping of name -> continuation")

    branches: dict[str, Callable[..., Any]] = {}
    for name, continuation in spec.items():
        if not isinstance(name, str) or not name:
            raise QueueStructureError(f"Fork branch name must be a non-empty string, got {name!r}")
        if not callable(continuation):
            raise QueueStructureError(f"Fork branch '{name}' continuation is not callable")
        branches[name] = continuation
    return branches


__all__ = [
    "FORK",
    "TaskType",
    "TaskRecord",
    "normalize_task_type",
    "validate_fork_spec",
]
