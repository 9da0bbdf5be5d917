"""Built-in task handlers.

Small stateless handlers covering the I/O ends of a build chain.  Input
paths are taken literally (no globbing).  Linting, minification and
templating are left to callers, who register their own handlers under the
remaining :class:`~buildy.orchestration.task.TaskType` identifiers.

======== ================================ =====================================
Type     Spec                             Output
======== ================================ =====================================
files    path or list of paths            list of path strings (checked exist)
concat   None or {"separator": str}       one string
replace  {"regex", "replace", "flags"}    string with substitutions applied
write    path or {"dest": path}           unchanged (state passed through)
log      None or message string           unchanged (state passed through)
======== ================================ =====================================
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from buildy.core.logging import get_logger
from buildy.orchestration.contract import RunnerState
from buildy.orchestration.task import TaskType
from buildy.tasks.registry import TaskRegistry

logger = get_logger(__name__)

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def _as_text(state: RunnerState, task: str) -> str:
    if isinstance(state.output, str):
        return state.output
    raise TypeError(
        f"'{task}' needs text input, got {type(state.output).__name__} "
        f"from '{state.output_type}'"
    )


def files_task(state: RunnerState, spec: Any) -> list[str]:
    paths = [spec] if isinstance(spec, (str, Path)) else list(spec or [])
    if not paths:
        raise ValueError("'files' needs at least one path")

    missing = [str(p) for p in paths if not Path(p).is_file()]
    if missing:
        raise FileNotFoundError(f"Input files not found: {', '.join(missing)}")
    return [str(p) for p in paths]


def concat_task(state: RunnerState, spec: Any) -> str:
    if spec is not None and not isinstance(spec, dict):
        raise ValueError("'concat' spec must be None or a dict like {'separator': str}")
    separator = (spec or {}).get("separator", "")
    output = state.output

    if state.output_type == TaskType.FILES.value:
        return separator.join(Path(p).read_text(encoding="utf-8") for p in output)
    if isinstance(output, str):
        return output
    if isinstance(output, (list, tuple)) and all(isinstance(s, str) for s in output):
        return separator.join(output)
    raise TypeError(f"'concat' cannot join output of '{state.output_type}'")


def replace_task(state: RunnerState, spec: Any) -> str:
    if not isinstance(spec, dict) or "regex" not in spec:
        raise ValueError("'replace' spec needs a 'regex' key")

    flags = 0
    for letter in spec.get("flags", ""):
        if letter not in _REGEX_FLAGS:
            raise ValueError(f"Unknown regex flag '{letter}'")
        flags |= _REGEX_FLAGS[letter]

    pattern = re.compile(spec["regex"], flags)
    return pattern.sub(spec.get("replace", ""), _as_text(state, "replace"))


def write_task(state: RunnerState, spec: Any) -> RunnerState:
    dest = spec.get("dest") if isinstance(spec, dict) else spec
    if not dest:
        raise ValueError("'write' needs a destination path")

    path = Path(dest)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_as_text(state, "write"), encoding="utf-8")
    logger.info("file_written", path=str(path))
    return state


def log_task(state: RunnerState, spec: Any) -> RunnerState:
    output = state.output
    size = len(output) if isinstance(output, (str, list, tuple, dict)) else None
    logger.info(
        spec or "runner_state",
        output_type=state.output_type,
        output_kind=type(output).__name__,
        size=size,
    )
    return state


BUILTIN_HANDLERS = {
    TaskType.FILES: files_task,
    TaskType.CONCAT: concat_task,
    TaskType.REPLACE: replace_task,
    TaskType.WRITE: write_task,
    TaskType.LOG: log_task,
}


def register_builtins(registry: TaskRegistry) -> TaskRegistry:
    for task_type, handler in BUILTIN_HANDLERS.items():
        registry.register(task_type, handler)
    return registry


def default_registry() -> TaskRegistry:
    """A fresh registry holding the built-in handlers."""
    return register_builtins(TaskRegistry())


__all__ = [
    "BUILTIN_HANDLERS",
    "concat_task",
    "default_registry",
    "files_task",
    "log_task",
    "register_builtins",
    "replace_task",
    "write_task",
]
