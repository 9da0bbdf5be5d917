"""Task Registry — maps task-type identifiers to handlers.

Manifesto:
    Runners should not branch on task-type strings.  Handlers are
    registered once under their identifier, and a runner copies the table
    at construction so every lookup afterwards is a plain dict access.

Handler contract::

    def handler(state: RunnerState, spec: Any) -> Any | RunnerState

    - Receives the runner's current state and the task's spec.
    - Returns the new output, or a complete RunnerState to keep control of
      the output_type tag (pass-through handlers return ``state``).
    - Raises to fail the task.
    - May be ``async def``; plain functions are run in a worker thread.

Example::

    from buildy.tasks.registry import TaskRegistry

    registry = TaskRegistry()

    @registry.register("upper")
    def upper(state, spec):
        return state.output.upper()

Tags:
    buildy, tasks, registry, handlers, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from buildy.core.errors import UnknownTaskTypeError
from buildy.core.logging import get_logger
from buildy.orchestration.contract import RunnerState
from buildy.orchestration.task import FORK, TaskType, normalize_task_type

logger = get_logger(__name__)

TaskHandler = Callable[[RunnerState, Any], Any]


class TaskRegistry:
    """Mutable table of task handlers, keyed by task-type identifier."""

    def __init__(self) -> None:
        self._handlers: dict[str, TaskHandler] = {}

    def register(
        self,
        task_type: str | TaskType,
        handler: TaskHandler | None = None,
    ) -> Any:
        """
        Register a handler.

        Can be called directly with a handler, or used as a decorator.

        Raises:
            ValueError: If the type is already registered or is ``fork``
            TypeError: If the handler is not callable

        Examples:
            registry.register("concat", concat_handler)

            @registry.register("log")
            def log_handler(state, spec): ...
        """
        name = normalize_task_type(task_type)
        if name == FORK:
            raise ValueError("'fork' is handled by the queue and cannot be registered")

        def _register(fn: TaskHandler) -> TaskHandler:
            if not callable(fn):
                raise TypeError(f"Handler for '{name}' must be callable, got {type(fn).__name__}")
            if name in self._handlers:
                raise ValueError(f"Task type '{name}' is already registered")
            self._handlers[name] = fn
            logger.debug("task_handler_registered", task_type=name)
            return fn

        if handler is None:
            return _register
        return _register(handler)

    def unregister(self, task_type: str | TaskType) -> None:
        self._handlers.pop(normalize_task_type(task_type), None)

    def get(self, task_type: str | TaskType) -> TaskHandler:
        """
        Get the handler for a task type.

        Raises:
            UnknownTaskTypeError: If nothing is registered under it
        """
        name = normalize_task_type(task_type)
        if name not in self._handlers:
            raise UnknownTaskTypeError(name, list(self._handlers))
        return self._handlers[name]

    def names(self) -> list[str]:
        """Sorted list of registered task types."""
        return sorted(self._handlers)

    def snapshot(self) -> dict[str, TaskHandler]:
        """Copy of the handler table, for runners to resolve once."""
        return dict(self._handlers)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ["TaskHandler", "TaskRegistry"]
