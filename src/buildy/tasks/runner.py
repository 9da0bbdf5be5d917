"""Registry runner — the standard :class:`~buildy.orchestration.contract.Runner`.

``RegistryRunner`` resolves its handler table once, at construction, from a
:class:`~buildy.tasks.registry.TaskRegistry`.  Each ``exec`` call looks the
task type up, runs the handler against the runner's current state and
reports the outcome through the completion signal.

Synchronous handlers run in a worker thread via ``asyncio.to_thread`` so
file I/O never blocks other forked branches sharing the event loop.

Tags:
    buildy, tasks, runner, execution-contract

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping
from typing import Any

from buildy.core.errors import UnknownTaskTypeError
from buildy.core.logging import get_logger
from buildy.orchestration.contract import RunnerState
from buildy.orchestration.signal import CompletionSignal
from buildy.tasks.registry import TaskHandler, TaskRegistry


class RegistryRunner:
    """Runner dispatching each task type to its registered handler.

    Args:
        registry: Registry (or plain mapping) of handlers. Copied once.
        state: Initial state; defaults to an empty ``RunnerState``.
        logger: structlog-style logger.
    """

    def __init__(
        self,
        registry: TaskRegistry | Mapping[str, TaskHandler],
        state: RunnerState | None = None,
        *,
        logger: Any = None,
    ) -> None:
        if isinstance(registry, TaskRegistry):
            self._handlers = registry.snapshot()
        else:
            self._handlers = dict(registry)
        self.state = state if state is not None else RunnerState()
        self._logger = logger if logger is not None else get_logger(__name__)

    @property
    def task_types(self) -> list[str]:
        return sorted(self._handlers)

    async def exec(self, task_type: str, spec: Any, signal: CompletionSignal) -> None:
        handler = self._handlers.get(task_type)
        if handler is None:
            signal.fail(UnknownTaskTypeError(task_type, list(self._handlers)))
            return

        try:
            if inspect.iscoroutinefunction(handler):
                output = await handler(self.state, spec)
            else:
                output = await asyncio.to_thread(handler, self.state, spec)
        except Exception as exc:
            self._logger.warning(
                "task_handler_error",
                task_type=task_type,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            signal.fail(exc)
            return

        if isinstance(output, RunnerState):
            self.state = output
        else:
            self.state = RunnerState(output_type=task_type, output=output)
        signal.succeed(self.state.output)

    def spawn(self, state: RunnerState) -> RegistryRunner:
        """New runner on the same handler table, working on ``state``."""
        return RegistryRunner(self._handlers, state, logger=self._logger)

    def __repr__(self) -> str:
        return f"RegistryRunner(task_types={self.task_types}, output_type={self.state.output_type!r})"


__all__ = ["RegistryRunner"]
