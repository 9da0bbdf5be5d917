"""Fork coordinator — splits a queue into independent named branches.

When a queue's cursor reaches a ``fork`` task, the queue's own chain ends
and each entry of the fork spec becomes a new child queue:

::

    parent "build" (ancestry [])            fork {"debug": f1, "min": f2}
        ├── child "debug" (ancestry ["build"]) ← f1(child, runner_1)
        └── child "min"   (ancestry ["build"]) ← f2(child, runner_2)

Each branch gets a runner spawned from a clone of the parent runner's
state, so branches never share mutable output with each other or with the
parent.  Continuations are called synchronously; if one returns an
awaitable (typically ``child.run(runner)``), it is scheduled as its own
asyncio task.  The parent never waits for its branches.  Callers who need
to know when every branch finished use :meth:`ForkCoordinator.join`, via
``Queue.join_branches()``.

Tags:
    buildy, orchestration, fork, concurrency, fire-and-forget

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from buildy.core.errors import ForkError
from buildy.core.logging import get_logger
from buildy.orchestration.contract import Runner
from buildy.orchestration.signal import TaskOutcome

if TYPE_CHECKING:
    from buildy.orchestration.queue import Queue

Continuation = Callable[["Queue", Runner], Awaitable[Any] | None]


class ForkCoordinator:
    """Creates and tracks the branches of one forked queue."""

    def __init__(self, parent: Queue, logger: Any = None) -> None:
        self._parent = parent
        self._logger = logger if logger is not None else get_logger(__name__)
        self.children: dict[str, Queue] = {}
        self._branch_tasks: dict[str, asyncio.Future[Any]] = {}

    @property
    def branch_tasks(self) -> dict[str, asyncio.Future[Any]]:
        return dict(self._branch_tasks)

    def fork(self, branches: Mapping[str, Continuation], runner: Runner) -> dict[str, Queue]:
        """Start every branch of ``branches`` against clones of ``runner``.

        Every continuation is invoked even if an earlier one raises.

        Raises:
            ForkError: After all branches were started, if any continuation
                raised synchronously
        """
        errors: dict[str, Exception] = {}

        for name, continuation in branches.items():
            child = self._parent.create_child(name)
            self.children[name] = child

            try:
                child_runner = runner.spawn(runner.state.clone())
                pending = continuation(child, child_runner)
            except Exception as exc:
                errors[name] = exc
                self._logger.error("branch_failed", branch=name, error=str(exc))
                continue

            if inspect.isawaitable(pending):
                task = asyncio.ensure_future(pending)
                task.add_done_callback(lambda t, branch=name: self._on_branch_done(branch, t))
                self._branch_tasks[name] = task

        if errors:
            raise ForkError(self._parent.name, errors).with_context(
                queue=self._parent.name, ancestry=self._parent.ancestry
            )
        return dict(self.children)

    async def join(self) -> dict[str, TaskOutcome]:
        """Wait for all scheduled branches and report how each one ended."""
        if not self._branch_tasks:
            return {}

        names = list(self._branch_tasks)
        results = await asyncio.gather(
            *(self._branch_tasks[name] for name in names),
            return_exceptions=True,
        )
        outcomes: dict[str, TaskOutcome] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                outcomes[name] = TaskOutcome.fail(result)
            else:
                outcomes[name] = TaskOutcome.ok(result)
        return outcomes

    def _on_branch_done(self, branch: str, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            self._logger.warning("branch_cancelled", branch=branch)
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("branch_failed", branch=branch, error=str(exc))


__all__ = ["Continuation", "ForkCoordinator"]
