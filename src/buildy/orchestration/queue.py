"""Queue — ordered, sequentially executed task chain.

A :class:`Queue` holds :class:`~buildy.orchestration.task.TaskRecord` items,
a cursor into them and the names of the queues it was forked from.  Running
it dispatches one task at a time to a bound runner and only moves the
cursor once that task's completion signal reports success.

ARCHITECTURE
────────────
::

    Queue("build")
      .append("files", ["a.js", "b.js"])
      .append("concat")
      .fork({"debug": ..., "min": ...})      ← must be last

    await queue.run(runner)

    IDLE ──dispatch──▶ DISPATCHED ──success──▶ ADVANCING ──▶ IDLE (next task)
      │                     │                          └──▶ COMPLETE
      │                     └──failure/timeout──▶ HALTED
      └──fork task──▶ FORKED

    COMPLETE, HALTED and FORKED are terminal.

Events (published on the queue's own channel)::

    taskStarted    {queue_name, ancestry, position, task_type}
    taskComplete   {queue_name, task, result}
    taskFailed     {queue_name, task, error}
    queueComplete  {queue_name}

Related modules:
    signal.py     — CompletionSignal handed to the runner per task
    contract.py   — Runner protocol and RunnerState
    fork.py       — ForkCoordinator used when the cursor reaches a fork

Example::

    from buildy import Queue
    from buildy.tasks import RegistryRunner, default_registry

    queue = (
        Queue("build")
        .append("files", ["src/a.js", "src/b.js"])
        .append("concat")
        .append("write", "dist/app.js")
    )
    queue.subscribe("taskFailed", lambda event: print(event.payload["error"]))
    await queue.run(RegistryRunner(default_registry()))

Tags:
    buildy, orchestration, queue, state-machine, sequential

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping, Sequence
from enum import Enum
from functools import partial
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from buildy.core.errors import (
    QueueStateError,
    QueueStructureError,
    SignalError,
    TaskTimeoutError,
)
from buildy.core.events import (
    QUEUE_COMPLETE,
    TASK_COMPLETE,
    TASK_FAILED,
    TASK_STARTED,
    Event,
    EventChannel,
    EventHandler,
)
from buildy.core.events.memory import InMemoryEventChannel
from buildy.core.logging import get_logger
from buildy.orchestration.contract import Runner
from buildy.orchestration.fork import Continuation, ForkCoordinator
from buildy.orchestration.signal import CompletionSignal, TaskOutcome
from buildy.orchestration.task import (
    FORK,
    TaskRecord,
    TaskType,
    normalize_task_type,
    validate_fork_spec,
)

if TYPE_CHECKING:
    from buildy.core.settings import BuildySettings


class QueueState(str, Enum):
    """Execution state of a queue."""

    IDLE = "idle"
    DISPATCHED = "dispatched"
    ADVANCING = "advancing"
    COMPLETE = "complete"
    HALTED = "halted"
    FORKED = "forked"


TERMINAL_STATES = frozenset({QueueState.COMPLETE, QueueState.HALTED, QueueState.FORKED})


class Queue:
    """A named chain of tasks executed strictly one after another.

    Parameters
    ----------
    name
        Identifier used in events and logs.
    options
        Opaque caller-defined options. Not interpreted by the queue and
        handed on unchanged to forked children.
    channel
        Event channel to publish on. Defaults to a new
        :class:`~buildy.core.events.memory.InMemoryEventChannel`.
    logger
        structlog-style logger. Defaults to ``get_logger(__name__)``.
    task_timeout
        Seconds a dispatched task may take to signal. ``None`` waits forever.
    ancestry
        Names of the queues this one was forked from, oldest first. Set by
        the fork coordinator.
    """

    def __init__(
        self,
        name: str = "queue",
        options: Mapping[str, Any] | None = None,
        *,
        channel: EventChannel | None = None,
        logger: Any = None,
        task_timeout: float | None = None,
        ancestry: Sequence[str] = (),
    ) -> None:
        if task_timeout is not None and task_timeout <= 0:
            raise ValueError("task_timeout must be greater than zero")

        self._name = name
        self._options = options if options is not None else {}
        self._tasks: list[TaskRecord] = []
        self._position = 0
        self._ancestry: tuple[str, ...] = tuple(ancestry)
        self._runner: Runner | None = None
        self._signal: CompletionSignal | None = None
        self._state = QueueState.IDLE
        self._started = False
        self._driving = False
        self._task_timeout = task_timeout
        self._channel: EventChannel = channel if channel is not None else InMemoryEventChannel()
        self._base_logger = logger if logger is not None else get_logger(__name__)
        self._logger = self._base_logger.bind(queue=name, ancestry=list(self._ancestry))
        self._inflight: set[asyncio.Future[Any]] = set()
        self._forks: ForkCoordinator | None = None

    @classmethod
    def from_settings(
        cls,
        name: str = "queue",
        settings: BuildySettings | None = None,
        **kwargs: Any,
    ) -> Queue:
        """Build a queue using the process settings for its task timeout."""
        from buildy.core.settings import get_settings

        settings = settings or get_settings()
        kwargs.setdefault("task_timeout", settings.task_timeout)
        return cls(name, **kwargs)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> Mapping[str, Any]:
        return self._options

    @property
    def ancestry(self) -> tuple[str, ...]:
        """Parent queue names, oldest first."""
        return self._ancestry

    @property
    def lineage(self) -> tuple[str, ...]:
        """Ancestry followed by this queue's own name."""
        return self._ancestry + (self._name,)

    @property
    def tasks(self) -> tuple[TaskRecord, ...]:
        return tuple(self._tasks)

    @property
    def position(self) -> int:
        return self._position

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def current_task(self) -> TaskRecord | None:
        if self._position < len(self._tasks):
            return self._tasks[self._position]
        return None

    @property
    def runner(self) -> Runner | None:
        return self._runner

    @property
    def task_timeout(self) -> float | None:
        return self._task_timeout

    @property
    def channel(self) -> EventChannel:
        return self._channel

    @property
    def children(self) -> dict[str, Queue]:
        """Queues created when this queue forked (empty until then)."""
        return dict(self._forks.children) if self._forks else {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return (
            f"Queue({self._name!r}, state={self._state.value}, "
            f"position={self._position}/{len(self._tasks)})"
        )

    # =========================================================================
    # Building
    # =========================================================================

    def append(self, task_type: str | TaskType, spec: Any = None) -> Queue:
        """Add a task to the tail of the queue and return the queue.

        Raises:
            QueueStateError: If the queue has already been run
            QueueStructureError: If the queue already ends with a fork, or a
                fork spec is malformed
        """
        if self._started:
            raise QueueStateError(
                f"Cannot append to queue '{self._name}' after run()",
                state=self._state.value,
            ).with_context(queue=self._name)

        task_type = normalize_task_type(task_type)
        if self._tasks and self._tasks[-1].is_fork:
            raise QueueStructureError(
                f"Cannot chain '{task_type}' after a fork in queue '{self._name}'"
            ).with_context(queue=self._name, task_type=task_type)

        if task_type == FORK:
            spec = MappingProxyType(validate_fork_spec(spec))

        self._tasks.append(TaskRecord(type=task_type, spec=spec))
        return self

    def fork(self, branches: Mapping[str, Continuation]) -> Queue:
        """Append the terminal fork task. Shorthand for ``append("fork", branches)``."""
        return self.append(FORK, branches)

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to this queue's events (``*`` for all)."""
        return self._channel.subscribe(event_type, handler)

    def unsubscribe(self, subscription_id: str) -> None:
        self._channel.unsubscribe(subscription_id)

    # =========================================================================
    # Execution
    # =========================================================================

    async def run(self, runner: Runner) -> None:
        """Bind ``runner`` and execute the chain from the cursor.

        Returns once the queue is complete, halted on a failed task, or has
        forked. Task failures are reported through ``taskFailed`` events,
        not raised.

        Raises:
            QueueStructureError: If there is no task at the cursor
            QueueStateError: If the queue has already been run
            ForkError: If a fork branch continuation raised
        """
        if self._started:
            raise QueueStateError(
                f"Queue '{self._name}' has already been run",
                state=self._state.value,
            ).with_context(queue=self._name, position=self._position)
        if self._position >= len(self._tasks):
            raise QueueStructureError(
                f"Queue '{self._name}' has no task at position {self._position} "
                f"({len(self._tasks)} tasks)"
            ).with_context(queue=self._name, position=self._position)

        self._started = True
        self._runner = runner
        await self._drive()

    async def next(self) -> None:
        """Advance the cursor and continue the chain with the bound runner.

        On a complete queue this is a no-op; ``queueComplete`` was already
        published when the cursor reached the end.

        Raises:
            QueueStateError: If no runner is bound, a task is in flight, or
                the queue halted or forked
        """
        if self._state is QueueState.COMPLETE:
            return
        if self._runner is None:
            raise QueueStateError(
                f"Queue '{self._name}' has no bound runner; call run() first",
                state=self._state.value,
            )
        if self._driving or self._state not in (QueueState.IDLE, QueueState.ADVANCING):
            raise QueueStateError(
                f"Cannot advance queue '{self._name}' in state {self._state.value}",
                state=self._state.value,
            ).with_context(queue=self._name, position=self._position)

        await self._advance()
        await self._drive()

    async def join_branches(self) -> dict[str, TaskOutcome]:
        """Wait for every awaitable returned by this queue's fork continuations.

        Forks never wait on their own; this is an explicit, separate call.
        Returns an empty mapping if the queue did not fork.
        """
        if self._forks is None:
            return {}
        return await self._forks.join()

    async def _drive(self) -> None:
        self._driving = True
        try:
            while self._state is QueueState.IDLE:
                task = self._tasks[self._position]
                if task.is_fork:
                    await self._fork(task)
                    return

                outcome = await self._dispatch(task)
                if outcome.success:
                    await self._on_task_complete(task, outcome.result)
                else:
                    await self._on_task_failed(task, outcome.error)
        finally:
            self._driving = False

    async def _dispatch(self, task: TaskRecord) -> TaskOutcome:
        assert self._runner is not None
        signal = CompletionSignal()
        self._signal = signal
        self._state = QueueState.DISPATCHED

        await self._publish(
            TASK_STARTED,
            {
                "queue_name": self._name,
                "ancestry": list(self._ancestry),
                "position": self._position,
                "task_type": task.type,
            },
        )
        self._logger.debug("task_started", task_type=task.type, position=self._position)

        work: asyncio.Future[Any] | None = None
        try:
            pending = self._runner.exec(task.type, task.spec, signal)
        except Exception as exc:
            self._runner_error(signal, task, exc)
        else:
            if inspect.isawaitable(pending):
                work = asyncio.ensure_future(pending)
                self._inflight.add(work)
                work.add_done_callback(partial(self._on_work_done, signal, task))

        try:
            return await signal.wait(self._task_timeout)
        except TimeoutError:
            assert self._task_timeout is not None
            error = TaskTimeoutError(task.type, self._task_timeout).with_context(
                queue=self._name, ancestry=self._ancestry, position=self._position
            )
            signal.expire(error)
            if work is not None and not work.done():
                work.cancel()
            outcome = signal.outcome
            assert outcome is not None
            return outcome

    def _on_work_done(
        self,
        signal: CompletionSignal,
        task: TaskRecord,
        work: asyncio.Future[Any],
    ) -> None:
        self._inflight.discard(work)
        if work.cancelled():
            return
        exc = work.exception()
        if exc is not None:
            self._runner_error(signal, task, exc)

    def _runner_error(self, signal: CompletionSignal, task: TaskRecord, exc: BaseException) -> None:
        if not signal.settled:
            try:
                signal.fail(exc)
                return
            except SignalError:
                pass
        self._logger.error(
            "runner_error_after_signal",
            task_type=task.type,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    async def _on_task_complete(self, task: TaskRecord, result: Any) -> None:
        self._state = QueueState.ADVANCING
        await self._publish(
            TASK_COMPLETE,
            {"queue_name": self._name, "task": task, "result": result},
        )
        self._logger.info("task_completed", task_type=task.type, position=self._position)
        await self._advance()

    async def _on_task_failed(self, task: TaskRecord, error: Any) -> None:
        self._state = QueueState.HALTED
        await self._publish(
            TASK_FAILED,
            {"queue_name": self._name, "task": task, "error": error},
        )
        self._logger.error(
            "task_failed",
            task_type=task.type,
            position=self._position,
            error=str(error),
        )

    async def _advance(self) -> None:
        self._position += 1
        if self._position < len(self._tasks):
            self._state = QueueState.IDLE
            return

        self._state = QueueState.COMPLETE
        await self._publish(QUEUE_COMPLETE, {"queue_name": self._name})
        self._logger.info("queue_completed", task_count=len(self._tasks))

    async def _fork(self, task: TaskRecord) -> None:
        assert self._runner is not None
        self._state = QueueState.FORKED
        self._forks = ForkCoordinator(self, logger=self._logger)
        self._logger.info("queue_forked", branches=sorted(task.spec), position=self._position)
        self._forks.fork(task.spec, self._runner)

    def create_child(self, name: str) -> Queue:
        """Build a queue that continues this queue's lineage under ``name``.

        The child shares this queue's options, logger and task timeout and
        gets its own event channel.
        """
        return Queue(
            name,
            self._options,
            logger=self._base_logger,
            task_timeout=self._task_timeout,
            ancestry=self.lineage,
        )

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        await self._channel.publish(
            Event(
                event_type=event_type,
                source=self._name,
                payload=payload,
                correlation_id="/".join(self.lineage),
            )
        )


__all__ = ["Queue", "QueueState", "TERMINAL_STATES"]
