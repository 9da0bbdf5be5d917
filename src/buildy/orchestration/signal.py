"""Completion signal — the one-shot channel from a runner back to its queue.

Manifesto:
    A queue hands every dispatched task a fresh :class:`CompletionSignal`.
    The runner reports exactly one :class:`TaskOutcome` through it, from any
    thread, whenever the work is done.  Delivering twice is a runner bug and
    raises :class:`~buildy.core.errors.SignalError` instead of corrupting
    the queue's cursor.

ARCHITECTURE
────────────
::

    TaskOutcome
      ├── .ok(result)     → success
      └── .fail(error)    → failure

    CompletionSignal
      ├── .succeed(result) / .fail(error)   ← runner, exactly once
      ├── .wait(timeout)                    ← queue, awaits the outcome
      └── .expire(error)                    ← queue, on timeout

Tags:
    buildy, orchestration, signal, future, exactly-once

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any

from buildy.core.errors import SignalError
from buildy.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TaskOutcome:
    """Result of one dispatched task.

    Attributes:
        success: Whether the runner signalled success
        result: Value passed to ``succeed`` (``None`` on failure)
        error: Value passed to ``fail`` (``None`` on success)
    """

    success: bool
    result: Any = None
    error: Any = None

    @classmethod
    def ok(cls, result: Any = None) -> TaskOutcome:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: Any) -> TaskOutcome:
        return cls(success=False, error=error)

    @property
    def error_message(self) -> str | None:
        if self.success:
            return None
        return str(self.error) if self.error is not None else "Task failed without error"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging."""
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error_message}

    def __repr__(self) -> str:
        status = "OK" if self.success else f"FAIL({self.error_message})"
        return f"TaskOutcome({status})"


class CompletionSignal:
    """Single-use success/failure signal bound to an event loop.

    Must be created inside a running event loop (the queue does this).
    ``succeed`` and ``fail`` are thread-safe; deliveries from other threads
    are marshalled onto the owning loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[TaskOutcome] = self._loop.create_future()
        self._lock = threading.Lock()
        self._owner_thread = threading.get_ident()
        self._outcome: TaskOutcome | None = None
        self._expired = False

    @property
    def settled(self) -> bool:
        """True once an outcome was delivered or the signal expired."""
        return self._outcome is not None

    @property
    def outcome(self) -> TaskOutcome | None:
        return self._outcome

    def succeed(self, result: Any = None) -> None:
        """Report that the task finished with ``result``."""
        self._deliver(TaskOutcome.ok(result))

    def fail(self, error: Any) -> None:
        """Report that the task failed with ``error``."""
        self._deliver(TaskOutcome.fail(error))

    def expire(self, error: Any) -> bool:
        """Settle the signal as failed unless the runner already delivered.

        Later deliveries from the runner are dropped. Returns True if this
        call settled the signal.
        """
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = TaskOutcome.fail(error)
            self._expired = True
        self._schedule_resolve()
        return True

    async def wait(self, timeout: float | None = None) -> TaskOutcome:
        """Wait for the outcome.

        Raises:
            TimeoutError: If ``timeout`` elapses first; the signal stays
                unsettled so the caller can :meth:`expire` it
        """
        if timeout is None:
            return await self._future
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)

    def _deliver(self, outcome: TaskOutcome) -> None:
        with self._lock:
            if self._expired:
                logger.warning("late_signal_ignored", success=outcome.success)
                return
            if self._outcome is not None:
                raise SignalError(
                    f"Completion signal already delivered ({self._outcome!r}); "
                    f"rejected second delivery {outcome!r}"
                )
            self._outcome = outcome
        self._schedule_resolve()

    def _schedule_resolve(self) -> None:
        if threading.get_ident() == self._owner_thread:
            self._resolve()
        else:
            self._loop.call_soon_threadsafe(self._resolve)

    def _resolve(self) -> None:
        if not self._future.done() and self._outcome is not None:
            self._future.set_result(self._outcome)


__all__ = ["TaskOutcome", "CompletionSignal"]
