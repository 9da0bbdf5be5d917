"""Test Harness — utilities for testing queues and runners.

Manifesto:
Testing a queue requires runner doubles that succeed, fail or stay silent
on demand, plus a way to capture the events a queue publishes.  This module
provides off-the-shelf helpers so test code is concise and expressive.

ARCHITECTURE
────────────
::

    Test doubles:
      ScriptedRunner      → per-task-type results/errors, optional deferral
      SilentRunner        → never signals (for timeout tests)

    Observers:
      EventRecorder       → subscribes to "*" and records every event

    Assertion helpers:
      assert_event_sequence(recorder, expected)
      assert_queue_completed(queue)
      assert_queue_halted(queue, position=None)

Example::

    from buildy.orchestration.testing import EventRecorder, ScriptedRunner

    async def test_chain():
        queue = Queue("build").append("files", "*.js").append("write", "out.js")
        recorder = EventRecorder.attach(queue)
        await queue.run(ScriptedRunner(results={"files": ["a.js"]}))
        assert recorder.types() == [
            "taskStarted", "taskComplete", "taskStarted", "taskComplete", "queueComplete",
        ]

Tags:
    buildy, orchestration, testing, harness, assertions

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from buildy.core.events import Event
from buildy.orchestration.contract import RunnerState
from buildy.orchestration.queue import Queue, QueueState
from buildy.orchestration.signal import CompletionSignal

# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------


class EventRecorder:
    """Collects events published on a queue's channel."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    @classmethod
    def attach(cls, queue: Queue, pattern: str = "*") -> EventRecorder:
        recorder = cls()
        queue.subscribe(pattern, recorder)
        return recorder

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def summary(self) -> list[tuple[str, str | None]]:
        """``(event_type, task_type)`` pairs; task type is ``None`` for queueComplete."""
        out: list[tuple[str, str | None]] = []
        for e in self.events:
            if "task_type" in e.payload:
                out.append((e.event_type, e.payload["task_type"]))
            elif "task" in e.payload:
                out.append((e.event_type, e.payload["task"].type))
            else:
                out.append((e.event_type, None))
        return out


# ---------------------------------------------------------------------------
# Runner doubles
# ---------------------------------------------------------------------------


class ScriptedRunner:
    """Runner whose outcome per task type is configured up front.

    Parameters
    ----------
    results
        ``task_type → result`` returned on success. Unlisted types succeed
        with ``None``.
    errors
        ``task_type → error``. Listed types fail with that error.
    defer
        If True, signals are delivered on a later loop iteration instead of
        inside ``exec``.
    state
        Initial runner state.

    Every call is recorded in ``calls`` as ``(task_type, spec)``. Spawned
    runners share the script but keep their own ``calls`` and state.
    """

    def __init__(
        self,
        results: dict[str, Any] | None = None,
        errors: dict[str, Any] | None = None,
        *,
        defer: bool = False,
        state: RunnerState | None = None,
    ) -> None:
        self._results = dict(results or {})
        self._errors = dict(errors or {})
        self._defer = defer
        self.state = state if state is not None else RunnerState()
        self.calls: list[tuple[str, Any]] = []
        self.spawned: list[ScriptedRunner] = []

    def exec(self, task_type: str, spec: Any, signal: CompletionSignal) -> Any:
        self.calls.append((task_type, spec))
        if self._defer:
            return self._deliver_later(task_type, signal)
        self._deliver(task_type, signal)
        return None

    def spawn(self, state: RunnerState) -> ScriptedRunner:
        child = ScriptedRunner(self._results, self._errors, defer=self._defer, state=state)
        self.spawned.append(child)
        return child

    async def _deliver_later(self, task_type: str, signal: CompletionSignal) -> None:
        await asyncio.sleep(0)
        self._deliver(task_type, signal)

    def _deliver(self, task_type: str, signal: CompletionSignal) -> None:
        if task_type in self._errors:
            signal.fail(self._errors[task_type])
            return
        result = self._results.get(task_type)
        self.state = RunnerState(output_type=task_type, output=result)
        signal.succeed(result)


class SilentRunner:
    """Runner that accepts every task and never signals."""

    def __init__(self, state: RunnerState | None = None) -> None:
        self.state = state if state is not None else RunnerState()
        self.signals: list[CompletionSignal] = []

    def exec(self, task_type: str, spec: Any, signal: CompletionSignal) -> None:
        self.signals.append(signal)

    def spawn(self, state: RunnerState) -> SilentRunner:
        return SilentRunner(state)


# ---------------------------------------------------------------------------
# Assertion helpers
# ---------------------------------------------------------------------------


def assert_event_sequence(
    recorder: EventRecorder,
    expected: Sequence[tuple[str, str | None]],
) -> None:
    """Assert the recorded ``(event_type, task_type)`` pairs equal ``expected``."""
    actual = recorder.summary()
    assert actual == list(expected), f"Expected events {list(expected)}, got {actual}"


def assert_queue_completed(queue: Queue) -> None:
    assert queue.state is QueueState.COMPLETE, f"Queue {queue.name} is {queue.state.value}"
    assert queue.position == len(queue), (
        f"Queue {queue.name} completed at {queue.position}/{len(queue)}"
    )


def assert_queue_halted(queue: Queue, position: int | None = None) -> None:
    assert queue.state is QueueState.HALTED, f"Queue {queue.name} is {queue.state.value}"
    if position is not None:
        assert queue.position == position, (
            f"Queue {queue.name} halted at {queue.position}, expected {position}"
        )


__all__ = [
    "EventRecorder",
    "ScriptedRunner",
    "SilentRunner",
    "assert_event_sequence",
    "assert_queue_completed",
    "assert_queue_halted",
]
