"""Execution contract — what a queue needs from a task runner.

A runner performs the real work of each task.  The queue only ever calls
``exec`` (one task at a time) and, when forking, reads ``state`` and calls
``spawn`` to build an independent runner for each branch.

Runner contract::

    runner.exec(task_type, spec, signal)   # may return an awaitable
        → must call signal.succeed(result) or signal.fail(error) exactly once

    runner.state                           # current RunnerState
    runner.spawn(state) -> Runner          # new runner on a cloned state

Tags:
    buildy, orchestration, runner, protocol

Doc-Types:
    api-reference
"""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Mapping, Sequence, Set
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from buildy.orchestration.signal import CompletionSignal


def _is_composite(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray)):
        return False
    return isinstance(value, (Mapping, Sequence, Set))


@dataclass
class RunnerState:
    """A runner's current output and the task type that produced it.

    Attributes:
        output_type: Task-type tag of the last task that set the output
        output: The output value itself (file list, text, ...)
    """

    output_type: str | None = None
    output: Any = None

    def clone(self) -> RunnerState:
        """Snapshot this state for a forked branch.

        Composite outputs (mappings, non-string sequences, sets) are deep
        copied; anything else is shallow copied.
        """
        if _is_composite(self.output):
            output = copy.deepcopy(self.output)
        else:
            output = copy.copy(self.output)
        return RunnerState(output_type=self.output_type, output=output)


@runtime_checkable
class Runner(Protocol):
    """Protocol every task runner bound to a queue implements."""

    state: RunnerState

    def exec(
        self,
        task_type: str,
        spec: Any,
        signal: CompletionSignal,
    ) -> Awaitable[None] | None:
        """Start the task and eventually deliver exactly one outcome to ``signal``."""
        ...

    def spawn(self, state: RunnerState) -> Runner:
        """Return a new runner of the same kind working on ``state``."""
        ...


__all__ = ["RunnerState", "Runner"]
