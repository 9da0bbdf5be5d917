"""
Orchestration: sequential task queues with forking.

ARCHITECTURE
────────────
::

    TaskRecord ──append──▶ Queue ──exec(type, spec, signal)──▶ Runner
                             ▲                                   │
                             └──── CompletionSignal.succeed/fail ┘

    fork task ──▶ ForkCoordinator ──▶ child Queue per branch
                                       (cloned RunnerState, own channel)

Modules
-------
task        TaskRecord, TaskType, FORK
signal      CompletionSignal, TaskOutcome
contract    Runner protocol, RunnerState
queue       Queue, QueueState
fork        ForkCoordinator
testing     runner doubles, EventRecorder, assertions
"""

from buildy.orchestration.contract import Runner, RunnerState
from buildy.orchestration.fork import Continuation, ForkCoordinator
from buildy.orchestration.queue import TERMINAL_STATES, Queue, QueueState
from buildy.orchestration.signal import CompletionSignal, TaskOutcome
from buildy.orchestration.task import FORK, TaskRecord, TaskType

__all__ = [
    "FORK",
    "TERMINAL_STATES",
    "CompletionSignal",
    "Continuation",
    "ForkCoordinator",
    "Queue",
    "QueueState",
    "Runner",
    "RunnerState",
    "TaskOutcome",
    "TaskRecord",
    "TaskType",
]
