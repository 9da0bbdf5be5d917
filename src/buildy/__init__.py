"""
buildy: a task-chaining execution engine.

Build an ordered queue of named tasks, run it against a runner that
signals each task's outcome, and fork the tail of a chain into independent
concurrent sub-queues.

Example::

    import asyncio

    from buildy import Queue
    from buildy.tasks import RegistryRunner, default_registry

    async def main():
        queue = (
            Queue("build")
            .append("files", ["src/a.js", "src/b.js"])
            .append("concat", {"separator": "\\n"})
            .fork({
                "debug": lambda q, r: q.append("write", "dist/app.js").run(r),
                "stamped": lambda q, r: q.append("replace", {"regex": "@VERSION@", "replace": "1.0"})
                                          .append("write", "dist/app.stamped.js").run(r),
            })
        )
        await queue.run(RegistryRunner(default_registry()))
        await queue.join_branches()

    asyncio.run(main())
"""

from buildy.core.errors import (
    BuildyError,
    ForkError,
    QueueStateError,
    QueueStructureError,
    SignalError,
    TaskTimeoutError,
    UnknownTaskTypeError,
)
from buildy.core.events import (
    QUEUE_COMPLETE,
    TASK_COMPLETE,
    TASK_FAILED,
    TASK_STARTED,
    Event,
)
from buildy.orchestration import (
    FORK,
    CompletionSignal,
    Queue,
    QueueState,
    Runner,
    RunnerState,
    TaskOutcome,
    TaskRecord,
    TaskType,
)

__version__ = "0.1.0"

__all__ = [
    "FORK",
    "QUEUE_COMPLETE",
    "TASK_COMPLETE",
    "TASK_FAILED",
    "TASK_STARTED",
    "BuildyError",
    "CompletionSignal",
    "Event",
    "ForkError",
    "Queue",
    "QueueState",
    "QueueStateError",
    "QueueStructureError",
    "Runner",
    "RunnerState",
    "SignalError",
    "TaskOutcome",
    "TaskRecord",
    "TaskTimeoutError",
    "TaskType",
    "UnknownTaskTypeError",
    "__version__",
]
