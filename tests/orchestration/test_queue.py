"""Tests for Queue — building, sequential dispatch, state machine, events.

Uses runner doubles from buildy.orchestration.testing so no real task
handlers are involved.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from buildy.core.errors import (
    QueueStateError,
    QueueStructureError,
    SignalError,
    TaskTimeoutError,
)
from buildy.core.events import QUEUE_COMPLETE, TASK_COMPLETE, TASK_FAILED, TASK_STARTED
from buildy.core.settings import BuildySettings
from buildy.orchestration.contract import RunnerState
from buildy.orchestration.queue import Queue, QueueState
from buildy.orchestration.signal import CompletionSignal
from buildy.orchestration.task import TaskRecord, TaskType
from buildy.orchestration.testing import (
    EventRecorder,
    ScriptedRunner,
    SilentRunner,
    assert_queue_completed,
    assert_queue_halted,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RaisingRunner:
    """Runner whose exec raises before signaling."""

    def __init__(self, exc: Exception, *, is_async: bool = False) -> None:
        self.state = RunnerState()
        self._exc = exc
        self._async = is_async

    def exec(self, task_type: str, spec: Any, signal: CompletionSignal) -> Any:
        if self._async:
            return self._raise_later()
        raise self._exc

    async def _raise_later(self) -> None:
        await asyncio.sleep(0)
        raise self._exc

    def spawn(self, state: RunnerState) -> RaisingRunner:
        return RaisingRunner(self._exc, is_async=self._async)


class DoubleSignalRunner:
    """Runner that signals success twice and records the rejection."""

    def __init__(self) -> None:
        self.state = RunnerState()
        self.rejections: list[SignalError] = []

    def exec(self, task_type: str, spec: Any, signal: CompletionSignal) -> None:
        signal.succeed(task_type)
        try:
            signal.succeed("again")
        except SignalError as exc:
            self.rejections.append(exc)

    def spawn(self, state: RunnerState) -> DoubleSignalRunner:
        return DoubleSignalRunner()


class RecordingLogger:
    """structlog-style logger double that records calls."""

    def __init__(self, entries: list | None = None, context: dict | None = None) -> None:
        self.entries = entries if entries is not None else []
        self.context = context or {}

    def bind(self, **kwargs: Any) -> RecordingLogger:
        return RecordingLogger(self.entries, {**self.context, **kwargs})

    def _log(self, level: str, event: str, **kwargs: Any) -> None:
        self.entries.append({"level": level, "event": event, **self.context, **kwargs})

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log("debug", event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log("warning", event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log("error", event, **kwargs)


def _chain(name: str = "q", *types: str) -> Queue:
    queue = Queue(name)
    for task_type in types or ("a", "b", "c"):
        queue.append(task_type)
    return queue


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


class TestAppend:
    def test_fluent_append(self):
        queue = Queue("build")
        assert queue.append("files", "*.js") is queue
        assert queue.tasks == (TaskRecord("files", "*.js"),)
        assert len(queue) == 1

    def test_accepts_task_type_enum(self):
        queue = Queue().append(TaskType.CONCAT)
        assert queue.tasks[0].type == "concat"

    def test_defaults(self):
        queue = Queue()
        assert queue.name == "queue"
        assert queue.options == {}
        assert queue.ancestry == ()
        assert queue.position == 0
        assert queue.state is QueueState.IDLE
        assert queue.runner is None
        assert queue.current_task is None

    def test_options_pass_through(self):
        options = {"verbose": True}
        assert Queue("q", options).options is options

    def test_cannot_chain_after_fork(self):
        queue = Queue("build").fork({"a": lambda q, r: None})
        with pytest.raises(QueueStructureError, match="after a fork"):
            queue.append("write", "out.js")

    def test_fork_spec_is_validated(self):
        with pytest.raises(QueueStructureError):
            Queue().fork({})

    def test_fork_spec_is_read_only(self):
        queue = Queue().fork({"a": lambda q, r: None})
        with pytest.raises(TypeError):
            queue.tasks[0].spec["b"] = print

    @pytest.mark.asyncio
    async def test_append_after_run_rejected(self):
        queue = _chain("q", "a")
        await queue.run(ScriptedRunner())
        with pytest.raises(QueueStateError):
            queue.append("b")

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            Queue(task_timeout=0)

    def test_from_settings(self):
        queue = Queue.from_settings("q", BuildySettings(_env_file=None, task_timeout=3))
        assert queue.task_timeout == 3.0

    def test_from_settings_explicit_timeout_wins(self):
        settings = BuildySettings(_env_file=None, task_timeout=3)
        assert Queue.from_settings("q", settings, task_timeout=1).task_timeout == 1

    def test_repr(self):
        assert repr(_chain("q", "a", "b")) == "Queue('q', state=idle, position=0/2)"


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


class TestRunGuards:
    @pytest.mark.asyncio
    async def test_run_empty_queue(self):
        with pytest.raises(QueueStructureError):
            await Queue("empty").run(ScriptedRunner())

    @pytest.mark.asyncio
    async def test_run_twice(self):
        queue = _chain("q", "a")
        await queue.run(ScriptedRunner())
        with pytest.raises(QueueStateError):
            await queue.run(ScriptedRunner())

    @pytest.mark.asyncio
    async def test_next_before_run(self):
        with pytest.raises(QueueStateError, match="no bound runner"):
            await _chain().next()

    @pytest.mark.asyncio
    async def test_next_on_halted_queue(self):
        queue = _chain()
        await queue.run(ScriptedRunner(errors={"a": "E"}))
        with pytest.raises(QueueStateError):
            await queue.next()
        assert queue.position == 0

    @pytest.mark.asyncio
    async def test_next_while_dispatched(self):
        queue = _chain("q", "a")
        running = asyncio.ensure_future(queue.run(SilentRunner()))
        await asyncio.sleep(0)
        assert queue.state is QueueState.DISPATCHED
        with pytest.raises(QueueStateError):
            await queue.next()
        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running


# ---------------------------------------------------------------------------
# Sequential execution
# ---------------------------------------------------------------------------


class TestSequentialExecution:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("defer", [False, True])
    async def test_all_tasks_succeed(self, defer):
        queue = _chain("q", "a", "b", "c", "d")
        recorder = EventRecorder.attach(queue)
        runner = ScriptedRunner(results={"a": 1, "b": 2}, defer=defer)

        await queue.run(runner)

        assert_queue_completed(queue)
        assert [c[0] for c in runner.calls] == ["a", "b", "c", "d"]
        assert len(recorder.of_type(TASK_STARTED)) == 4
        assert len(recorder.of_type(TASK_COMPLETE)) == 4
        assert len(recorder.of_type(QUEUE_COMPLETE)) == 1
        assert recorder.types()[-1] == QUEUE_COMPLETE

    @pytest.mark.asyncio
    async def test_position_advances_once_per_success(self):
        queue = _chain()
        seen: list[tuple[str, int]] = []
        queue.subscribe(TASK_STARTED, lambda e: seen.append(("started", queue.position)))
        queue.subscribe(TASK_COMPLETE, lambda e: seen.append(("complete", queue.position)))

        await queue.run(ScriptedRunner())

        assert seen == [
            ("started", 0), ("complete", 0),
            ("started", 1), ("complete", 1),
            ("started", 2), ("complete", 2),
        ]
        assert queue.position == 3

    @pytest.mark.asyncio
    async def test_next_task_waits_for_signal(self):
        queue = _chain("q", "a", "b")
        runner = SilentRunner()
        running = asyncio.ensure_future(queue.run(runner))
        await asyncio.sleep(0.01)

        assert len(runner.signals) == 1
        assert queue.state is QueueState.DISPATCHED

        runner.signals[0].succeed("A")
        await asyncio.sleep(0.01)
        assert len(runner.signals) == 2
        assert queue.position == 1

        runner.signals[1].succeed("B")
        await running
        assert_queue_completed(queue)

    @pytest.mark.asyncio
    async def test_state_is_dispatched_during_exec(self):
        queue = _chain("q", "a")
        states: list[QueueState] = []

        class Probe(ScriptedRunner):
            def exec(self, task_type, spec, signal):
                states.append(queue.state)
                return super().exec(task_type, spec, signal)

        await queue.run(Probe())
        assert states == [QueueState.DISPATCHED]

    @pytest.mark.asyncio
    async def test_next_on_complete_queue_is_noop(self):
        queue = _chain("q", "a")
        recorder = EventRecorder.attach(queue)
        await queue.run(ScriptedRunner())

        await queue.next()
        await queue.next()

        assert len(recorder.of_type(QUEUE_COMPLETE)) == 1
        assert queue.position == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_halts_queue(self):
        queue = _chain()
        recorder = EventRecorder.attach(queue)

        await queue.run(ScriptedRunner(errors={"b": "E"}))

        assert_queue_halted(queue, position=1)
        assert queue.is_terminal
        started = [e.payload["position"] for e in recorder.of_type(TASK_STARTED)]
        assert started == [0, 1]
        failed = recorder.of_type(TASK_FAILED)
        assert len(failed) == 1
        assert failed[0].payload["error"] == "E"
        assert failed[0].payload["task"] == TaskRecord("b")
        assert recorder.of_type(QUEUE_COMPLETE) == []

    @pytest.mark.asyncio
    async def test_sync_exec_exception_becomes_failure(self):
        queue = _chain("q", "a", "b")
        recorder = EventRecorder.attach(queue)
        boom = RuntimeError("boom")

        await queue.run(RaisingRunner(boom))

        assert_queue_halted(queue, position=0)
        assert recorder.of_type(TASK_FAILED)[0].payload["error"] is boom

    @pytest.mark.asyncio
    async def test_async_exec_exception_becomes_failure(self):
        queue = _chain("q", "a", "b")
        recorder = EventRecorder.attach(queue)

        await queue.run(RaisingRunner(ValueError("later"), is_async=True))

        assert_queue_halted(queue, position=0)
        error = recorder.of_type(TASK_FAILED)[0].payload["error"]
        assert isinstance(error, ValueError)

    @pytest.mark.asyncio
    async def test_double_signal_rejected_first_outcome_stands(self):
        queue = _chain("q", "a", "b")
        recorder = EventRecorder.attach(queue)
        runner = DoubleSignalRunner()

        await queue.run(runner)

        assert len(runner.rejections) == 2
        assert [e.payload["result"] for e in recorder.of_type(TASK_COMPLETE)] == ["a", "b"]
        assert_queue_completed(queue)

    @pytest.mark.asyncio
    async def test_observer_error_does_not_break_queue(self):
        queue = _chain()

        def explode(event):
            raise RuntimeError("observer bug")

        queue.subscribe("*", explode)
        await queue.run(ScriptedRunner())
        assert_queue_completed(queue)


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class TestTimeout:
    @pytest.mark.asyncio
    async def test_unsignaled_task_times_out(self):
        queue = Queue("slow", task_timeout=0.02).append("a").append("b")
        recorder = EventRecorder.attach(queue)
        runner = SilentRunner()

        await queue.run(runner)

        assert_queue_halted(queue, position=0)
        error = recorder.of_type(TASK_FAILED)[0].payload["error"]
        assert isinstance(error, TaskTimeoutError)
        assert error.context.queue == "slow"
        assert len(runner.signals) == 1

        # a late signal after the timeout is dropped
        runner.signals[0].succeed("late")
        assert queue.position == 0

    @pytest.mark.asyncio
    async def test_no_timeout_by_default(self):
        queue = _chain("q", "a")
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(queue.run(SilentRunner()), 0.02)


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


class TestEventPayloads:
    @pytest.mark.asyncio
    async def test_payload_fields(self):
        queue = Queue("child", ancestry=("root",)).append("write", "out.js")
        recorder = EventRecorder.attach(queue)

        await queue.run(ScriptedRunner(results={"write": "R"}))

        started, complete, done = recorder.events
        assert started.payload == {
            "queue_name": "child",
            "ancestry": ["root"],
            "position": 0,
            "task_type": "write",
        }
        assert complete.payload == {
            "queue_name": "child",
            "task": TaskRecord("write", "out.js"),
            "result": "R",
        }
        assert done.payload == {"queue_name": "child"}
        assert {e.source for e in recorder.events} == {"child"}
        assert {e.correlation_id for e in recorder.events} == {"root/child"}

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        queue = _chain()
        received = []
        sub = queue.subscribe("*", received.append)
        queue.unsubscribe(sub)
        await queue.run(ScriptedRunner())
        assert received == []


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLogging:
    @pytest.mark.asyncio
    async def test_injected_logger(self):
        logger = RecordingLogger()
        queue = Queue("build", logger=logger).append("a").append("b")

        await queue.run(ScriptedRunner(errors={"b": "E"}))

        events = [(e["level"], e["event"]) for e in logger.entries]
        assert events == [
            ("debug", "task_started"),
            ("info", "task_completed"),
            ("debug", "task_started"),
            ("error", "task_failed"),
        ]
        assert all(e["queue"] == "build" for e in logger.entries)

    @pytest.mark.asyncio
    async def test_default_logger_is_structlog(self):
        with structlog.testing.capture_logs() as logs:
            queue = _chain("q", "a")
            await queue.run(ScriptedRunner())

        completed = [log for log in logs if log["event"] == "queue_completed"]
        assert completed and completed[0]["queue"] == "q"
