"""
Structured error types for buildy.

Provides a small hierarchy of typed errors with metadata for error
categorization, logging and root cause analysis through error chaining.

Instead of generic exceptions that lose context, BuildyError and its
subclasses carry:
- **Category:** What kind of error (orchestration, task, config, ...)
- **Retryable:** Whether the operation could succeed if attempted again
- **Context:** Queue name, ancestry, task type and position
- **Cause:** Chained underlying exception

Manifesto:
    - **Typed Error Hierarchy:** Structural errors raise, task failures are
      reported as events; both share one base class
    - **Rich Context:** Errors carry the queue lineage for correlation
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        BuildyError                           │
        │          (category, retryable, context, cause)               │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError        OrchestrationError       TaskError       │
        │  (CONFIG)           (ORCHESTRATION)          (TASK)          │
        │                          │                       │           │
        │                     QueueError          UnknownTaskTypeError │
        │                     ├ QueueStructureError  TaskTimeoutError  │
        │                     ├ QueueStateError                        │
        │                     ├ SignalError                            │
        │                     └ ForkError                              │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = TaskTimeoutError("concat", 5.0)
    >>> error.retryable
    True
    >>> error.with_context(queue="build").context.queue
    'build'

Tags:
    error-handling, exception-hierarchy, error-context, buildy

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        CONFIG: Missing config, invalid settings
        ORCHESTRATION: Queue structure, state and fork errors
        TASK: Failures raised by or on behalf of a task handler
        TIMEOUT: A task did not signal within its allowed time
        INTERNAL: Bugs, unexpected state
    """

    CONFIG = "CONFIG"                # Missing config, invalid settings
    ORCHESTRATION = "ORCHESTRATION"  # Queue, signal, fork errors
    TASK = "TASK"                    # Task handler failures
    TIMEOUT = "TIMEOUT"              # Unsignaled task past its deadline
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        queue: Name of the queue where the error occurred
        ancestry: Parent queue names, oldest first
        task_type: Task-type identifier of the task involved
        position: Cursor position of the task involved
        metadata: Additional key-value pairs
    """

    queue: str | None = None
    ancestry: tuple[str, ...] | None = None
    task_type: str | None = None
    position: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["queue", "task_type", "position"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.ancestry is not None:
            result["ancestry"] = list(self.ancestry)
        if self.metadata:
            result.update(self.metadata)
        return result


class BuildyError(Exception):
    """
    Base exception for all buildy errors.

    Subclasses set ``default_category`` and ``default_retryable`` class
    attributes to provide defaults for their domain.

    Examples:
        >>> error = BuildyError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BuildyError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueueStateError("already ran").with_context(queue="build")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BuildyError):
    """Missing or invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(BuildyError):
    """Base for queue and fork errors."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class QueueError(OrchestrationError):
    """Base exception for all queue errors."""

    pass


class QueueStructureError(QueueError):
    """Raised when a queue's task list cannot be executed as built.

    Covers running an empty or exhausted queue, chaining after a fork and
    malformed fork specifications.
    """

    pass


class QueueStateError(QueueError):
    """Raised when an operation is not allowed in the queue's current state."""

    def __init__(self, message: str, state: str | None = None, **kwargs: Any):
        self.state = state
        super().__init__(message, **kwargs)


class SignalError(QueueError):
    """Raised when a completion signal is delivered more than once."""

    pass


class ForkError(QueueError):
    """Raised after a fork when one or more branch continuations raised.

    Every branch continuation is invoked before this is raised, so one
    failing branch never prevents its siblings from starting.
    """

    def __init__(self, queue_name: str, branch_errors: dict[str, Exception]):
        self.queue_name = queue_name
        self.branch_errors = dict(branch_errors)
        names = ", ".join(sorted(self.branch_errors))
        super().__init__(f"Fork of queue '{queue_name}' failed in branches: {names}")


# =============================================================================
# TASK ERRORS
# =============================================================================


class TaskError(BuildyError):
    """Base for failures delivered through a task's completion signal."""

    default_category = ErrorCategory.TASK
    default_retryable = False


class UnknownTaskTypeError(TaskError):
    """Raised when a runner has no handler for a task type."""

    def __init__(self, task_type: str, available: list[str] | None = None):
        self.task_type = task_type
        self.available = sorted(available or [])
        listed = ", ".join(self.available) if self.available else "(none)"
        super().__init__(f"Unknown task type '{task_type}'. Available: {listed}")


class TaskTimeoutError(TaskError):
    """Raised when a dispatched task does not signal within its timeout."""

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True

    def __init__(self, task_type: str, timeout: float):
        self.task_type = task_type
        self.timeout = timeout
        super().__init__(f"Task '{task_type}' did not signal within {timeout}s")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BuildyError",
    "ConfigError",
    "OrchestrationError",
    "QueueError",
    "QueueStructureError",
    "QueueStateError",
    "SignalError",
    "ForkError",
    "TaskError",
    "UnknownTaskTypeError",
    "TaskTimeoutError",
]
