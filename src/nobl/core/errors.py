"""
Structured error types for the nobl scheduler.

Every failure the scheduler produces is either the caller's own exception
(raised by the computation and passed through untouched) or a subclass of
``NoblError``. NoblError carries a category and a small context record so
that a failed run can be logged and routed without string matching.

Manifesto:
    - **Typed Error Hierarchy:** Cancellation, misuse and listener failures
      are different things and get different classes
    - **Synchronous Misuse:** Calling a control method in the wrong context
      raises immediately at the call site, never through the run handle
    - **Rich Context:** Errors carry the method and scheduler state involved
    - **Error Chaining:** Wrapped exceptions stay reachable via ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         NoblError                             │
        │               (category, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  OperationCancelledError   ContextViolationError              │
        │  (CANCELLED)               (CONTEXT)                          │
        │                                                               │
        │  ListenerError             CompletionCancelledError           │
        │  (LISTENER)                (COMPUTATION)                      │
        │                                                               │
        │  InvalidConfigError                                           │
        │  (CONFIG)                                                     │
        └──────────────────────────────────────────────────────────────┘

Examples:
    Cancellation surfaces through the run handle:

    >>> try:
    ...     await nobl.run(work())
    ... except OperationCancelledError:
    ...     print("cancelled")

    Misuse surfaces at the call site:

    >>> nobl.interrupt()
    Traceback (most recent call last):
    ...
    ContextViolationError: interrupt can only be called inside the operation

Guardrails:
    ❌ DON'T: Raise OperationCancelledError for anything but a cancel
    ✅ DO: Let the computation's own exceptions propagate unwrapped

Tags:
    error-handling, exception-hierarchy, nobl, scheduler
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Examples:
        >>> ErrorCategory.CANCELLED.value
        'CANCELLED'
        >>> categorize_error(ValueError("boom"))
        <ErrorCategory.COMPUTATION: 'COMPUTATION'>
    """

    CANCELLED = "CANCELLED"
    CONTEXT = "CONTEXT"
    COMPUTATION = "COMPUTATION"
    LISTENER = "LISTENER"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a NoblError.

    Attributes:
        method: Scheduler method involved (``"next"``, ``"interrupt"``...)
        event_type: Event being dispatched when the error happened
        state: Scheduler run state at the time of the error
        metadata: Anything else worth logging
    """

    method: str | None = None
    event_type: str | None = None
    state: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting unset fields."""
        result: dict[str, Any] = {}
        if self.method:
            result["method"] = self.method
        if self.event_type:
            result["event_type"] = self.event_type
        if self.state:
            result["state"] = self.state
        if self.metadata:
            result["metadata"] = self.metadata
        return result


class NoblError(Exception):
    """
    Base class for all nobl errors.

    Examples:
        >>> error = NoblError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = NoblError("bad").with_context(method="next", attempt=2)
        >>> error.context.method
        'next'
        >>> error.context.metadata
        {'attempt': 2}

        >>> error.to_dict()["category"]
        'INTERNAL'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> NoblError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NoblError("Failed").with_context(method="run", state="IDLE")
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
# RUN HANDLE ERRORS
# =============================================================================


class OperationCancelledError(NoblError):
    """The run was cancelled before the computation finished."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "operation cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class ListenerError(NoblError):
    """A progress listener failed; the run was aborted."""

    default_category = ErrorCategory.LISTENER

    def __init__(self, event_type: str, cause: BaseException):
        super().__init__(
            f"{event_type} listener failed: {cause}",
            context=ErrorContext(event_type=event_type),
            cause=cause,
        )
        self.event_type = event_type


class CompletionCancelledError(NoblError):
    """A completion the computation was waiting on got cancelled.

    Thrown into the computation on its next resumption, so it can be
    handled there like any other failed wait.
    """

    default_category = ErrorCategory.COMPUTATION

    def __init__(self, message: str = "awaited completion was cancelled"):
        super().__init__(message)


# =============================================================================
# SYNCHRONOUS ERRORS
# =============================================================================


class ContextViolationError(NoblError):
    """A control method was called where it is not allowed."""

    default_category = ErrorCategory.CONTEXT

    def __init__(self, method: str, when: str):
        super().__init__(
            f"{method} can only be called {when}",
            context=ErrorContext(method=method),
        )
        self.method = method
        self.when = when


class InvalidConfigError(NoblError):
    """A configuration value was rejected."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, key: str, value: Any, message: str | None = None):
        super().__init__(message or f"Invalid value for {key}: {value!r}")
        self.key = key
        self.value = value


# =============================================================================
# HELPERS
# =============================================================================


def categorize_error(error: BaseException) -> ErrorCategory:
    """Return the category for any exception.

    Anything that is not a NoblError came out of the caller's computation.
    """
    if isinstance(error, NoblError):
        return error.category
    return ErrorCategory.COMPUTATION


def is_cancellation(error: BaseException) -> bool:
    """True if ``error`` is the scheduler's cancellation signal."""
    return isinstance(error, OperationCancelledError)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "NoblError",
    "OperationCancelledError",
    "ListenerError",
    "CompletionCancelledError",
    "ContextViolationError",
    "InvalidConfigError",
    "categorize_error",
    "is_cancellation",
]
