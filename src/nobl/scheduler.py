"""Cooperative, time-sliced scheduler for generator computations.

┌──────────────────────────────────────────────────────────────────────────────┐
│  NOBL - NON-BLOCKING LOOPS                                                    │
│                                                                               │
│  A long computation written as a generator is stepped in "clumps": bursts    │
│  of steps bounded by a wall-clock budget. Between clumps control goes back   │
│  to the asyncio event loop, so the loop keeps serving everything else.       │
│                                                                               │
│   run(gen) ──► progress ──► call_later(idle) ──► _clump()                    │
│                                                    │                          │
│                                   ┌────────────────┘                          │
│                                   ▼                                           │
│                  while budget left and not interrupted/paused/waiting:       │
│                      _step()  ── send() into the generator                   │
│                                   │                                           │
│                                   ▼                                           │
│                  progress (waitable) ──► next clump, or stop                 │
│                                                                               │
│  Cycle split:                                                                 │
│    work_duration = duration * throttle   (stepping budget per clump)         │
│    idle_duration = duration - work        (deferral before each clump)        │
│                                                                               │
│  Control surface:                                                             │
│    outside a step: cancel, pause, resume, next                               │
│    inside a step:  interrupt, sleep, wait                                    │
│    anywhere:       duration, throttle                                         │
└──────────────────────────────────────────────────────────────────────────────┘

Example::

    nobl = Nobl(duration=10)

    def count_rows(rows):
        total = 0
        for row in rows:
            total += len(row)
            yield
        return total

    total = await nobl.run(count_rows(rows))
"""

from __future__ import annotations

import asyncio
import inspect
import math
import numbers
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from nobl.core.errors import (
    CompletionCancelledError,
    ContextViolationError,
    InvalidConfigError,
    ListenerError,
    OperationCancelledError,
)
from nobl.core.logging import get_logger
from nobl.core.settings import DEFAULT_DURATION_MS, DEFAULT_THROTTLE, NoblSettings
from nobl.events import EventDispatcher, EventType, Listener
from nobl.operation import Computation, Operation, StepOutcome, as_iterator

__all__ = ["Nobl", "RunState", "SchedulerStatus"]

T = TypeVar("T")

logger = get_logger(__name__)


class RunState(str, Enum):
    """Coarse scheduler state, derived from the individual flags."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    SLEEPING = "SLEEPING"
    WAITING = "WAITING"


@dataclass
class SchedulerStatus:
    """Point-in-time snapshot of a scheduler."""

    state: RunState
    paused: bool
    waiting: bool
    sleeping: bool
    duration: float
    throttle: float
    steps: int
    clumps: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "paused": self.paused,
            "waiting": self.waiting,
            "sleeping": self.sleeping,
            "duration": self.duration,
            "throttle": self.throttle,
            "steps": self.steps,
            "clumps": self.clumps,
        }


def _check_duration(value: Any) -> float:
    if (
        isinstance(value, bool)
        or not isinstance(value, numbers.Real)
        or not math.isfinite(value)
        or value <= 0
    ):
        raise InvalidConfigError("duration", value, "duration must be a positive number of milliseconds")
    return float(value)


def _clamp_throttle(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or math.isnan(value):
        raise InvalidConfigError("throttle", value, "throttle must be a number")
    return max(0.0, min(float(value), 1.0))


class Nobl:
    """Runs one generator computation at a time without blocking the loop.

    Parameters
    ----------
    duration : float
        Milliseconds per work/idle cycle (default 20).
    throttle : float
        Share of each cycle spent stepping, clamped to [0, 1] (default 0.5).

    The scheduler is reusable across runs but only one run may be in flight.
    All methods must be called from the thread running the event loop.
    """

    def __init__(
        self,
        duration: float = DEFAULT_DURATION_MS,
        throttle: float = DEFAULT_THROTTLE,
    ) -> None:
        self._duration = _check_duration(duration)
        self._throttle = _clamp_throttle(throttle)

        self._inside = False
        self._interrupted = False
        self._paused = False
        self._sleeping = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._operation: Operation[Any] | None = None
        self._pending: asyncio.Future[Any] | None = None
        self._sleep_timer: asyncio.TimerHandle | None = None
        self._clump_handle: asyncio.TimerHandle | None = None
        self._progress_future: asyncio.Future[Any] | None = None

        self._events = EventDispatcher(self)
        self._steps = 0
        self._clumps = 0

    @classmethod
    def from_settings(cls, settings: NoblSettings | None = None) -> Nobl:
        """Build a scheduler from ``NoblSettings`` (environment by default)."""
        settings = settings or NoblSettings()
        return cls(duration=settings.duration, throttle=settings.throttle)

    # ── Configuration ────────────────────────────────────────────────

    @property
    def duration(self) -> float:
        return self._duration

    @duration.setter
    def duration(self, value: float) -> None:
        value = _check_duration(value)
        if self._inside:
            # the running clump must not keep using the old budget
            self.interrupt()
        if value != self._duration:
            self._duration = value
            self._events.dispatch(EventType.DURATION)

    @property
    def throttle(self) -> float:
        return self._throttle

    @throttle.setter
    def throttle(self, value: float) -> None:
        value = _clamp_throttle(value)
        if value != self._throttle:
            self._throttle = value
            self._events.dispatch(EventType.THROTTLE)

    @property
    def work_duration(self) -> float:
        """Milliseconds of stepping per clump."""
        return self._duration * self._throttle

    @property
    def idle_duration(self) -> float:
        """Milliseconds handed back to the loop before each clump."""
        return self._duration - self.work_duration

    # ── Status ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._operation is not None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def waiting(self) -> bool:
        return self._pending is not None

    @property
    def sleeping(self) -> bool:
        return self._sleeping

    @property
    def inside(self) -> bool:
        """True while the computation is executing a step."""
        return self._inside

    @property
    def state(self) -> RunState:
        if self._operation is None:
            return RunState.IDLE
        if self._paused:
            return RunState.PAUSED
        if self._sleeping:
            return RunState.SLEEPING
        if self._pending is not None:
            return RunState.WAITING
        return RunState.RUNNING

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self.state,
            paused=self._paused,
            waiting=self.waiting,
            sleeping=self._sleeping,
            duration=self._duration,
            throttle=self._throttle,
            steps=self._steps,
            clumps=self._clumps,
        )

    # ── Listeners ────────────────────────────────────────────────────

    def add_listener(self, event_type: EventType | str, listener: Listener) -> None:
        self._events.add_listener(event_type, listener)

    def remove_listener(self, event_type: EventType | str, listener: Listener) -> None:
        self._events.remove_listener(event_type, listener)

    def listener_count(self, event_type: EventType | str | None = None) -> int:
        return self._events.listener_count(event_type)

    # ── Control: outside a step ──────────────────────────────────────

    def run(self, computation: Computation[T]) -> asyncio.Future[T]:
        """Start stepping ``computation``; returns a future for its result.

        The future resolves with the generator's return value, or fails with
        the exception it raised, ``OperationCancelledError`` after
        ``cancel()``, or ``ListenerError`` if a progress listener failed.
        Cancelling the future itself cancels the run.

        Raises:
            ContextViolationError: A run is already in flight.
            RuntimeError: No event loop is running.
        """
        self._only_if_not_running("run")
        loop = asyncio.get_running_loop()
        iterator = as_iterator(computation)

        future: asyncio.Future[T] = loop.create_future()
        operation = Operation(iterator, future)
        self._drop_progress()
        self._loop = loop
        self._operation = operation
        future.add_done_callback(lambda fut: self._on_run_future_done(operation, fut))

        logger.debug(
            "nobl.run.started",
            duration=self._duration,
            throttle=self._throttle,
            paused=self._paused,
        )
        self._dispatch_progress()
        return future

    start = run

    def cancel(self) -> None:
        """Stop the current run; no further step of it will execute.

        No-op when nothing is running.
        """
        self._only_from_outside("cancel")
        operation = self._operation
        self._reset()
        if operation is not None:
            logger.info("nobl.run.cancelled", source="cancel")
            operation.fail(OperationCancelledError())
            self._events.dispatch(EventType.CANCEL)

    def pause(self) -> None:
        self._only_from_outside("pause")
        if not self._paused:
            self._paused = True
            self._events.dispatch(EventType.PAUSE)

    def resume(self) -> None:
        self._only_from_outside("resume")
        if self._paused:
            self._paused = False
            if self._operation is not None:
                self._events.dispatch(EventType.RESUME)
                # a pending wait or progress dispatch restarts the engine itself
                if self._pending is None and self._progress_future is None:
                    self._schedule_clump()

    def next(self) -> None:
        """Run exactly one step while paused, then fire ``progress``."""
        self._only_from_outside("next")
        self._only_if_running("next")
        self._only_if_paused("next")
        if self._pending is not None:
            raise self._violation("next", "when not waiting")
        self._step()
        self._events.dispatch(EventType.PROGRESS)

    # ── Control: inside a step ───────────────────────────────────────

    def interrupt(self) -> None:
        """End the current clump after this step and give the loop a turn."""
        self._only_from_inside("interrupt")
        self._interrupted = True
        self._events.dispatch(EventType.INTERRUPT)

    def sleep(self, delay: float) -> None:
        """Suspend stepping for ``delay`` milliseconds after this step."""
        self._only_from_inside("sleep")
        self._cancel_sleep()
        self._sleeping = True
        self._events.dispatch(EventType.SLEEP)

        future: asyncio.Future[None] = self._loop.create_future()
        self._sleep_timer = self._loop.call_later(max(delay, 0) / 1000, self._wake, future)
        self._suspend_on(future)

    def wait(self, awaitable: Awaitable[Any]) -> None:
        """Suspend stepping until ``awaitable`` settles.

        Its result is sent into the computation on the next step; a failure
        is thrown into it instead.
        """
        self._only_from_inside("wait")
        self._cancel_sleep()
        self._suspend_on(awaitable)

    # ── Step executor ────────────────────────────────────────────────

    def _step(self) -> StepOutcome | None:
        operation = self._operation
        if operation is None:
            return None

        self._inside = True
        self._steps += 1
        try:
            yielded = operation.advance()
            if yielded is not None and inspect.isawaitable(yielded):
                self.wait(yielded)
        except StopIteration as stop:
            self._reset()
            logger.debug("nobl.run.finished", steps=self._steps)
            operation.succeed(stop.value)
            return StepOutcome.FINISHED
        except (Exception, asyncio.CancelledError) as error:
            self._reset()
            logger.info("nobl.run.failed", error_type=type(error).__name__, error=str(error))
            operation.fail(error)
            return StepOutcome.FAILED
        finally:
            self._inside = False
        return StepOutcome.YIELDED

    # ── Clump engine ─────────────────────────────────────────────────

    def _schedule_clump(self) -> None:
        if self._clump_handle is not None:
            return
        self._clump_handle = self._loop.call_later(self.idle_duration / 1000, self._clump)

    def _clump(self) -> None:
        self._clump_handle = None
        self._clumps += 1
        deadline = time.perf_counter() + self.work_duration / 1000
        while (
            not self._interrupted
            and not self._paused
            and self._pending is None
            and self._operation is not None
        ):
            if self._step() is not StepOutcome.YIELDED:
                break
            if time.perf_counter() >= deadline:
                break
        self._dispatch_progress()

    def _dispatch_progress(self) -> None:
        operation = self._operation
        try:
            settled = self._events.dispatch_waitable(EventType.PROGRESS)
        except Exception as error:
            self._abort_for_listener(error)
            return
        if settled is None:
            self._after_progress()
            return
        if operation is None or self._operation is not operation:
            # the run ended before or during this dispatch
            settled.add_done_callback(_log_stale_progress)
            return
        self._progress_future = settled
        settled.add_done_callback(lambda fut: self._on_progress_settled(operation, fut))

    def _drop_progress(self) -> None:
        # a leftover dispatch settles through its own identity check
        self._progress_future = None

    def _on_progress_settled(self, operation: Operation[Any], future: asyncio.Future[Any]) -> None:
        if future is not self._progress_future or self._operation is not operation:
            _log_stale_progress(future)
            return
        self._progress_future = None
        if future.cancelled():
            self._abort_for_listener(asyncio.CancelledError())
            return
        error = future.exception()
        if error is not None:
            self._abort_for_listener(error)
            return
        self._after_progress()

    def _after_progress(self) -> None:
        self._interrupted = False
        if self._pending is None:
            self._continue()

    def _continue(self) -> None:
        if self._operation is not None and not self._paused:
            self._schedule_clump()

    def _abort_for_listener(self, error: BaseException) -> None:
        operation = self._operation
        self._reset()
        logger.warning(
            "nobl.listener.failed",
            event_type=EventType.PROGRESS.value,
            error_type=type(error).__name__,
            error=str(error),
        )
        if operation is not None:
            operation.fail(ListenerError(EventType.PROGRESS.value, error))

    # ── Suspension ───────────────────────────────────────────────────

    def _suspend_on(self, awaitable: Awaitable[Any]) -> None:
        future = asyncio.ensure_future(awaitable, loop=self._loop)
        self._pending = future
        future.add_done_callback(self._on_wait_settled)
        self._events.dispatch(EventType.WAIT)

    def _on_wait_settled(self, future: asyncio.Future[Any]) -> None:
        if future is not self._pending:
            # cancelled or superseded while waiting
            _consume(future)
            return
        self._pending = None

        operation = self._operation
        if operation is not None:
            if future.cancelled():
                operation.feed(error=CompletionCancelledError())
            elif future.exception() is not None:
                operation.feed(error=future.exception())
            else:
                operation.feed(future.result())

        if self._progress_future is None:
            self._continue()

    def _wake(self, future: asyncio.Future[None]) -> None:
        self._sleep_timer = None
        self._sleeping = False
        if not future.done():
            future.set_result(None)

    def _cancel_sleep(self) -> None:
        if self._sleep_timer is not None:
            self._sleep_timer.cancel()
            self._sleep_timer = None
        self._sleeping = False

    # ── Teardown ─────────────────────────────────────────────────────

    def _reset(self) -> None:
        # paused survives: a cancelled scheduler stays paused
        self._inside = False
        self._interrupted = False
        self._operation = None
        self._cancel_sleep()
        self._pending = None
        self._progress_future = None
        if self._clump_handle is not None:
            self._clump_handle.cancel()
            self._clump_handle = None

    def _on_run_future_done(self, operation: Operation[Any], future: asyncio.Future[Any]) -> None:
        if future.cancelled() and self._operation is operation:
            self._reset()
            logger.info("nobl.run.cancelled", source="future")
            self._events.dispatch(EventType.CANCEL)

    # ── Context guards ───────────────────────────────────────────────

    def _violation(self, method: str, when: str) -> ContextViolationError:
        error = ContextViolationError(method, when)
        error.with_context(state=self.state.value)
        return error

    def _only_if_running(self, method: str) -> None:
        if self._operation is None:
            raise self._violation(method, "when running")

    def _only_if_not_running(self, method: str) -> None:
        if self._operation is not None:
            raise self._violation(method, "when not running")

    def _only_if_paused(self, method: str) -> None:
        if not self._paused:
            raise self._violation(method, "when paused")

    def _only_from_inside(self, method: str) -> None:
        if not self._inside:
            raise self._violation(method, "inside the operation")

    def _only_from_outside(self, method: str) -> None:
        if self._inside:
            raise self._violation(method, "outside the operation")


def _consume(future: asyncio.Future[Any]) -> None:
    """Mark a stale future's exception as retrieved."""
    if not future.cancelled():
        future.exception()


def _log_stale_progress(future: asyncio.Future[Any]) -> None:
    """Settle a progress dispatch that no longer belongs to a run."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(
            "nobl.listener.failed",
            event_type=EventType.PROGRESS.value,
            error_type=type(error).__name__,
            error=str(error),
            stale=True,
        )
