"""Scheduler events and the listener registry.

Why This Module Exists
----------------------
Observers (progress bars, UIs, throttling policies) need to hook into
scheduling decisions without the scheduler knowing about them. The
``EventDispatcher`` keeps one ordered listener set per event type and
offers two ways to fire them:

``dispatch``
    Fire-and-forget. Listener return values are ignored, except that
    awaitables are scheduled as tasks so they still run.

``dispatch_waitable``
    Returns ``None`` when every listener finished synchronously, or a
    single future that settles once all listener awaitables have settled
    (failing if any of them fails). The clump engine uses this for
    ``progress`` so an async listener can stall scheduling.

Usage::

    from nobl import EventType, Nobl

    nobl = Nobl()

    def on_progress(event):
        print(event.type, event.scheduler.running)

    nobl.add_listener(EventType.PROGRESS, on_progress)

    async def throttle_ui(event):
        await asyncio.sleep(0.05)   # scheduler waits for this

    nobl.add_listener("progress", throttle_ui)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from nobl.core.logging import get_logger

if TYPE_CHECKING:
    from nobl.scheduler import Nobl

__all__ = [
    "Event",
    "EventType",
    "Listener",
    "EventDispatcher",
]

logger = get_logger(__name__)


class EventType(str, Enum):
    """Events fired by a scheduler."""

    CANCEL = "cancel"
    PROGRESS = "progress"
    PAUSE = "pause"
    RESUME = "resume"
    INTERRUPT = "interrupt"
    SLEEP = "sleep"
    WAIT = "wait"
    DURATION = "duration"
    THROTTLE = "throttle"


@dataclass(frozen=True)
class Event:
    """Record passed to every listener.

    Attributes:
        type: What happened
        scheduler: The scheduler that fired the event
    """

    type: EventType
    scheduler: Nobl


Listener = Callable[[Event], Awaitable[Any] | None]


class EventDispatcher:
    """Per-event-type listener sets for one scheduler.

    Listeners fire in registration order. Every dispatch iterates over a
    snapshot, so adding or removing listeners from inside a listener only
    affects later dispatches.
    """

    def __init__(self, scheduler: Nobl) -> None:
        self._scheduler = scheduler
        # strong references to fire-and-forget listener tasks
        self._tasks: set[asyncio.Future[Any]] = set()
        # dict keys double as an insertion-ordered set
        self._listeners: dict[EventType, dict[Listener, None]] = {}

    # ── Registration ─────────────────────────────────────────────────

    def add_listener(self, event_type: EventType | str, listener: Listener) -> None:
        """Register ``listener`` for ``event_type``. Adding twice is a no-op."""
        key = EventType(event_type)
        self._listeners.setdefault(key, {})[listener] = None

    def remove_listener(self, event_type: EventType | str, listener: Listener) -> None:
        """Unregister ``listener``. Unknown listeners are ignored."""
        key = EventType(event_type)
        listeners = self._listeners.get(key)
        if listeners is not None:
            listeners.pop(listener, None)

    def listener_count(self, event_type: EventType | str | None = None) -> int:
        """Number of listeners for one event type, or for all of them."""
        if event_type is None:
            return sum(len(listeners) for listeners in self._listeners.values())
        return len(self._listeners.get(EventType(event_type), ()))

    # ── Dispatch ─────────────────────────────────────────────────────

    def _call_all(self, event_type: EventType) -> list[Awaitable[Any]]:
        listeners = self._listeners.get(event_type)
        if not listeners:
            return []

        event = Event(type=event_type, scheduler=self._scheduler)
        pending: list[Awaitable[Any]] = []
        for listener in list(listeners):
            result = listener(event)
            if result is not None and inspect.isawaitable(result):
                pending.append(result)
        return pending

    def dispatch(self, event_type: EventType) -> None:
        """Fire listeners without waiting for them.

        Synchronous listener exceptions propagate to the caller. Failures of
        awaitable results are logged, since nobody is waiting on them.
        """
        for awaitable in self._call_all(event_type):
            task = asyncio.ensure_future(awaitable)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(
                lambda fut, kind=event_type: _log_detached_failure(kind, fut)
            )

    def dispatch_waitable(self, event_type: EventType) -> asyncio.Future[Any] | None:
        """Fire listeners and return a future for their async completions.

        Returns:
            ``None`` if no listener returned an awaitable, otherwise a future
            that resolves after all of them and fails with the first failure.
        """
        pending = self._call_all(event_type)
        if not pending:
            return None
        return asyncio.gather(*pending)


def _log_detached_failure(event_type: EventType, future: asyncio.Future[Any]) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(
            "nobl.listener.failed",
            event_type=event_type.value,
            error=str(error),
            error_type=type(error).__name__,
        )
