"""
nobl - Non-blocking loops for asyncio.

Run a long generator computation in time-sliced "clumps" so the event loop
stays responsive::

    from nobl import Nobl

    nobl = Nobl(duration=10)
    result = await nobl.run(my_generator())

Modules
-------
scheduler   Nobl: run/cancel/pause/resume/next/interrupt/sleep/wait
events      EventType, Event and the listener registry
operation   Operation: one in-flight computation and its future
core        errors, structured logging, settings
"""

__version__ = "0.1.0"

from nobl.core.errors import (
    CompletionCancelledError,
    ContextViolationError,
    ErrorCategory,
    InvalidConfigError,
    ListenerError,
    NoblError,
    OperationCancelledError,
)
from nobl.core.settings import NoblSettings
from nobl.events import Event, EventDispatcher, EventType, Listener
from nobl.operation import Operation, StepOutcome
from nobl.scheduler import Nobl, RunState, SchedulerStatus

__all__ = [
    "__version__",
    "Nobl",
    "RunState",
    "SchedulerStatus",
    "Event",
    "EventDispatcher",
    "EventType",
    "Listener",
    "Operation",
    "StepOutcome",
    "NoblSettings",
    "ErrorCategory",
    "NoblError",
    "OperationCancelledError",
    "ContextViolationError",
    "ListenerError",
    "CompletionCancelledError",
    "InvalidConfigError",
]
