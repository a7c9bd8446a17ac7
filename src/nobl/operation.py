"""One in-flight run: the computation plus its result future.

A computation is anything that can be stepped:

- a generator (preferred): ``value = yield awaitable`` receives the
  awaited result on the next step, and failures are thrown back in;
- any other iterator: advanced with ``next()``; it cannot receive values;
- a zero-argument callable returning either of the above.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator, Iterator
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from nobl.core.logging import get_logger

T = TypeVar("T")

Computation = Union[
    Generator[Any, Any, T],
    Iterator[Any],
    Callable[[], Union[Generator[Any, Any, T], Iterator[Any]]],
]

logger = get_logger(__name__)

_NOTHING = object()


class StepOutcome(str, Enum):
    """Result of advancing a computation by one step."""

    YIELDED = "yielded"
    FINISHED = "finished"
    FAILED = "failed"


def as_iterator(computation: Computation[T]) -> Iterator[Any]:
    """Normalise a computation argument to the iterator that gets stepped."""
    if isinstance(computation, Iterator):
        return computation
    if callable(computation):
        iterator = computation()
        if not isinstance(iterator, Iterator):
            raise TypeError(
                f"computation factory returned {type(iterator).__name__}, expected an iterator"
            )
        return iterator
    raise TypeError(f"{type(computation).__name__} is not a computation")


class Operation(Generic[T]):
    """Pairs a computation with the future that reports its outcome.

    ``succeed`` and ``fail`` settle the future at most once between them.
    If the host already cancelled the future, both are no-ops.
    """

    def __init__(self, iterator: Iterator[Any], future: asyncio.Future[T]) -> None:
        self.iterator = iterator
        self.future = future
        self._send_value: Any = None
        self._throw_error: BaseException | None = None
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled or self.future.done()

    def feed(self, value: Any = _NOTHING, error: BaseException | None = None) -> None:
        """Set what the next ``advance`` hands to the computation."""
        if error is not None:
            self._throw_error = error
            self._send_value = None
        elif value is not _NOTHING:
            self._send_value = value

    def advance(self) -> Any:
        """Resume the computation once; returns whatever it yielded.

        Raises ``StopIteration`` when it finishes and anything it raises
        when it fails.
        """
        value, error = self._send_value, self._throw_error
        self._send_value = None
        self._throw_error = None

        if error is not None:
            throw = getattr(self.iterator, "throw", None)
            if throw is None:
                raise error
            return throw(error)
        send = getattr(self.iterator, "send", None)
        if send is None:
            return next(self.iterator)
        return send(value)

    def succeed(self, value: T) -> None:
        if self.settled:
            logger.debug("nobl.operation.already_settled", outcome="succeed")
            return
        self._settled = True
        self.future.set_result(value)

    def fail(self, error: BaseException) -> None:
        if self.settled:
            logger.debug("nobl.operation.already_settled", outcome="fail")
            return
        self._settled = True
        if isinstance(error, asyncio.CancelledError):
            # a computation that cancels itself cancels its handle
            self.future.cancel()
            return
        self.future.set_exception(error)

