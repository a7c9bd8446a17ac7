"""Tests for Operation and computation normalisation."""

import asyncio

import pytest

from nobl.operation import Operation, as_iterator


def counter(limit):
    received = []
    for _ in range(limit):
        received.append((yield len(received)))
    return received


@pytest.fixture
def future():
    loop = asyncio.new_event_loop()
    try:
        yield loop.create_future()
    finally:
        loop.close()


class TestAsIterator:
    def test_generator_passes_through(self):
        gen = counter(1)
        assert as_iterator(gen) is gen

    def test_plain_iterator_passes_through(self):
        it = iter([1, 2])
        assert as_iterator(it) is it

    def test_factory_is_called(self):
        assert list(as_iterator(lambda: iter("ab"))) == ["a", "b"]

    def test_generator_function_is_a_factory(self):
        def work():
            yield 1

        assert next(as_iterator(work)) == 1

    @pytest.mark.parametrize("value", [None, 5, [1, 2], "text"])
    def test_rejects_non_iterators(self, value):
        with pytest.raises(TypeError, match="not a computation"):
            as_iterator(value)

    def test_rejects_bad_factory(self):
        with pytest.raises(TypeError, match="factory returned list"):
            as_iterator(lambda: [1])


class TestAdvance:
    def test_sends_fed_values(self, future):
        op = Operation(counter(3), future)
        assert op.advance() == 0
        op.feed("a")
        assert op.advance() == 1
        # nothing fed: None is sent
        assert op.advance() == 2
        op.feed("c")
        with pytest.raises(StopIteration) as info:
            op.advance()
        assert info.value.value == ["a", None, "c"]

    def test_feed_without_value_keeps_previous(self, future):
        op = Operation(counter(2), future)
        op.advance()
        op.feed("kept")
        op.feed()
        op.advance()
        with pytest.raises(StopIteration) as info:
            op.advance()
        assert info.value.value == ["kept", None]

    def test_error_is_thrown_in(self, future):
        def work():
            try:
                yield
            except KeyError:
                yield "caught"

        op = Operation(work(), future)
        op.advance()
        op.feed(error=KeyError("k"))
        assert op.advance() == "caught"

    def test_error_raised_for_plain_iterator(self, future):
        op = Operation(iter([1, 2]), future)
        assert op.advance() == 1
        op.feed(error=OSError("no throw"))
        with pytest.raises(OSError, match="no throw"):
            op.advance()

    def test_plain_iterator_ignores_fed_values(self, future):
        op = Operation(iter([1, 2]), future)
        op.feed("ignored")
        assert op.advance() == 1
        assert op.advance() == 2
        with pytest.raises(StopIteration):
            op.advance()


class TestSettle:
    def test_succeed_once(self, future):
        op = Operation(iter([]), future)
        op.succeed(1)
        op.succeed(2)
        op.fail(ValueError())
        assert op.settled
        assert future.result() == 1

    def test_fail_once(self, future):
        op = Operation(iter([]), future)
        error = ValueError("first")
        op.fail(error)
        op.fail(ValueError("second"))
        assert future.exception() is error

    def test_cancelled_future_counts_as_settled(self, future):
        op = Operation(iter([]), future)
        future.cancel()
        assert op.settled
        op.succeed("late")
        assert future.cancelled()

    def test_cancelled_error_cancels_the_future(self, future):
        op = Operation(iter([]), future)
        op.fail(asyncio.CancelledError())
        assert future.cancelled()
        assert op.settled
