"""Wall-clock tests for the clump engine.

These tests run a timed loop that increments a counter once per step,
sample the counter from the event loop at specific frames, and compare the
collected samples.
"""

import asyncio
import time

import pytest

from nobl import Nobl, OperationCancelledError


class TestProgress:
    @pytest.mark.asyncio
    async def test_default_options_one_sample(self):
        count = 0
        sample1 = 0
        seen_running = []
        loop = asyncio.get_running_loop()

        nobl = Nobl()
        assert nobl.running is False

        def take_sample():
            nonlocal sample1
            sample1 = count
            seen_running.append(nobl.running)

        def work():
            nonlocal count
            end = time.monotonic() + 0.1
            loop.call_later(0.05, take_sample)
            while time.monotonic() < end:
                count += 1
                yield
            return "foo"

        future = nobl.start(work)
        assert isinstance(future, asyncio.Future)

        result = await future

        assert nobl.running is False
        assert seen_running == [True]
        assert sample1 > 0
        assert count > sample1
        assert result == "foo"

    @pytest.mark.asyncio
    async def test_more_samples_shorter_duration(self, nobl, frame):
        count = 0
        samples = []
        loop = asyncio.get_running_loop()

        def work():
            nonlocal count
            end = time.monotonic() + frame(4)
            for n in (1, 2, 3):
                loop.call_later(frame(n), lambda: samples.append(count))
            while time.monotonic() < end:
                count += 1
                yield

        await nobl.run(work())

        assert len(samples) == 3
        assert samples[0] > 0
        assert samples[1] > samples[0]
        assert samples[2] > samples[1]
        assert count > samples[2]

    @pytest.mark.asyncio
    async def test_full_throttle_still_yields_to_loop(self, frame):
        count = 0
        samples = []
        loop = asyncio.get_running_loop()
        nobl = Nobl(duration=10, throttle=1)
        assert nobl.idle_duration == 0

        def work():
            nonlocal count
            end = time.monotonic() + frame(3)
            loop.call_later(frame(1), lambda: samples.append(count))
            loop.call_later(frame(2), lambda: samples.append(count))
            while time.monotonic() < end:
                count += 1
                yield

        await nobl.run(work())

        assert samples[0] > 0
        assert samples[1] > samples[0]
        assert count > samples[1]


class TestSleepAndWait:
    @pytest.mark.asyncio
    async def test_sleep(self, nobl, frame):
        count = 0
        samples = []
        flags = []
        loop = asyncio.get_running_loop()

        def take_sample():
            samples.append(count)
            flags.append((nobl.sleeping, nobl.waiting))

        def work():
            nonlocal count
            now = time.monotonic()
            assert nobl.sleeping is False
            assert nobl.waiting is False

            sleep_start = now + frame(1)
            loop.call_later(frame(2), take_sample)
            loop.call_later(frame(3), take_sample)
            sleep_stop = now + frame(4)
            loop.call_later(frame(5), take_sample)
            end = now + frame(6)

            slept = False
            while time.monotonic() < end:
                count += 1
                if not slept and time.monotonic() >= sleep_start:
                    slept = True
                    nobl.sleep((sleep_stop - sleep_start) * 1000)
                yield

        await nobl.run(work())

        assert flags == [(True, True), (True, True), (False, False)]
        assert samples[0] > 0
        assert samples[1] == samples[0]
        assert samples[2] > samples[1]
        assert count > samples[2]

    @pytest.mark.asyncio
    async def test_wait(self, nobl, frame):
        count = 0
        samples = []
        flags = []
        loop = asyncio.get_running_loop()

        def take_sample():
            samples.append(count)
            flags.append((nobl.sleeping, nobl.waiting))

        def work():
            nonlocal count
            now = time.monotonic()
            wait_start = now + frame(1)
            loop.call_later(frame(2), take_sample)
            loop.call_later(frame(3), take_sample)
            wait_stop = now + frame(4)
            loop.call_later(frame(5), take_sample)
            end = now + frame(6)

            waited = False
            while time.monotonic() < end:
                count += 1
                if not waited and time.monotonic() >= wait_start:
                    waited = True
                    nobl.wait(asyncio.sleep(wait_stop - wait_start))
                yield

        await nobl.run(work())

        assert flags == [(False, True), (False, True), (False, False)]
        assert samples[0] > 0
        assert samples[1] == samples[0]
        assert samples[2] > samples[1]
        assert count > samples[2]


class TestProgressListeners:
    @pytest.mark.asyncio
    async def test_progress_synchronous(self, nobl, frame):
        count = 0
        samples = [0, 0, 0]

        now = time.monotonic()
        sample_times = [now + frame(1), now + frame(2), now + frame(3)]
        end = now + frame(4)

        def on_progress(event):
            current = time.monotonic()
            for i, at in enumerate(sample_times):
                if samples[i] == 0 and current >= at:
                    samples[i] = count

        nobl.add_listener("progress", on_progress)

        def work():
            nonlocal count
            while time.monotonic() < end:
                count += 1
                yield

        await nobl.run(work())

        assert samples[0] > 0
        assert samples[1] > samples[0]
        assert samples[2] > samples[1]
        assert count > samples[2]

    @pytest.mark.asyncio
    async def test_progress_asynchronous(self, nobl, frame):
        count = 0
        samples = []
        loop = asyncio.get_running_loop()

        start = time.monotonic()
        start_progress = start + frame(1)
        loop.call_later(frame(2), lambda: samples.append(count))
        loop.call_later(frame(3), lambda: samples.append(count))
        end_progress = start + frame(4)
        loop.call_later(frame(5), lambda: samples.append(count))
        end = start + frame(6)

        stalled = False

        async def on_progress(event):
            nonlocal stalled
            if not stalled and time.monotonic() >= start_progress:
                stalled = True
                await asyncio.sleep(end_progress - start_progress)

        nobl.add_listener("progress", on_progress)

        def work():
            nonlocal count
            while time.monotonic() < end:
                count += 1
                yield

        await nobl.run(work())

        assert samples[0] > 0
        assert samples[1] == samples[0]
        assert samples[2] > samples[1]
        assert count > samples[2]


class TestPauseAndCancel:
    @pytest.mark.asyncio
    async def test_pause_next_resume(self, nobl, frame):
        count = 0
        samples = []
        paused = []
        loop = asyncio.get_running_loop()

        def take_sample():
            samples.append(count)
            paused.append(nobl.paused)

        def step_once():
            nobl.next()
            paused.append(nobl.paused)

        loop.call_later(frame(1), nobl.pause)
        loop.call_later(frame(2), take_sample)
        loop.call_later(frame(3), step_once)
        loop.call_later(frame(4), take_sample)
        loop.call_later(frame(5), nobl.resume)
        loop.call_later(frame(6), take_sample)
        end = time.monotonic() + frame(7)

        def work():
            nonlocal count
            while time.monotonic() < end:
                count += 1
                yield

        future = nobl.run(work())
        assert nobl.paused is False

        await future

        assert paused == [True, True, True, False]
        assert samples[0] > 0
        assert samples[1] == samples[0] + 1
        assert samples[2] > samples[1]
        assert count > samples[2]

    @pytest.mark.asyncio
    async def test_cancel(self, nobl, frame):
        count = 0
        samples = []
        after = False
        loop = asyncio.get_running_loop()

        def cancel():
            samples.append(count)
            nobl.cancel()

        loop.call_later(frame(1), lambda: samples.append(count))
        loop.call_later(frame(2), cancel)
        loop.call_later(frame(3), lambda: samples.append(count))
        end = time.monotonic() + frame(4)
        settle = asyncio.ensure_future(asyncio.sleep(frame(5)))

        def work():
            nonlocal count, after
            while time.monotonic() < end:
                count += 1
                yield
            after = True

        with pytest.raises(OperationCancelledError):
            await nobl.run(work())

        await settle

        assert after is False
        assert nobl.running is False
        assert samples[0] > 0
        assert samples[1] > samples[0]
        assert samples[2] == samples[1]
        assert count == samples[2]
