"""Tests for loop, cooldown and refresh timers."""
import asyncio

from attendance_station.services.scheduling import Cooldown, RefreshDebouncer, start_loop


class TestStartLoop:
    """Test suite for the cancellable periodic loop."""

    async def test_ticks_until_cancelled(self):
        """Should tick repeatedly and stop once the token is called."""
        ticks = []

        async def tick():
            ticks.append(1)

        token = start_loop(0.01, tick, name="test")
        await asyncio.sleep(0.06)
        token()
        count = len(ticks)
        await asyncio.sleep(0.03)

        assert token.cancelled
        assert count >= 2
        assert len(ticks) == count

    async def test_first_tick_waits_one_interval(self):
        ticks = []

        async def tick():
            ticks.append(1)

        token = start_loop(0.05, tick)
        await asyncio.sleep(0.01)
        assert ticks == []
        token.cancel()

    async def test_slow_tick_is_not_overlapped(self):
        """Should skip ticks while the previous cycle is still running."""
        running = 0
        max_running = 0

        async def tick():
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.05)
            running -= 1

        token = start_loop(0.01, tick)
        await asyncio.sleep(0.15)
        token.cancel()

        assert max_running == 1

    async def test_failing_tick_keeps_loop_alive(self):
        ticks = []

        async def tick():
            ticks.append(1)
            raise RuntimeError("detector crashed")

        token = start_loop(0.01, tick)
        await asyncio.sleep(0.06)
        token.cancel()

        assert len(ticks) >= 2

    async def test_cancel_interrupts_tick_in_flight(self):
        finished = []

        async def tick():
            await asyncio.sleep(0.1)
            finished.append(1)

        token = start_loop(0.01, tick)
        await asyncio.sleep(0.03)
        token.cancel()
        await asyncio.sleep(0.12)

        assert finished == []


class TestCooldown:
    """Test suite for the per-key cooldown."""

    async def test_blocks_within_window_and_expires(self):
        """Should admit a key once per window and again after it elapses."""
        cooldown = Cooldown(window=0.05)

        assert cooldown.try_acquire("s1")
        assert not cooldown.try_acquire("s1")
        assert "s1" in cooldown

        await asyncio.sleep(0.08)

        assert "s1" not in cooldown
        assert cooldown.try_acquire("s1")
        cooldown.clear()

    async def test_release_lifts_block(self):
        cooldown = Cooldown(window=10.0)
        cooldown.try_acquire("s1")

        cooldown.release("s1")

        assert cooldown.try_acquire("s1")
        cooldown.clear()

    async def test_keys_are_independent(self):
        cooldown = Cooldown(window=10.0)

        assert cooldown.try_acquire("s1")
        assert cooldown.try_acquire("s2")
        assert len(cooldown) == 2

        cooldown.clear()
        assert len(cooldown) == 0


class TestRefreshDebouncer:
    """Test suite for the refresh cooldown."""

    async def test_first_request_runs_immediately(self):
        runs = []

        async def action():
            runs.append(1)

        debouncer = RefreshDebouncer(0.05, action)

        assert await debouncer.request() is True
        assert runs == [1]

    async def test_requests_inside_cooldown_collapse_into_one_deferred_run(self):
        """Should defer instead of drop, and fire once at the boundary."""
        runs = []

        async def action():
            runs.append(1)

        debouncer = RefreshDebouncer(0.05, action)
        await debouncer.request()

        assert await debouncer.request() is False
        assert await debouncer.request() is False
        assert debouncer.has_deferred
        assert len(runs) == 1

        await asyncio.sleep(0.08)

        assert len(runs) == 2
        assert not debouncer.has_deferred

    async def test_cancel_drops_deferred_run(self):
        runs = []

        async def action():
            runs.append(1)

        debouncer = RefreshDebouncer(0.03, action)
        await debouncer.request()
        await debouncer.request()

        debouncer.cancel()
        await asyncio.sleep(0.06)

        assert len(runs) == 1
        assert await debouncer.request() is False

    async def test_uses_injected_clock(self):
        now = [0.0]
        runs = []

        async def action():
            runs.append(now[0])

        debouncer = RefreshDebouncer(3.0, action, clock=lambda: now[0])
        await debouncer.request()
        now[0] = 3.5

        assert await debouncer.request() is True
        assert runs == [0.0, 3.5]
