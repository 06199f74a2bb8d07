"""Timer primitives for the station's event loop.

All timers are owned objects that can be cancelled: periodic loops hand back a
``CancelToken``, the per-student ``Cooldown`` keeps one timer handle per key and
the ``RefreshDebouncer`` keeps at most one deferred run. Every one of them
must be cancelled in the station's teardown path.
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, Generic, Hashable, List, Optional, Set, TypeVar

from attendance_station.core.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)

Tick = Callable[[], Awaitable[None]]


class CancelToken:
    """Handle returned by ``start_loop``. Calling it stops the loop."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def __call__(self) -> None:
        self.cancel()


async def _run_tick(tick: Tick, name: str) -> None:
    try:
        await tick()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("Loop tick failed", loop=name, error=str(e), exc_info=True)


def start_loop(interval: float, tick: Tick, name: str = "loop") -> CancelToken:
    """Run ``tick`` every ``interval`` seconds until the returned token is cancelled.

    The first tick fires one interval after the call. A tick that is still
    running when the next one is due causes that next tick to be skipped, so
    cycles never overlap. A failing tick is logged and the loop carries on.
    Cancelling the token stops the timer and cancels a tick in flight.

    Must be called from a running event loop.
    """
    token = CancelToken(name)
    in_flight: Dict[str, Optional[asyncio.Task]] = {"tick": None}

    async def runner() -> None:
        while not token.cancelled:
            await asyncio.sleep(interval)
            if token.cancelled:
                break
            current = in_flight["tick"]
            if current is not None and not current.done():
                logger.debug("Skipping tick, previous cycle still running", loop=name)
                continue
            in_flight["tick"] = asyncio.create_task(_run_tick(tick, name))

    runner_task = asyncio.create_task(runner())

    def stop() -> None:
        runner_task.cancel()
        current = in_flight["tick"]
        if current is not None and not current.done():
            current.cancel()
        logger.debug("Loop cancelled", loop=name)

    token.add_callback(stop)
    return token


class Cooldown(Generic[K]):
    """Keys that were acted on recently.

    ``try_acquire`` admits a key once and blocks it for ``window`` seconds,
    after which it expires on its own. ``release`` lifts the block early.

    Example:
        ```python
        recently_checked: Cooldown[str] = Cooldown(window=10.0)
        if recently_checked.try_acquire(student_id):
            ...
        ```
    """

    def __init__(self, window: float) -> None:
        self.window = window
        self._handles: Dict[K, asyncio.TimerHandle] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def try_acquire(self, key: K) -> bool:
        """Admit ``key`` unless it is cooling down. Must run inside an event loop."""
        if key in self._handles:
            return False
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.window, self._expire, key)
        return True

    def release(self, key: K) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _expire(self, key: K) -> None:
        self._handles.pop(key, None)


class RefreshDebouncer:
    """Runs an async action at most once per cooldown.

    A request inside the cooldown is not dropped: one deferred run is
    scheduled at the cooldown boundary, and further requests before then
    collapse into it.
    """

    def __init__(
        self,
        cooldown: float,
        action: Callable[[], Awaitable[None]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown = cooldown
        self._action = action
        self._clock = clock
        self._last_run: Optional[float] = None
        self._deferred: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def has_deferred(self) -> bool:
        return self._deferred is not None

    async def request(self) -> bool:
        """Run now if the cooldown has elapsed, else defer.

        Returns:
            True if the action ran immediately, False if it was deferred
        """
        if self._closed:
            return False

        now = self._clock()
        if self._last_run is None or now - self._last_run >= self.cooldown:
            if self._deferred is not None:
                self._deferred.cancel()
                self._deferred = None
            await self._run()
            return True

        if self._deferred is None:
            delay = self.cooldown - (now - self._last_run)
            self._deferred = asyncio.get_running_loop().call_later(delay, self._fire_deferred)
            logger.debug("Refresh deferred", delay=round(delay, 3))
        return False

    def cancel(self) -> None:
        """Drop any deferred run and stop accepting requests."""
        self._closed = True
        if self._deferred is not None:
            self._deferred.cancel()
            self._deferred = None
        for task in list(self._tasks):
            task.cancel()

    async def _run(self) -> None:
        self._last_run = self._clock()
        await self._action()

    def _fire_deferred(self) -> None:
        self._deferred = None
        if self._closed:
            return
        task = asyncio.create_task(self._run_deferred())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_deferred(self) -> None:
        try:
            await self._run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Deferred refresh failed", error=str(e), exc_info=True)
