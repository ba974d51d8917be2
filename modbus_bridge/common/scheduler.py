"""
Periodic Timers

The bridge runs two timers, the poll cycle and the alarm status tick.
A ScheduledLoop awaits its callback before arming the next deadline, so a
loop never runs its callback concurrently with itself. Deadlines that pass
while the callback is still running are dropped, not replayed.

Usage:
    group = SchedulerGroup()
    group.add("poll", 1.0, pipeline.run_cycle)
    await group.start_all()
    ...
    group.stop_all()
"""

import asyncio
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")

TickCallback = Callable[[], Awaitable[None]]


class ScheduledLoop:
    """Runs an async callback every `interval` seconds on the event loop clock"""

    def __init__(self, interval_seconds: float, callback: TickCallback, name: str = "timer"):
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._task: asyncio.Task | None = None
        self._ticks = 0
        self._errors = 0
        self._missed = 0
        self._last_duration = 0.0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Callbacks that returned normally"""
        return self._ticks

    @property
    def errors(self) -> int:
        return self._errors

    @property
    def missed(self) -> int:
        """Deadlines dropped because a callback overran"""
        return self._missed

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"timer-{self.name}")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.interval

        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))

            started = loop.time()
            await self._fire()
            self._last_duration = loop.time() - started

            deadline += self.interval
            now = loop.time()
            if deadline <= now:
                missed = int((now - deadline) // self.interval) + 1
                deadline += missed * self.interval
                self._missed += missed
                logger.warning(
                    f"Timer '{self.name}' dropped {missed} tick(s), "
                    f"callback took {self._last_duration:.3f}s"
                )

    async def _fire(self) -> None:
        try:
            await self.callback()
        except Exception as e:
            # Nothing a callback raises may stop the timer
            self._errors += 1
            logger.error(f"Timer '{self.name}' callback failed: {e}", exc_info=True)
        else:
            self._ticks += 1

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self.is_running,
            "ticks": self._ticks,
            "errors": self._errors,
            "missed": self._missed,
            "last_duration_s": round(self._last_duration, 3),
        }


class SchedulerGroup:
    """Named timers sharing one start/stop lifecycle, each ticking independently"""

    def __init__(self):
        self._loops: dict[str, ScheduledLoop] = {}

    def add(self, name: str, interval_seconds: float, callback: TickCallback) -> ScheduledLoop:
        if name in self._loops:
            raise ValueError(f"Timer already registered: {name}")
        self._loops[name] = ScheduledLoop(interval_seconds, callback, name=name)
        return self._loops[name]

    def get(self, name: str) -> ScheduledLoop | None:
        return self._loops.get(name)

    async def start_all(self) -> None:
        for timer in self._loops.values():
            await timer.start()

    def stop_all(self) -> None:
        for timer in self._loops.values():
            timer.stop()

    def get_stats(self) -> dict:
        return {name: timer.get_stats() for name, timer in self._loops.items()}
