"""
Recurring background driver with cron-style minute alignment.

RecurringTask fires an async callback at minutes 0, N, 2N, ... of every hour,
the cadence of the cron expression `*/N * * * *`. Stopping the driver cancels
future invocations only; an invocation already running is left to finish.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Set

from bullhorn_auth.common.exceptions import AlreadyRunningError
from bullhorn_auth.common.logging import LoggedClass


def next_cron_run(now: datetime, every_minutes: int) -> datetime:
    """
    Return the first instant strictly after now matching `*/every_minutes * * * *`.

    Args:
        now: Reference time (naive or aware; the result keeps its tzinfo)
        every_minutes: Minute step, 1-60

    Returns:
        Next matching minute boundary
    """
    if not 1 <= every_minutes <= 60:
        raise ValueError(f"every_minutes must be between 1 and 60, got {every_minutes}")

    hour_start = now.replace(minute=0, second=0, microsecond=0)
    for minute in range(0, 60, every_minutes):
        candidate = hour_start + timedelta(minutes=minute)
        if candidate > now:
            return candidate
    return hour_start + timedelta(hours=1)


class RecurringTask(LoggedClass):
    """
    Owned, cancelable background job on a fixed cron-like cadence.

    Failures raised by the callback are logged and never stop the driver.

    Example:
        >>> task = RecurringTask(client.login, every_minutes=30, name="session-refresh")
        >>> task.start()
        >>> ...
        >>> task.stop()
    """

    log_component = "scheduler"

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        every_minutes: int = 30,
        name: str = "recurring-task",
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            callback: Coroutine function invoked on every tick
            every_minutes: Cron minute step (default: 30, i.e. `*/30 * * * *`)
            name: Task name used in logs
            clock: Returns the current time (default: local wall clock, like cron)
            sleep: Awaitable sleep used between ticks (default: asyncio.sleep)
        """
        if not 1 <= every_minutes <= 60:
            raise ValueError(f"every_minutes must be between 1 and 60, got {every_minutes}")

        self.callback = callback
        self.every_minutes = every_minutes
        self.name = name
        self._clock = clock or datetime.now
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Future] = set()
        self.runs = 0
        self.failures = 0
        super().__init__()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cron_expression(self) -> str:
        return f"*/{self.every_minutes} * * * *"

    def start(self) -> None:
        """
        Start the driver on the running event loop.

        Raises:
            AlreadyRunningError: If this driver is already running
        """
        if self.is_running:
            raise AlreadyRunningError(f"Recurring task '{self.name}' already started")

        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        self._log(
            logging.INFO,
            "Started recurring task",
            every_minutes=self.every_minutes,
        )

    def stop(self) -> None:
        """Cancel future invocations. Safe to call when not running."""
        task = self._task
        if task is None or task.done():
            return

        task.cancel()
        self._log(logging.INFO, "Stopped recurring task")

    async def join(self) -> None:
        """Wait until the driver has finished after stop()."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _run(self) -> None:
        fired: Optional[datetime] = None
        while True:
            now = self._clock()
            # a sleep may end just before the wall-clock boundary it aimed at
            reference = now if fired is None or now > fired else fired
            next_run = next_cron_run(reference, self.every_minutes)
            self._log(logging.DEBUG, "Next scheduled run", next_run=next_run.isoformat())
            await self._sleep((next_run - now).total_seconds())
            fired = next_run

            # Shield so stop() leaves a running invocation to complete
            invocation = asyncio.ensure_future(self._invoke())
            self._inflight.add(invocation)
            invocation.add_done_callback(self._inflight.discard)
            await asyncio.shield(invocation)

    async def _invoke(self) -> None:
        self.runs += 1
        try:
            await self.callback()
        except Exception as e:
            self.failures += 1
            self._log_exception(e, "Recurring task invocation failed", level=logging.WARNING)
