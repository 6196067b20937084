from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from index_control.logging.logger import get_logger

log = get_logger(__name__)

TickAction = Callable[[], Awaitable[None]]
FaultHandler = Callable[[str, Exception], None]


class PeriodicTick:
    """
    Supervised, cancellable periodic task.

    The first invocation fires as soon as the tick starts; later ones follow a fixed-rate
    schedule (`start + k * interval`) that does not drift with invocation latency. Every
    invocation runs as its own asyncio task, so a slow invocation never delays the next
    one and several invocations of the same tick may be in flight at once.

    Exceptions escaping an invocation are handed to `on_fault`; they never stop the tick.
    """

    def __init__(self, name: str, interval: float, action: TickAction, on_fault: FaultHandler) -> None:
        if interval <= 0:
            raise ValueError(f"Tick '{name}' interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._action = action
        self._on_fault = on_fault
        self._driver: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self.invocations: int = 0

    @property
    def is_running(self) -> bool:
        return self._driver is not None and not self._driver.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        if self.is_running:
            return
        self._driver = asyncio.get_running_loop().create_task(self._drive(), name=f"tick-{self.name}")
        log.debug("[TICK][%s] Started (interval=%.3fs)", self.name.upper(), self.interval)

    async def stop(self) -> None:
        """Cancel the schedule and every in-flight invocation, and wait until they are gone."""
        pending = list(self._in_flight)
        if self._driver is not None:
            pending.append(self._driver)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._driver = None
        self._in_flight.clear()
        log.debug("[TICK][%s] Stopped after %d invocations", self.name.upper(), self.invocations)

    async def _drive(self) -> None:
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        index = 0
        while True:
            self._spawn()
            index += 1
            next_at = started_at + index * self.interval
            now = loop.time()
            if next_at < now:
                # Missed slots are skipped, not replayed in a burst.
                index = int((now - started_at) // self.interval) + 1
                next_at = started_at + index * self.interval
            await asyncio.sleep(next_at - now)

    def _spawn(self) -> None:
        self.invocations += 1
        task = asyncio.get_running_loop().create_task(self._invoke(), name=f"tick-{self.name}-{self.invocations}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _invoke(self) -> None:
        try:
            await self._action()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            self._on_fault(self.name, error)
