"""Cancellable delayed call that collapses bursts into one execution"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    `schedule()` (re)starts a quiet period of `delay` seconds; the action
    runs once when a quiet period elapses without another `schedule()`.
    `cancel()` drops the scheduled call. A call whose action already
    started is never cancelled by `schedule()` or `cancel()`.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]], name: str = "debounce"):
        self.delay = delay
        self.name = name
        self._action = action
        self._timer: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self) -> None:
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire(), name=f"{self.name}-timer")

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)

        task = asyncio.current_task()
        if self._timer is task:
            self._timer = None
        self._running = task
        try:
            await self._action()
        except Exception as e:
            # Nobody awaits a debounced call, so failures stop here
            logger.warning(f"[{self.name}] Debounced call failed: {e}")
        finally:
            if self._running is task:
                self._running = None

    async def flush(self) -> None:
        """Wait for the scheduled call (if any) to fire and finish"""
        while True:
            tasks = [t for t in (self._timer, self._running) if t is not None and not t.done()]
            if not tasks:
                return
            await asyncio.wait(tasks)

    async def aclose(self) -> None:
        self.cancel()
        running = self._running
        if running is not None and not running.done():
            running.cancel()
            try:
                await running
            except asyncio.CancelledError:
                pass
        self._running = None
