"""Resend gate for the code entry screen: counts down once per second."""
import asyncio
from typing import Callable, Optional

DEFAULT_RESEND_SECONDS = 60


class ResendCountdown:

    def __init__(self, seconds: int = DEFAULT_RESEND_SECONDS, interval: float = 1.0,
                 on_tick: Optional[Callable[[int], None]] = None):
        self.seconds = seconds
        self.interval = interval
        self.on_tick = on_tick
        self.remaining = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def can_resend(self) -> bool:
        return self.remaining <= 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> None:
        if self.remaining > 0:
            self.remaining -= 1
            if self.on_tick is not None:
                self.on_tick(self.remaining)

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.interval)
            self.tick()

    def restart(self) -> None:
        """Start from the full duration; needs a running event loop."""
        self.cancel()
        self.remaining = self.seconds
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
