"""
Debounced action - 防抖后台任务

A rearmable timer on the asyncio loop that coalesces bursts of ``schedule()``
calls into one run of an async action. ``fire_now()`` is the immediate
override channel: it cancels the pending timer and starts a run right away.

Runs that are already in flight are never cancelled; a new run may start
while an older one is still awaiting the network.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedAction:
    """Coalescing background runner for an async action."""

    def __init__(
        self,
        action: Callable[[], Awaitable[None]],
        delay: float,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Args:
            action: 无参协程函数，每次触发执行一次
            delay: 防抖窗口（秒）
            loop: 事件循环，默认取当前运行中的循环
        """
        self._action = action
        self.delay = delay
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._in_flight: set[asyncio.Task] = set()
        self.runs_started = 0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> bool:
        """A debounced run is armed and has not fired yet."""
        return self._handle is not None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def schedule(self) -> None:
        """(Re)arm the timer; the action runs ``delay`` seconds after the last call."""
        self.cancel()
        self._handle = self.loop.call_later(self.delay, self._fire)

    def fire_now(self) -> None:
        """Drop any pending timer and start a run immediately."""
        self.cancel()
        self._fire()

    def cancel(self) -> None:
        """Disarm the pending timer (in-flight runs keep going)."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.runs_started += 1
        task = self.loop.create_task(self._run())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(self) -> None:
        try:
            await self._action()
        except Exception:
            # 后台任务没有调用方可以接收异常
            logger.exception("Debounced action failed")

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no run is in flight."""
        while self._handle is not None or self._in_flight:
            if self._in_flight:
                await asyncio.gather(*tuple(self._in_flight), return_exceptions=True)
                continue
            handle = self._handle
            await asyncio.sleep(max(handle.when() - self.loop.time(), 0))
            if self._handle is handle:
                # call_later 回调可能还没轮到执行
                await asyncio.sleep(0)


__all__ = ["DebouncedAction"]
