"""
Observer registry - 订阅通知

Listeners are zero-argument callables invoked synchronously, in
registration order, exactly once per state replacement.
"""

import itertools
import logging
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ObserverRegistry:
    """Ordered listener set with token-based unsubscribe."""

    def __init__(self):
        self._listeners: dict[int, Listener] = {}
        self._tokens = itertools.count()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            unsubscribe 函数（可重复调用）
        """
        token = next(self._tokens)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def notify(self) -> None:
        # 先拷贝：监听器可能在回调里取消订阅
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception:
                logger.exception(f"State listener {listener!r} raised")

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["Listener", "ObserverRegistry"]
