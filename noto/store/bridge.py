"""
Store Bridge - 面向 UI 的订阅桥接

Pull-based snapshot + change notification: consumers read the current
immutable reference with ``get_snapshot()`` and re-read it when notified.
``select()`` narrows notifications to changes of one derived value.
"""

import logging
from typing import Any, Callable, Optional, TypeVar

from noto.models.state import AppState, ChecklistItem, NoteBlock
from noto.store.reconciling_store import NotoStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def sorted_checklist(state: AppState, include_archived: bool = False) -> list[ChecklistItem]:
    """清单展示顺序：置顶未勾选 → 未勾选 → 已勾选，组内按 order"""
    items = [c for c in state.checklist if include_archived or not c.archived]
    pinned = sorted((c for c in items if c.pinned and not c.checked), key=lambda c: c.order)
    unchecked = sorted((c for c in items if not c.pinned and not c.checked), key=lambda c: c.order)
    checked = sorted((c for c in items if c.checked), key=lambda c: c.order)
    return pinned + unchecked + checked


def sorted_notes(state: AppState, include_archived: bool = False) -> list[NoteBlock]:
    """便签展示顺序：置顶 → 其余，组内按 order"""
    notes = [n for n in state.notes if include_archived or not n.archived]
    pinned = sorted((n for n in notes if n.pinned), key=lambda n: n.order)
    unpinned = sorted((n for n in notes if not n.pinned), key=lambda n: n.order)
    return pinned + unpinned


class StoreBridge:
    """Read-only handle on a NotoStore for rendering layers."""

    def __init__(self, store: NotoStore):
        self._store = store

    def get_snapshot(self) -> AppState:
        return self._store.get_snapshot()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._store.subscribe(listener)

    def select(
        self,
        selector: Callable[[AppState], T],
        callback: Callable[[T], Any],
        equals: Optional[Callable[[T, T], bool]] = None,
    ) -> Callable[[], None]:
        """Call ``callback(value)`` whenever ``selector(snapshot)`` changes.

        Args:
            selector: 从快照派生值
            callback: 值变化时调用
            equals: 比较函数，默认 ``==``

        Returns:
            取消订阅函数
        """
        same = equals or (lambda a, b: a == b)
        last = selector(self.get_snapshot())

        def listener() -> None:
            nonlocal last
            value = selector(self.get_snapshot())
            if same(last, value):
                return
            last = value
            callback(value)

        return self.subscribe(listener)


__all__ = ["StoreBridge", "sorted_checklist", "sorted_notes"]
