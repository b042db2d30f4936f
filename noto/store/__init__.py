"""
Noto Store - 状态容器与 UI 桥接

用法：
    from noto.store import NotoStore, StoreBridge

    store = NotoStore.from_config(get_config())
    bridge = StoreBridge(store)
    unsubscribe = bridge.select(lambda s: len(s.checklist), print)
"""

from noto.store.bridge import StoreBridge, sorted_checklist, sorted_notes
from noto.store.reconciling_store import NotoStore, StorePhase

__all__ = [
    "NotoStore",
    "StorePhase",
    "StoreBridge",
    "sorted_checklist",
    "sorted_notes",
]
