"""
Reconciling Store - 本地优先的状态容器

The single source of truth for AppState. Every mutation goes through a
method on NotoStore and follows the same commit protocol:

1. 纯函数计算下一个状态
2. 通过 codec 持久化（StorageQuotaExceeded 直接抛出，内存/撤销栈/监听器保持不变）
3. 替换内存引用
4. 记录撤销条目（清空重做栈）
5. 同步通知监听器（注册顺序）
6. 安排防抖推送（仅 READY 阶段）

Mutations that target an unknown id are silent no-ops.

用法：
    store = NotoStore(SnapshotCodec(FileStorage("~/.noto")), sync_client)
    await store.bootstrap()
    item = store.add_checklist_item("Buy milk")
    store.toggle_checklist_item(item.id)
    await store.aclose()
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar, Union

from noto.config import NotoConfig
from noto.core.debounce import DebouncedAction
from noto.core.identifiers import generate_id, is_canonical_id
from noto.core.observers import Listener, ObserverRegistry
from noto.core.timeutil import now_utc
from noto.exceptions import AuthUnavailable, InvalidFormat, ReorderMismatch, SyncFailed
from noto.models.state import (
    Alarm,
    AlarmStatus,
    AppState,
    ChecklistItem,
    EntityKind,
    ImportResult,
    NoteBlock,
    TagDef,
    Theme,
)
from noto.models.undo import TagDeletion, UndoEntry, UndoHistory, UndoKind
from noto.models.updates import (
    ChecklistItemUpdate,
    NoteUpdate,
    PanelLayoutUpdate,
    SettingsUpdate,
    TagCreate,
    TagUpdate,
)
from noto.services.alarm_schedule import compute_next_repeat, snooze_until
from noto.services.snapshot_codec import SnapshotCodec
from noto.services.storage import FileStorage, KeyValueStorage
from noto.services.sync_client import RemoteSyncClient

logger = logging.getLogger(__name__)

Entity = Union[ChecklistItem, NoteBlock]
E = TypeVar("E", ChecklistItem, NoteBlock)

_COLLECTION_FIELDS = {
    EntityKind.CHECKLIST: "checklist",
    EntityKind.NOTE: "notes",
}

_UPDATE_KINDS = {
    EntityKind.CHECKLIST: UndoKind.UPDATE_CHECKLIST,
    EntityKind.NOTE: UndoKind.UPDATE_NOTE,
}

_ADD_KINDS = {
    UndoKind.ADD_CHECKLIST: EntityKind.CHECKLIST,
    UndoKind.ADD_NOTE: EntityKind.NOTE,
}

_DELETE_KINDS = {
    UndoKind.DELETE_CHECKLIST: EntityKind.CHECKLIST,
    UndoKind.DELETE_NOTE: EntityKind.NOTE,
}

_RESTORE_KINDS = {
    UndoKind.UPDATE_CHECKLIST: EntityKind.CHECKLIST,
    UndoKind.TOGGLE_CHECKLIST: EntityKind.CHECKLIST,
    UndoKind.PIN_CHECKLIST: EntityKind.CHECKLIST,
    UndoKind.UPDATE_NOTE: EntityKind.NOTE,
    UndoKind.PIN_NOTE: EntityKind.NOTE,
}


class StorePhase(str, Enum):
    """Store 生命周期阶段"""

    UNINITIALIZED = "uninitialized"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"
    LOCAL_ONLY = "local_only"


def _find(entities: Sequence, entity_id: str):
    for entity in entities:
        if entity.id == entity_id:
            return entity
    return None


def _replace_by_id(entities: Sequence, replacement) -> tuple:
    return tuple(replacement if e.id == replacement.id else e for e in entities)


def _next_order(entities: Sequence[Entity]) -> int:
    return max((e.order for e in entities), default=-1) + 1


def _strip_tag(entity: E, tag_id: str) -> E:
    if tag_id not in entity.tags:
        return entity
    return entity.model_copy(update={"tags": tuple(t for t in entity.tags if t != tag_id)})


class NotoStore:
    """
    Reconciling Store

    特点：
    - 显式构造、依赖注入（无模块级单例），测试中可并存多个实例
    - 任何阶段都接受本地修改；只有远端推送依赖 READY
    - 推送防抖合并，导入/采纳远端后立即推送
    """

    def __init__(
        self,
        codec: SnapshotCodec,
        sync_client: Optional[RemoteSyncClient] = None,
        *,
        debounce_seconds: float = 1.0,
        undo_limit: int = 50,
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        初始化 Store（同步读取本地快照）

        Args:
            codec: 本地快照编解码器
            sync_client: 远端同步客户端，None 表示纯本地
            debounce_seconds: 推送防抖窗口（秒）
            undo_limit: 撤销栈容量
            clock: 时间源（测试可注入固定时钟）
        """
        self.codec = codec
        self.sync_client = sync_client
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._state: AppState = codec.load_snapshot()
        self._history = UndoHistory(limit=undo_limit)
        self._observers = ObserverRegistry()
        self._phase = StorePhase.UNINITIALIZED
        self._push: Optional[DebouncedAction] = None
        self._last_push_ok: Optional[bool] = None

    @classmethod
    def from_config(
        cls,
        config: NotoConfig,
        storage: Optional[KeyValueStorage] = None,
        sync_client: Optional[RemoteSyncClient] = None,
        sync: bool = True,
    ) -> "NotoStore":
        """按配置组装 Store（CLI 等顶层入口使用）

        Args:
            config: 配置
            storage: 存储介质，默认 data_dir 下的 FileStorage
            sync_client: 远端客户端，默认按 config.sync 构造
            sync: False 时不挂载远端客户端（纯本地）
        """
        if storage is None:
            config.ensure_directories()
            storage = FileStorage(config.data_dir)
        if sync_client is None and sync and config.sync.enabled:
            sync_client = RemoteSyncClient.from_config(config, storage)
        return cls(
            SnapshotCodec(storage, config.state_key),
            sync_client,
            debounce_seconds=config.sync.debounce_seconds,
            undo_limit=config.undo_limit,
        )

    # ============ Queries ============

    @property
    def phase(self) -> StorePhase:
        return self._phase

    def get_snapshot(self) -> AppState:
        """当前不可变状态引用（非拷贝）"""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册变更监听器，返回取消订阅函数"""
        return self._observers.subscribe(listener)

    def get_checklist_item(self, item_id: str) -> Optional[ChecklistItem]:
        return _find(self._state.checklist, item_id)

    def get_note(self, note_id: str) -> Optional[NoteBlock]:
        return _find(self._state.notes, note_id)

    def get_tag(self, tag_id: str) -> Optional[TagDef]:
        return _find(self._state.tags, tag_id)

    @property
    def undo_stack(self) -> tuple[UndoEntry, ...]:
        return tuple(self._history.undo)

    @property
    def redo_stack(self) -> tuple[UndoEntry, ...]:
        return tuple(self._history.redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._history.undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._history.redo)

    # ============ Commit protocol ============

    def _replace(self, next_state: AppState) -> None:
        # 先落盘再换引用：写失败时内存状态保持不变
        self.codec.save_snapshot(next_state)
        self._state = next_state

    def _publish(self, immediate: bool = False) -> None:
        self._observers.notify()
        self._schedule_push(immediate)

    def _commit(self, next_state: AppState, undo_entry: Optional[UndoEntry] = None) -> None:
        self._replace(next_state)
        if undo_entry is not None:
            self._history.record(undo_entry)
        self._publish()

    def _replace_all(self, next_state: AppState) -> None:
        """Destructive full replace (import, adopting the remote snapshot)."""
        self._replace(next_state)
        self._history.clear()
        self._publish(immediate=True)

    def _entry(self, kind: UndoKind, description: str, payload) -> UndoEntry:
        return UndoEntry(kind=kind, description=description, payload=payload, timestamp=self._clock())

    def _collection(self, kind: EntityKind) -> tuple:
        return getattr(self._state, _COLLECTION_FIELDS[EntityKind(kind)])

    def _with_collection(self, kind: EntityKind, entities: Sequence) -> AppState:
        return self._state.model_copy(update={_COLLECTION_FIELDS[EntityKind(kind)]: tuple(entities)})

    def _update_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        transform: Callable[[Entity], Optional[Entity]],
        undo_kind: Optional[UndoKind] = None,
        description: str = "",
    ) -> Optional[Entity]:
        """Replace one entity in place and record its prior version for undo.

        ``transform`` returning None means "nothing to do".
        """
        kind = EntityKind(kind)
        old = _find(self._collection(kind), entity_id)
        if old is None:
            logger.debug(f"Ignoring mutation of unknown {kind.value} {entity_id}")
            return None
        new = transform(old)
        if new is None:
            return None
        next_state = self._with_collection(kind, _replace_by_id(self._collection(kind), new))
        entry = self._entry(undo_kind or _UPDATE_KINDS[kind], description or f"Update {kind.value}", old)
        self._commit(next_state, entry)
        return new

    # ============ Settings ============

    def set_theme(self, theme: Theme) -> None:
        self._commit_settings(self._state.settings.model_copy(update={"theme": Theme(theme)}))

    def set_panel_layout(self, update: PanelLayoutUpdate) -> None:
        layout = self._state.settings.panel_layout.model_copy(update=update.changes())
        self._commit_settings(self._state.settings.model_copy(update={"panel_layout": layout}))

    def update_settings(self, update: SettingsUpdate) -> None:
        self._commit_settings(self._state.settings.model_copy(update=update.changes()))

    def _commit_settings(self, settings) -> None:
        if settings == self._state.settings:
            return
        # 设置变更不进入撤销栈
        self._commit(self._state.model_copy(update={"settings": settings}))

    # ============ Checklist ============

    def add_checklist_item(self, title: str, description_html: str = "") -> ChecklistItem:
        """新建清单项（插入列表头部，order = max + 1）"""
        now = self._clock()
        item = ChecklistItem(
            id=generate_id(),
            title=title,
            description_html=description_html,
            order=_next_order(self._state.checklist),
            created_at=now,
            updated_at=now,
        )
        next_state = self._state.model_copy(update={"checklist": (item, *self._state.checklist)})
        self._commit(next_state, self._entry(UndoKind.ADD_CHECKLIST, "Add checklist item", item))
        return item

    def update_checklist_item(self, item_id: str, update: ChecklistItemUpdate) -> Optional[ChecklistItem]:
        if update.is_empty():
            return self.get_checklist_item(item_id)
        return self._update_entity(
            EntityKind.CHECKLIST,
            item_id,
            lambda old: old.model_copy(update={**update.changes(), "updated_at": self._clock()}),
            UndoKind.UPDATE_CHECKLIST,
            "Edit checklist item",
        )

    def toggle_checklist_item(self, item_id: str) -> Optional[ChecklistItem]:
        """切换勾选；未勾选 → 勾选时移到末尾（order = max + 1），反向不重排"""

        def toggle(old: ChecklistItem) -> ChecklistItem:
            changes = {"checked": not old.checked, "updated_at": self._clock()}
            if not old.checked:
                changes["order"] = _next_order(self._state.checklist)
            return old.model_copy(update=changes)

        return self._update_entity(
            EntityKind.CHECKLIST, item_id, toggle, UndoKind.TOGGLE_CHECKLIST, "Toggle checklist item"
        )

    def pin_checklist_item(self, item_id: str) -> Optional[ChecklistItem]:
        return self._update_entity(
            EntityKind.CHECKLIST,
            item_id,
            lambda old: old.model_copy(update={"pinned": not old.pinned, "updated_at": self._clock()}),
            UndoKind.PIN_CHECKLIST,
            "Pin checklist item",
        )

    def delete_checklist_item(self, item_id: str) -> Optional[ChecklistItem]:
        return self._delete_entity(EntityKind.CHECKLIST, item_id, UndoKind.DELETE_CHECKLIST, "Delete checklist item")

    def restore_checklist_item(self, item: ChecklistItem) -> None:
        """重新插入（已存在时忽略），不记录撤销"""
        self._restore_entity(EntityKind.CHECKLIST, item)

    def reorder_checklist(self, items: Sequence[ChecklistItem], strict: bool = False) -> None:
        self._reorder(EntityKind.CHECKLIST, items, strict)

    # ============ Notes ============

    def add_note(self, title: str = "", html: str = "", content_json=None) -> NoteBlock:
        """新建便签（插入列表头部，order = max + 1）"""
        now = self._clock()
        note = NoteBlock(
            id=generate_id(),
            title=title,
            html=html,
            content_json=content_json,
            order=_next_order(self._state.notes),
            created_at=now,
            updated_at=now,
        )
        next_state = self._state.model_copy(update={"notes": (note, *self._state.notes)})
        self._commit(next_state, self._entry(UndoKind.ADD_NOTE, "Add note", note))
        return note

    def update_note(self, note_id: str, update: NoteUpdate) -> Optional[NoteBlock]:
        if update.is_empty():
            return self.get_note(note_id)
        return self._update_entity(
            EntityKind.NOTE,
            note_id,
            lambda old: old.model_copy(update={**update.changes(), "updated_at": self._clock()}),
            UndoKind.UPDATE_NOTE,
            "Edit note",
        )

    def pin_note(self, note_id: str) -> Optional[NoteBlock]:
        return self._update_entity(
            EntityKind.NOTE,
            note_id,
            lambda old: old.model_copy(update={"pinned": not old.pinned, "updated_at": self._clock()}),
            UndoKind.PIN_NOTE,
            "Pin note",
        )

    def delete_note(self, note_id: str) -> Optional[NoteBlock]:
        return self._delete_entity(EntityKind.NOTE, note_id, UndoKind.DELETE_NOTE, "Delete note")

    def restore_note(self, note: NoteBlock) -> None:
        self._restore_entity(EntityKind.NOTE, note)

    def reorder_notes(self, items: Sequence[NoteBlock], strict: bool = False) -> None:
        self._reorder(EntityKind.NOTE, items, strict)

    # ============ Shared entity operations ============

    def _delete_entity(self, kind: EntityKind, entity_id: str, undo_kind: UndoKind, description: str):
        entities = self._collection(kind)
        old = _find(entities, entity_id)
        if old is None:
            return None
        next_state = self._with_collection(kind, [e for e in entities if e.id != entity_id])
        self._commit(next_state, self._entry(undo_kind, description, old))
        return old

    def _restore_entity(self, kind: EntityKind, entity: Entity) -> None:
        entities = self._collection(kind)
        if _find(entities, entity.id) is not None:
            return
        self._commit(self._with_collection(kind, [*entities, entity]))

    def _reorder(self, kind: EntityKind, items: Sequence[Entity], strict: bool) -> None:
        """Positional reorder: ``order`` becomes the index in ``items``.

        The supplied entities replace the collection as given. In the default
        permissive mode entities missing from ``items`` are dropped; with
        ``strict=True`` any id-set difference raises ReorderMismatch.
        """
        current_ids = {e.id for e in self._collection(kind)}
        supplied_ids = [e.id for e in items]
        if strict:
            missing = current_ids - set(supplied_ids)
            unexpected = set(supplied_ids) - current_ids
            if missing or unexpected or len(supplied_ids) != len(set(supplied_ids)):
                raise ReorderMismatch(missing, unexpected)
        elif current_ids - set(supplied_ids):
            logger.warning(
                f"Reorder of {EntityKind(kind).value} omits {len(current_ids - set(supplied_ids))} entities; "
                "they are dropped"
            )

        reordered: list = []
        seen: set[str] = set()
        for entity in items:
            if entity.id in seen:
                continue
            seen.add(entity.id)
            reordered.append(entity.model_copy(update={"order": len(reordered)}))
        self._commit(self._with_collection(kind, reordered))

    # ============ Tags ============

    def add_tag(self, title: str, color_key: Optional[str] = None) -> TagDef:
        """新建标签

        Raises:
            pydantic.ValidationError: title 为空或超过 32 字符
        """
        request = TagCreate(title=title, color_key=color_key)
        tag = TagDef(id=generate_id(), title=request.title, color_key=request.color_key)
        next_state = self._state.model_copy(update={"tags": (*self._state.tags, tag)})
        self._commit(next_state, self._entry(UndoKind.ADD_TAG, "Add tag", tag))
        return tag

    def update_tag(self, tag_id: str, update: TagUpdate) -> Optional[TagDef]:
        old = self.get_tag(tag_id)
        if old is None or update.is_empty():
            return old
        tag = old.model_copy(update=update.changes())
        next_state = self._state.model_copy(update={"tags": _replace_by_id(self._state.tags, tag)})
        self._commit(next_state, self._entry(UndoKind.UPDATE_TAG, "Edit tag", old))
        return tag

    def delete_tag(self, tag_id: str) -> Optional[TagDef]:
        """删除标签，只从条目上移除引用，不删除条目"""
        tag = self.get_tag(tag_id)
        if tag is None:
            return None
        deletion = TagDeletion(
            tag=tag,
            checklist_ids=tuple(c.id for c in self._state.checklist if tag_id in c.tags),
            note_ids=tuple(n.id for n in self._state.notes if tag_id in n.tags),
        )
        next_state = self._state.model_copy(
            update={
                "tags": tuple(t for t in self._state.tags if t.id != tag_id),
                "checklist": tuple(_strip_tag(c, tag_id) for c in self._state.checklist),
                "notes": tuple(_strip_tag(n, tag_id) for n in self._state.notes),
            }
        )
        self._commit(next_state, self._entry(UndoKind.DELETE_TAG, "Delete tag", deletion))
        return tag

    def toggle_tag_on_item(self, kind: EntityKind, item_id: str, tag_id: str) -> Optional[Entity]:
        def toggle(old: Entity) -> Entity:
            tags = tuple(t for t in old.tags if t != tag_id) if tag_id in old.tags else (*old.tags, tag_id)
            return old.model_copy(update={"tags": tags})

        return self._update_entity(kind, item_id, toggle, description="Toggle tag")

    # ============ Alarms ============

    def set_alarm(self, kind: EntityKind, entity_id: str, alarm: Optional[Alarm]) -> Optional[Entity]:
        """整体替换（或清除）条目上的提醒"""
        if alarm is not None and not is_canonical_id(alarm.id):
            alarm = alarm.model_copy(update={"id": generate_id()})
        return self._update_entity(
            kind,
            entity_id,
            lambda old: old.model_copy(update={"alarm": alarm, "updated_at": self._clock()}),
            description="Set alarm" if alarm else "Clear alarm",
        )

    def snooze_alarm(self, kind: EntityKind, entity_id: str, minutes: int) -> Optional[Entity]:
        """延后提醒：at = now + minutes（无提醒时忽略）

        Raises:
            ValueError: minutes 超出 1..1440
        """
        now = self._clock()
        at = snooze_until(now, minutes)

        def snooze(old: Entity) -> Optional[Entity]:
            if old.alarm is None:
                return None
            alarm = old.alarm.model_copy(
                update={"at": at, "status": AlarmStatus.SCHEDULED, "snooze_minutes": minutes}
            )
            return old.model_copy(update={"alarm": alarm, "updated_at": now})

        return self._update_entity(kind, entity_id, snooze, description="Snooze alarm")

    def dismiss_alarm(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        """关闭提醒；重复提醒从已存储的 at 推进一个周期"""
        return self._update_entity(
            kind, entity_id, lambda old: self._advance_alarm(old, AlarmStatus.DISMISSED), description="Dismiss alarm"
        )

    def fire_alarm(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        """标记提醒已触发；重复提醒从已存储的 at 推进一个周期"""
        return self._update_entity(
            kind, entity_id, lambda old: self._advance_alarm(old, AlarmStatus.FIRED), description="Fire alarm"
        )

    def _advance_alarm(self, entity: Entity, terminal: AlarmStatus) -> Optional[Entity]:
        if entity.alarm is None:
            return None
        now = self._clock()
        next_at = compute_next_repeat(entity.alarm.at, entity.alarm.repeat)
        if next_at is not None:
            changes = {"at": next_at, "status": AlarmStatus.SCHEDULED, "fired_at": now}
        else:
            changes = {"status": terminal, "fired_at": now}
        alarm = entity.alarm.model_copy(update=changes)
        return entity.model_copy(update={"alarm": alarm, "updated_at": now})

    # ============ Undo / Redo ============

    def undo(self) -> Optional[UndoEntry]:
        """撤销最近一步

        Returns:
            被撤销的条目；撤销栈为空时返回 None
        """
        if not self._history.undo:
            return None
        entry = self._history.undo[-1]
        prior = self._state
        self._replace(self._reverse(entry))

        self._history.undo.pop()
        self._history.redo.append(self._entry(entry.kind, entry.description, prior))
        self._publish()
        return entry

    def redo(self) -> Optional[UndoEntry]:
        """重做：恢复撤销前的整体快照，并把逆操作压回撤销栈"""
        if not self._history.redo:
            return None
        entry = self._history.redo[-1]
        prior = self._state
        self._replace(entry.payload)

        self._history.redo.pop()
        self._history.push_undo(self._entry(UndoKind.RESTORE_SNAPSHOT, entry.description, prior))
        self._publish()
        return entry

    def _reverse(self, entry: UndoEntry) -> AppState:
        state = self._state
        payload = entry.payload

        if entry.is_snapshot:
            return payload

        if entry.kind in _ADD_KINDS:
            kind = _ADD_KINDS[entry.kind]
            return self._with_collection(kind, [e for e in self._collection(kind) if e.id != payload.id])

        if entry.kind in _DELETE_KINDS:
            kind = _DELETE_KINDS[entry.kind]
            entities = self._collection(kind)
            if _find(entities, payload.id) is not None:
                return state
            return self._with_collection(kind, [*entities, payload])

        if entry.kind in _RESTORE_KINDS:
            kind = _RESTORE_KINDS[entry.kind]
            return self._with_collection(kind, _replace_by_id(self._collection(kind), payload))

        if entry.kind is UndoKind.ADD_TAG:
            return state.model_copy(
                update={
                    "tags": tuple(t for t in state.tags if t.id != payload.id),
                    "checklist": tuple(_strip_tag(c, payload.id) for c in state.checklist),
                    "notes": tuple(_strip_tag(n, payload.id) for n in state.notes),
                }
            )

        if entry.kind is UndoKind.UPDATE_TAG:
            return state.model_copy(update={"tags": _replace_by_id(state.tags, payload)})

        if entry.kind is UndoKind.DELETE_TAG:
            return self._reverse_tag_deletion(payload)

        logger.warning(f"No reversal for undo entry kind {entry.kind.value}")
        return state

    def _reverse_tag_deletion(self, deletion: TagDeletion) -> AppState:
        state = self._state
        tag_id = deletion.tag.id

        def relink(entity: E, ids: tuple[str, ...]) -> E:
            if entity.id not in ids or tag_id in entity.tags:
                return entity
            return entity.model_copy(update={"tags": (*entity.tags, tag_id)})

        tags = state.tags if _find(state.tags, tag_id) else (*state.tags, deletion.tag)
        return state.model_copy(
            update={
                "tags": tags,
                "checklist": tuple(relink(c, deletion.checklist_ids) for c in state.checklist),
                "notes": tuple(relink(n, deletion.note_ids) for n in state.notes),
            }
        )

    # ============ Export / Import ============

    def export_data(self) -> str:
        """当前状态 + exportedAt 的格式化 JSON"""
        return self.codec.export_document(self._state, self._clock())

    def import_data(self, text: str) -> ImportResult:
        """整体替换当前状态（破坏性操作，非合并）

        格式错误返回失败结果且不改变状态；容量不足时 StorageQuotaExceeded 照常抛出。
        """
        try:
            imported = self.codec.parse_import(text)
        except InvalidFormat as e:
            logger.warning(f"Import rejected: {e}")
            return ImportResult(success=False, error=str(e))

        self._replace_all(imported)
        logger.info(
            f"Imported snapshot: {len(imported.checklist)} items, {len(imported.notes)} notes, "
            f"{len(imported.tags)} tags"
        )
        return ImportResult(success=True)

    # ============ Remote sync ============

    async def bootstrap(self) -> StorePhase:
        """一次性启动流程：认证 → 拉取 → 对账

        任何远端失败都进入 LOCAL_ONLY（本会话不再重试）。

        Returns:
            启动后的阶段
        """
        if self._phase is not StorePhase.UNINITIALIZED:
            return self._phase

        if self.sync_client is None:
            self._phase = StorePhase.LOCAL_ONLY
            return self._phase

        self._phase = StorePhase.BOOTSTRAPPING
        self._push = DebouncedAction(self._push_snapshot, self.debounce_seconds, loop=asyncio.get_running_loop())

        try:
            await self.sync_client.bootstrap_auth()
            remote = await self.sync_client.pull()
        except (AuthUnavailable, SyncFailed) as e:
            logger.warning(f"Remote sync unavailable, staying local-only: {e}")
            self._phase = StorePhase.LOCAL_ONLY
            return self._phase

        self._phase = StorePhase.READY
        self._reconcile(remote)
        return self._phase

    def _reconcile(self, remote: Optional[AppState]) -> None:
        # 拉取期间可能已有本地修改，因此在拉取完成后再判断
        local_has = self._state.has_data()

        if not local_has and remote is not None:
            logger.info("Local state is empty, adopting remote snapshot")
            self._replace_all(remote)
        elif local_has:
            # 本地优先：覆盖远端
            logger.info("Local state has data, pushing it to the remote")
            self._schedule_push(immediate=True)
        else:
            logger.debug("Local and remote are both empty")

    def _schedule_push(self, immediate: bool = False) -> None:
        if self._phase is not StorePhase.READY or self._push is None:
            return
        if self._push.loop.is_closed():
            logger.debug("Event loop closed, skipping push")
            return
        if immediate:
            self._push.fire_now()
        else:
            self._push.schedule()

    async def _push_snapshot(self) -> None:
        # 取触发时刻的最新状态
        state = self._state
        try:
            await self.sync_client.push(state)
        except (AuthUnavailable, SyncFailed) as e:
            self._last_push_ok = False
            logger.warning(f"Push failed, will retry on next change: {e}")
        else:
            self._last_push_ok = True

    @property
    def push_pending(self) -> bool:
        return self._push is not None and self._push.pending

    @property
    def last_push_succeeded(self) -> Optional[bool]:
        """最近一次推送的结果；本会话尚未推送时为 None"""
        return self._last_push_ok

    async def wait_for_sync(self) -> None:
        """等待已安排和进行中的推送全部完成"""
        if self._push is not None:
            await self._push.wait_idle()

    async def aclose(self) -> None:
        """立即发出挂起的推送，等待完成，然后关闭客户端"""
        if self._push is not None:
            if self._push.pending:
                self._push.fire_now()
            await self._push.wait_idle()
        if self.sync_client is not None:
            await self.sync_client.aclose()


__all__ = ["NotoStore", "StorePhase"]
