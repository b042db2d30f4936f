"""
Tests for NotoStore local mutations (no remote).

测试：
- 提交协议：持久化 → 替换 → 撤销记录 → 通知
- 清单 / 便签 / 标签 / 设置 / 提醒 操作
- 撤销与重做
- 导入导出与容量错误
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from noto.core.identifiers import is_canonical_id
from noto.exceptions import ReorderMismatch, StorageQuotaExceeded
from noto.models.state import Alarm, AlarmRepeat, AlarmStatus, EntityKind, Theme
from noto.models.undo import UndoKind
from noto.models.updates import (
    ChecklistItemUpdate,
    NoteUpdate,
    PanelLayoutUpdate,
    SettingsUpdate,
    TagUpdate,
)
from noto.services.snapshot_codec import SnapshotCodec
from noto.services.storage import MemoryStorage
from noto.store import NotoStore, StorePhase
from noto.tests.conftest import T0


@pytest.fixture
def notifications(store):
    calls = []
    store.subscribe(lambda: calls.append(store.get_snapshot()))
    return calls


class TestCommitProtocol:
    """测试提交协议"""

    def test_mutation_persists_and_notifies(self, store, storage, notifications):
        item = store.add_checklist_item("Buy milk")

        stored = json.loads(storage.read("noto-app-state"))
        assert stored["checklist"][0]["id"] == item.id
        assert len(notifications) == 1
        assert notifications[0] is store.get_snapshot()

    def test_state_is_replaced_not_mutated(self, store):
        before = store.get_snapshot()
        store.add_checklist_item("a")
        assert before.checklist == ()
        assert store.get_snapshot() is not before

    def test_snapshot_collections_are_read_only(self, store, storage):
        tag = store.add_tag("Work")
        item = store.add_checklist_item("a")
        store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, tag.id)
        snapshot = store.get_snapshot()

        with pytest.raises(AttributeError):
            snapshot.checklist.clear()
        with pytest.raises(AttributeError):
            snapshot.tags.append(tag)
        with pytest.raises(AttributeError):
            snapshot.checklist[0].tags.clear()

        assert [c.id for c in store.get_snapshot().checklist] == [item.id]
        assert json.loads(storage.read("noto-app-state"))["checklist"][0]["tags"] == [tag.id]

    def test_redo_snapshot_is_isolated_from_live_state(self, store):
        store.add_tag("Work")
        store.add_checklist_item("a")
        store.undo()

        redo_state = store.redo_stack[-1].payload
        assert isinstance(store.get_snapshot().tags, tuple)
        assert isinstance(redo_state.tags, tuple)

        store.redo()
        assert [t.title for t in store.get_snapshot().tags] == ["Work"]
        assert [c.title for c in store.get_snapshot().checklist] == ["a"]

    def test_unknown_id_is_silent_noop(self, store, storage, notifications):
        writes = storage.writes
        assert store.toggle_checklist_item("missing") is None
        assert store.update_note("missing", NoteUpdate(title="x")) is None
        assert store.delete_checklist_item("missing") is None
        assert store.delete_tag("missing") is None
        assert notifications == []
        assert storage.writes == writes
        assert not store.can_undo

    def test_empty_update_is_noop(self, store, storage, notifications):
        item = store.add_checklist_item("a")
        writes = storage.writes

        assert store.update_checklist_item(item.id, ChecklistItemUpdate()) == item

        assert storage.writes == writes
        assert len(notifications) == 1

    def test_local_store_starts_uninitialized(self, store):
        assert store.phase is StorePhase.UNINITIALIZED
        assert not store.push_pending

    @pytest.mark.asyncio
    async def test_bootstrap_without_client_is_local_only(self, store):
        assert await store.bootstrap() is StorePhase.LOCAL_ONLY
        # 再次调用不重复执行
        assert await store.bootstrap() is StorePhase.LOCAL_ONLY

    def test_reload_from_storage(self, store, codec, clock):
        item = store.add_checklist_item("persisted")
        reopened = NotoStore(codec, clock=clock)
        assert reopened.get_checklist_item(item.id) == item


class TestQuotaExceeded:
    """测试容量不足时的行为"""

    @pytest.fixture
    def small_store(self, clock):
        return NotoStore(SnapshotCodec(MemoryStorage(quota_bytes=2000)), clock=clock)

    def test_failed_write_changes_nothing(self, small_store):
        small_store.add_checklist_item("fits")
        before = small_store.get_snapshot()
        undo_before = small_store.undo_stack
        calls = []
        small_store.subscribe(lambda: calls.append(1))

        with pytest.raises(StorageQuotaExceeded):
            small_store.add_checklist_item("x" * 5000)

        assert small_store.get_snapshot() is before
        assert small_store.undo_stack == undo_before
        assert calls == []

    def test_failed_update_keeps_old_title(self, small_store):
        item = small_store.add_checklist_item("fits")
        with pytest.raises(StorageQuotaExceeded):
            small_store.update_checklist_item(item.id, ChecklistItemUpdate(title="y" * 5000))
        assert small_store.get_checklist_item(item.id).title == "fits"


class TestChecklist:
    """测试清单操作"""

    def test_add_prepends_with_next_order(self, store, clock):
        first = store.add_checklist_item("first")
        second = store.add_checklist_item("second", "<p>desc</p>")

        state = store.get_snapshot()
        assert [c.title for c in state.checklist] == ["second", "first"]
        assert (first.order, second.order) == (0, 1)
        assert second.description_html == "<p>desc</p>"
        assert second.created_at == second.updated_at == T0
        assert is_canonical_id(second.id)

    def test_update_sets_fields_and_timestamp(self, store, clock):
        item = store.add_checklist_item("A")
        clock.advance(minutes=5)

        updated = store.update_checklist_item(item.id, ChecklistItemUpdate(title="B", archived=True))

        assert updated.title == "B"
        assert updated.archived is True
        assert updated.updated_at == T0 + timedelta(minutes=5)
        assert updated.created_at == T0

    def test_toggle_moves_checked_item_to_end(self, store):
        a = store.add_checklist_item("a")
        store.add_checklist_item("b")
        store.add_checklist_item("c")

        checked = store.toggle_checklist_item(a.id)
        assert checked.checked is True
        assert checked.order == 3

        unchecked = store.toggle_checklist_item(a.id)
        assert unchecked.checked is False
        assert unchecked.order == 3

    def test_pin_toggles(self, store):
        item = store.add_checklist_item("a")
        assert store.pin_checklist_item(item.id).pinned is True
        assert store.pin_checklist_item(item.id).pinned is False

    def test_delete_and_restore(self, store):
        item = store.add_checklist_item("a")
        removed = store.delete_checklist_item(item.id)
        assert removed == item
        assert store.get_checklist_item(item.id) is None

        store.restore_checklist_item(item)
        assert store.get_checklist_item(item.id) == item
        # 已存在时忽略
        store.restore_checklist_item(item)
        assert len(store.get_snapshot().checklist) == 1

    def test_reorder_assigns_positions(self, store):
        a = store.add_checklist_item("a")
        b = store.add_checklist_item("b")
        c = store.add_checklist_item("c")
        undo_depth = len(store.undo_stack)

        store.reorder_checklist([a, c, b])

        state = store.get_snapshot()
        assert [(x.title, x.order) for x in state.checklist] == [("a", 0), ("c", 1), ("b", 2)]
        # 排序不进入撤销栈
        assert len(store.undo_stack) == undo_depth

    def test_permissive_reorder_drops_omitted(self, store, caplog):
        a = store.add_checklist_item("a")
        store.add_checklist_item("b")
        c = store.add_checklist_item("c")

        store.reorder_checklist([c, a, c])

        assert [x.title for x in store.get_snapshot().checklist] == ["c", "a"]
        assert "omits 1 entities" in caplog.text

    def test_strict_reorder_rejects_mismatch(self, store):
        a = store.add_checklist_item("a")
        b = store.add_checklist_item("b")
        before = store.get_snapshot()

        with pytest.raises(ReorderMismatch) as exc_info:
            store.reorder_checklist([a], strict=True)
        assert exc_info.value.missing == {b.id}

        with pytest.raises(ReorderMismatch):
            store.reorder_checklist([a, a, b], strict=True)

        assert store.get_snapshot() is before


class TestNotes:
    """测试便签操作"""

    def test_add_note(self, store):
        doc = {"type": "doc", "content": [{"type": "text", "text": "hi"}]}
        first = store.add_note("one")
        second = store.add_note("two", "<p>hi</p>", doc)

        assert [n.title for n in store.get_snapshot().notes] == ["two", "one"]
        assert (first.order, second.order) == (0, 1)
        assert second.content_json == doc

    def test_update_can_clear_content_json(self, store):
        note = store.add_note("n", "<p>x</p>", {"type": "doc"})
        updated = store.update_note(note.id, NoteUpdate(content_json=None))
        assert updated.content_json is None
        assert updated.html == "<p>x</p>"

    def test_pin_and_delete(self, store):
        note = store.add_note("n")
        assert store.pin_note(note.id).pinned is True
        store.delete_note(note.id)
        assert store.get_note(note.id) is None

    def test_reorder_notes(self, store):
        a = store.add_note("a")
        b = store.add_note("b")
        store.reorder_notes([a, b])
        assert [(n.title, n.order) for n in store.get_snapshot().notes] == [("a", 0), ("b", 1)]


class TestTags:
    """测试标签操作"""

    def test_add_tag_validates_title(self, store):
        tag = store.add_tag("Work", "blue")
        assert store.get_tag(tag.id).color_key == "blue"

        with pytest.raises(ValidationError):
            store.add_tag("")
        with pytest.raises(ValidationError):
            store.add_tag("x" * 33)
        assert len(store.get_snapshot().tags) == 1

    def test_update_tag(self, store):
        tag = store.add_tag("Work", "blue")
        updated = store.update_tag(tag.id, TagUpdate(title="Job", color_key=None))
        assert updated.title == "Job"
        assert updated.color_key is None

    def test_toggle_tag_on_item(self, store):
        tag = store.add_tag("Work")
        item = store.add_checklist_item("a")

        assert store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, tag.id).tags == (tag.id,)
        assert store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, tag.id).tags == ()

    def test_delete_tag_cascades_references(self, store):
        tag = store.add_tag("Work")
        keep = store.add_tag("Home")
        items = [store.add_checklist_item("a"), store.add_checklist_item("b")]
        note = store.add_note("n")
        for item in items:
            store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, tag.id)
            store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, keep.id)
        store.toggle_tag_on_item(EntityKind.NOTE, note.id, tag.id)

        store.delete_tag(tag.id)

        state = store.get_snapshot()
        assert [t.id for t in state.tags] == [keep.id]
        assert len(state.checklist) == 2 and len(state.notes) == 1
        assert all(c.tags == (keep.id,) for c in state.checklist)
        assert state.notes[0].tags == ()


class TestSettings:
    """测试设置"""

    def test_set_theme_is_not_undoable(self, store):
        store.set_theme(Theme.DARK)
        assert store.get_snapshot().settings.theme is Theme.DARK
        assert not store.can_undo

    def test_unchanged_settings_do_not_write(self, store, storage, notifications):
        store.set_theme(Theme.LIGHT)
        store.update_settings(SettingsUpdate())
        assert storage.writes == 0
        assert notifications == []

    def test_panel_layout(self, store):
        store.set_panel_layout(PanelLayoutUpdate(split_ratio=30))
        layout = store.get_snapshot().settings.panel_layout
        assert layout.split_ratio == 30
        assert layout.collapsed.value == "none"

    def test_update_settings(self, store):
        store.update_settings(SettingsUpdate(use_persian_digits=True))
        assert store.get_snapshot().settings.use_persian_digits is True


class TestAlarms:
    """测试提醒操作（时钟固定在 T0 = 2025-01-02T10:00Z）"""

    @pytest.fixture
    def item(self, store):
        return store.add_checklist_item("call mom")

    def _set(self, store, item, repeat=AlarmRepeat.NONE, at=None):
        alarm = Alarm(id="legacy", at=at or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc), repeat=repeat)
        return store.set_alarm(EntityKind.CHECKLIST, item.id, alarm)

    def test_set_alarm_assigns_canonical_id(self, store, item):
        updated = self._set(store, item)
        assert is_canonical_id(updated.alarm.id)
        assert updated.alarm.status is AlarmStatus.SCHEDULED

    def test_clear_alarm(self, store, item):
        self._set(store, item)
        assert store.set_alarm(EntityKind.CHECKLIST, item.id, None).alarm is None

    def test_dismiss_daily_advances_from_stored_time(self, store, item):
        self._set(store, item, AlarmRepeat.DAILY)

        alarm = store.dismiss_alarm(EntityKind.CHECKLIST, item.id).alarm

        assert alarm.at == datetime(2025, 1, 2, 9, 0, tzinfo=timezone.utc)
        assert alarm.status is AlarmStatus.SCHEDULED
        assert alarm.fired_at == T0

    def test_dismiss_one_off(self, store, item):
        self._set(store, item)
        alarm = store.dismiss_alarm(EntityKind.CHECKLIST, item.id).alarm
        assert alarm.status is AlarmStatus.DISMISSED
        assert alarm.fired_at == T0
        assert alarm.at == datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_fire_one_off_and_weekly(self, store, item):
        self._set(store, item)
        assert store.fire_alarm(EntityKind.CHECKLIST, item.id).alarm.status is AlarmStatus.FIRED

        self._set(store, item, AlarmRepeat.WEEKLY)
        alarm = store.fire_alarm(EntityKind.CHECKLIST, item.id).alarm
        assert alarm.at == datetime(2025, 1, 8, 9, 0, tzinfo=timezone.utc)
        assert alarm.status is AlarmStatus.SCHEDULED

    def test_snooze(self, store, item):
        self._set(store, item)
        store.fire_alarm(EntityKind.CHECKLIST, item.id)

        alarm = store.snooze_alarm(EntityKind.CHECKLIST, item.id, 15).alarm

        assert alarm.at == T0 + timedelta(minutes=15)
        assert alarm.status is AlarmStatus.SCHEDULED
        assert alarm.snooze_minutes == 15

    @pytest.mark.parametrize("minutes", [0, -5, 1441])
    def test_snooze_out_of_range(self, store, item, minutes):
        self._set(store, item)
        before = store.get_snapshot()
        with pytest.raises(ValueError):
            store.snooze_alarm(EntityKind.CHECKLIST, item.id, minutes)
        assert store.get_snapshot() is before

    def test_alarm_ops_without_alarm_are_noops(self, store, item, storage):
        writes = storage.writes
        assert store.snooze_alarm(EntityKind.CHECKLIST, item.id, 10) is None
        assert store.dismiss_alarm(EntityKind.CHECKLIST, item.id) is None
        assert storage.writes == writes

    def test_alarm_on_note(self, store):
        note = store.add_note("n")
        alarm = Alarm(at=datetime(2025, 1, 3, 8, 0, tzinfo=timezone.utc))
        assert store.set_alarm(EntityKind.NOTE, note.id, alarm).alarm.at.day == 3

    def test_alarm_change_is_undoable(self, store, item):
        self._set(store, item)
        entry = store.undo()
        assert entry.kind is UndoKind.UPDATE_CHECKLIST
        assert store.get_checklist_item(item.id).alarm is None


class TestUndoRedo:
    """测试撤销/重做"""

    def test_empty_history(self, store):
        assert store.undo() is None
        assert store.redo() is None

    def test_undo_add(self, store):
        item = store.add_checklist_item("a")
        entry = store.undo()
        assert entry.kind is UndoKind.ADD_CHECKLIST
        assert store.get_checklist_item(item.id) is None
        assert store.can_redo

    def test_undo_delete_restores_item(self, store):
        item = store.add_checklist_item("a")
        store.delete_checklist_item(item.id)
        store.undo()
        assert store.get_checklist_item(item.id) == item

    def test_undo_redo_update(self, store):
        item = store.add_checklist_item("A")
        store.update_checklist_item(item.id, ChecklistItemUpdate(title="B"))

        store.undo()
        assert store.get_checklist_item(item.id).title == "A"

        store.redo()
        assert store.get_checklist_item(item.id).title == "B"
        assert store.undo_stack[-1].kind is UndoKind.RESTORE_SNAPSHOT

        store.undo()
        assert store.get_checklist_item(item.id).title == "A"

    def test_undo_toggle_restores_order(self, store):
        a = store.add_checklist_item("a")
        store.add_checklist_item("b")
        store.toggle_checklist_item(a.id)

        store.undo()

        restored = store.get_checklist_item(a.id)
        assert restored.checked is False
        assert restored.order == 0

    def test_undo_note_operations(self, store):
        note = store.add_note("n")
        store.pin_note(note.id)
        store.undo()
        assert store.get_note(note.id).pinned is False
        store.delete_note(note.id)
        store.undo()
        assert store.get_note(note.id) == note

    def test_undo_delete_tag_relinks(self, store):
        tag = store.add_tag("Work")
        item = store.add_checklist_item("a")
        note = store.add_note("n")
        store.toggle_tag_on_item(EntityKind.CHECKLIST, item.id, tag.id)
        store.toggle_tag_on_item(EntityKind.NOTE, note.id, tag.id)

        store.delete_tag(tag.id)
        store.undo()

        assert store.get_tag(tag.id) == tag
        assert store.get_checklist_item(item.id).tags == (tag.id,)
        assert store.get_note(note.id).tags == (tag.id,)

    def test_undo_tag_update_and_add(self, store):
        tag = store.add_tag("Work")
        store.update_tag(tag.id, TagUpdate(title="Job"))
        store.undo()
        assert store.get_tag(tag.id).title == "Work"
        store.undo()
        assert store.get_tag(tag.id) is None

    def test_redo_keeps_remaining_redo_entries(self, store):
        store.add_checklist_item("a")
        store.add_checklist_item("b")
        store.undo()
        store.undo()
        assert len(store.redo_stack) == 2

        store.redo()
        assert len(store.redo_stack) == 1
        store.redo()
        assert [c.title for c in store.get_snapshot().checklist] == ["b", "a"]

    def test_new_mutation_clears_redo(self, store):
        store.add_checklist_item("a")
        store.undo()
        store.add_checklist_item("b")
        assert not store.can_redo

    def test_undo_limit(self, codec, clock):
        store = NotoStore(codec, undo_limit=3, clock=clock)
        for title in "abcde":
            store.add_checklist_item(title)

        assert len(store.undo_stack) == 3
        for _ in range(3):
            store.undo()
        assert store.undo() is None
        assert [c.title for c in store.get_snapshot().checklist] == ["b", "a"]

    def test_undo_notifies_and_persists(self, store, storage, notifications):
        store.add_checklist_item("a")
        store.undo()
        assert len(notifications) == 2
        assert json.loads(storage.read("noto-app-state"))["checklist"] == []


class TestImportExport:
    """测试导入导出"""

    def test_export_contains_state_and_timestamp(self, store):
        store.add_checklist_item("a")
        document = json.loads(store.export_data())
        assert document["exportedAt"] == "2025-01-02T10:00:00.000Z"
        assert document["checklist"][0]["title"] == "a"

    def test_import_replaces_state_and_clears_history(self, store, codec, clock, notifications):
        other = NotoStore(SnapshotCodec(MemoryStorage()), clock=clock)
        other.add_note("imported")
        exported = other.export_data()
        store.add_checklist_item("local")

        result = store.import_data(exported)

        assert result.success is True
        state = store.get_snapshot()
        assert state.checklist == ()
        assert [n.title for n in state.notes] == ["imported"]
        assert not store.can_undo and not store.can_redo
        assert len(notifications) == 2
        assert codec.load_snapshot() == state

    def test_unknown_version_leaves_state_untouched(self, store, storage, caplog):
        store.add_checklist_item("keep")
        before = store.get_snapshot()
        blob = storage.read("noto-app-state")

        result = store.import_data(json.dumps({"schemaVersion": 999, "checklist": []}))

        assert result.success is False
        assert "999" in result.error
        assert store.get_snapshot() is before
        assert storage.read("noto-app-state") == blob
        assert "Import rejected" in caplog.text

    def test_import_garbage(self, store):
        assert store.import_data("definitely not json").success is False

    def test_import_quota_error_propagates(self, clock):
        small = NotoStore(SnapshotCodec(MemoryStorage(quota_bytes=500)), clock=clock)
        document = {"schemaVersion": 2, "notes": [{"title": "x" * 2000}]}
        with pytest.raises(StorageQuotaExceeded):
            small.import_data(json.dumps(document))
        assert small.get_snapshot().notes == ()
