"""
Undo models - 撤销/重做条目

Entries live in memory only and are cleared on any full-state replace.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from noto.models.state import AppState, TagDef


class UndoKind(str, Enum):
    """Tagged mutation type recorded on the undo stack."""

    ADD_CHECKLIST = "add-checklist"
    UPDATE_CHECKLIST = "update-checklist"
    TOGGLE_CHECKLIST = "toggle-checklist"
    PIN_CHECKLIST = "pin-checklist"
    DELETE_CHECKLIST = "delete-checklist"
    ADD_NOTE = "add-note"
    UPDATE_NOTE = "update-note"
    PIN_NOTE = "pin-note"
    DELETE_NOTE = "delete-note"
    ADD_TAG = "add-tag"
    UPDATE_TAG = "update-tag"
    DELETE_TAG = "delete-tag"
    # 重做的逆操作：整体状态快照
    RESTORE_SNAPSHOT = "restore-snapshot"


@dataclass(frozen=True)
class TagDeletion:
    """Payload for DELETE_TAG: the tag plus every entity that referenced it."""

    tag: TagDef
    checklist_ids: tuple[str, ...] = ()
    note_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class UndoEntry:
    """One reversible step.

    ``payload`` is the prior entity snapshot for entity kinds, a
    ``TagDeletion`` for DELETE_TAG, and a whole ``AppState`` for
    RESTORE_SNAPSHOT and for entries on the redo stack.
    """

    kind: UndoKind
    description: str
    payload: Any
    timestamp: datetime

    @property
    def is_snapshot(self) -> bool:
        return isinstance(self.payload, AppState)


@dataclass
class UndoHistory:
    """Bounded undo stack plus redo stack (oldest entries evicted first)."""

    limit: int = 50
    undo: list[UndoEntry] = field(default_factory=list)
    redo: list[UndoEntry] = field(default_factory=list)

    def record(self, entry: UndoEntry) -> None:
        """A fresh user action: push and invalidate the redo branch."""
        self.push_undo(entry)
        self.redo.clear()

    def push_undo(self, entry: UndoEntry) -> None:
        self.undo.append(entry)
        overflow = len(self.undo) - self.limit
        if overflow > 0:
            del self.undo[:overflow]

    def clear(self) -> None:
        self.undo.clear()
        self.redo.clear()


__all__ = ["UndoKind", "UndoEntry", "UndoHistory", "TagDeletion"]
