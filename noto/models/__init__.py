"""
Noto data models - 数据模型
"""

from noto.models.state import (
    CURRENT_SCHEMA_VERSION,
    KNOWN_SCHEMA_VERSIONS,
    Alarm,
    AlarmRepeat,
    AlarmStatus,
    AppState,
    ChecklistItem,
    EntityKind,
    ImportResult,
    NoteBlock,
    PanelCollapse,
    PanelLayout,
    Settings,
    TagDef,
    Theme,
    default_state,
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

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "KNOWN_SCHEMA_VERSIONS",
    "Alarm",
    "AlarmRepeat",
    "AlarmStatus",
    "AppState",
    "ChecklistItem",
    "EntityKind",
    "ImportResult",
    "NoteBlock",
    "PanelCollapse",
    "PanelLayout",
    "Settings",
    "TagDef",
    "Theme",
    "default_state",
    "TagDeletion",
    "UndoEntry",
    "UndoHistory",
    "UndoKind",
    "ChecklistItemUpdate",
    "NoteUpdate",
    "PanelLayoutUpdate",
    "SettingsUpdate",
    "TagCreate",
    "TagUpdate",
]
