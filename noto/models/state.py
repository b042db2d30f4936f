"""
State data models - 应用状态数据模型

AppState is the root aggregate owned by the store. All models are frozen:
the store replaces references instead of mutating in place.

Wire names are camelCase (``descriptionHtml``, ``panelLayout`` ...),
Python attributes are snake_case. Loading is tolerant: unknown enum values,
missing optional fields and out-of-range numbers are coerced to defaults
instead of rejected.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from noto.core.timeutil import ensure_utc, isoformat_z, now_utc, parse_instant

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2
KNOWN_SCHEMA_VERSIONS = frozenset({CURRENT_SCHEMA_VERSION})

# 本地 splitRatio 使用 0-100 百分比
DEFAULT_SPLIT_RATIO = 50.0
MIN_SPLIT_RATIO = 20.0
MAX_SPLIT_RATIO = 80.0

TAG_TITLE_MAX_LENGTH = 32

UtcDatetime = Annotated[
    datetime,
    AfterValidator(ensure_utc),
    PlainSerializer(isoformat_z, return_type=str, when_used="json"),
]


class Theme(str, Enum):
    """界面主题"""

    LIGHT = "light"
    DARK = "dark"


class PanelCollapse(str, Enum):
    """面板折叠状态"""

    NONE = "none"
    LEFT = "left"
    RIGHT = "right"


class AlarmRepeat(str, Enum):
    """提醒重复周期"""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"


class AlarmStatus(str, Enum):
    """提醒状态"""

    SCHEDULED = "scheduled"
    FIRED = "fired"
    DISMISSED = "dismissed"
    MISSED = "missed"


class EntityKind(str, Enum):
    """Addressable collections that can carry tags and an alarm."""

    CHECKLIST = "checklist"
    NOTE = "note"


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_flag(value: Any) -> Any:
    # pydantic 的宽松模式处理 "true"/1 等，这里只兜底 None
    return False if value is None else value


def _coerce_tag_refs(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    refs: list[str] = []
    for ref in value:
        if isinstance(ref, str) and ref and ref not in refs:
            refs.append(ref)
    return tuple(refs)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Alarm(_WireModel):
    """Embedded reminder (at most one per checklist item / note)."""

    id: str = ""
    at: UtcDatetime
    repeat: AlarmRepeat = AlarmRepeat.NONE
    snooze_minutes: Optional[int] = None
    fired_at: Optional[UtcDatetime] = None
    status: AlarmStatus = AlarmStatus.SCHEDULED

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return _coerce_text(v)

    @field_validator("repeat", mode="before")
    @classmethod
    def _coerce_repeat(cls, v):
        return _enum_or_default(AlarmRepeat, v, AlarmRepeat.NONE)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        return _enum_or_default(AlarmStatus, v, AlarmStatus.SCHEDULED)

    @field_validator("snooze_minutes", mode="before")
    @classmethod
    def _coerce_snooze(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return int(v)

    @field_validator("fired_at", mode="before")
    @classmethod
    def _coerce_fired_at(cls, v):
        return parse_instant(v)


def _coerce_alarm(value: Any) -> Optional[Alarm]:
    if value is None or isinstance(value, Alarm):
        return value
    try:
        return Alarm.model_validate(value)
    except ValidationError as e:
        logger.warning(f"Dropping unreadable alarm: {e.error_count()} validation error(s)")
        return None


class TagDef(_WireModel):
    """标签定义"""

    id: str = ""
    title: str = ""
    color_key: Optional[str] = None

    @field_validator("id", "title", mode="before")
    @classmethod
    def _coerce_str(cls, v):
        return _coerce_text(v)

    @field_validator("color_key", mode="before")
    @classmethod
    def _coerce_color(cls, v):
        if v is None or v == "":
            return None
        return _coerce_text(v)


class _TaggedEntity(_WireModel):
    """Fields shared by checklist items and note blocks."""

    id: str = ""
    title: str = ""
    pinned: bool = False
    archived: bool = False
    tags: tuple[str, ...] = ()
    order: int = 0
    created_at: UtcDatetime = Field(default_factory=now_utc)
    updated_at: UtcDatetime = Field(default_factory=now_utc)
    alarm: Optional[Alarm] = None

    @field_validator("id", "title", mode="before")
    @classmethod
    def _coerce_str(cls, v):
        return _coerce_text(v)

    @field_validator("pinned", "archived", mode="before")
    @classmethod
    def _coerce_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v):
        return _coerce_tag_refs(v)

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, v):
        if isinstance(v, bool):
            return 0
        if isinstance(v, int):
            return v
        # 旧数据中的小数 order 向下取整，保持相对位置
        if isinstance(v, float) and math.isfinite(v):
            return math.floor(v)
        return 0

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v):
        return parse_instant(v) or now_utc()

    @field_validator("alarm", mode="before")
    @classmethod
    def _coerce_embedded_alarm(cls, v):
        return _coerce_alarm(v)


class ChecklistItem(_TaggedEntity):
    """清单项"""

    description_html: str = ""
    checked: bool = False

    @field_validator("description_html", mode="before")
    @classmethod
    def _coerce_description(cls, v):
        return _coerce_text(v)

    @field_validator("checked", mode="before")
    @classmethod
    def _coerce_checked(cls, v):
        return _coerce_flag(v)


class NoteBlock(_TaggedEntity):
    """便签块（富文本）"""

    html: str = ""
    content_json: Optional[Any] = None

    @field_validator("html", mode="before")
    @classmethod
    def _coerce_html(cls, v):
        return _coerce_text(v)


class PanelLayout(_WireModel):
    """双栏布局"""

    split_ratio: float = DEFAULT_SPLIT_RATIO
    collapsed: PanelCollapse = PanelCollapse.NONE

    @field_validator("split_ratio", mode="before")
    @classmethod
    def _clamp_split_ratio(cls, v):
        if isinstance(v, bool):
            return DEFAULT_SPLIT_RATIO
        try:
            ratio = float(v)
        except (TypeError, ValueError):
            return DEFAULT_SPLIT_RATIO
        if math.isnan(ratio):
            return DEFAULT_SPLIT_RATIO
        # 旧数据可能存的是 0-1 小数
        if 0 < ratio <= 1:
            ratio *= 100
        return max(MIN_SPLIT_RATIO, min(MAX_SPLIT_RATIO, ratio))

    @field_validator("collapsed", mode="before")
    @classmethod
    def _coerce_collapsed(cls, v):
        return _enum_or_default(PanelCollapse, v, PanelCollapse.NONE)


class Settings(_WireModel):
    """用户设置"""

    theme: Theme = Theme.LIGHT
    use_persian_digits: bool = False
    panel_layout: PanelLayout = Field(default_factory=PanelLayout)

    @field_validator("theme", mode="before")
    @classmethod
    def _coerce_theme(cls, v):
        return _enum_or_default(Theme, v, Theme.LIGHT)

    @field_validator("use_persian_digits", mode="before")
    @classmethod
    def _coerce_digits(cls, v):
        return _coerce_flag(v)

    @field_validator("panel_layout", mode="before")
    @classmethod
    def _coerce_layout(cls, v):
        return {} if v is None else v


class AppState(_WireModel):
    """Root aggregate: one per user session."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    settings: Settings = Field(default_factory=Settings)
    tags: tuple[TagDef, ...] = ()
    checklist: tuple[ChecklistItem, ...] = ()
    notes: tuple[NoteBlock, ...] = ()

    @field_validator("schema_version", mode="before")
    @classmethod
    def _coerce_schema_version(cls, v):
        if isinstance(v, int) and not isinstance(v, bool) and v in KNOWN_SCHEMA_VERSIONS:
            return v
        if v != CURRENT_SCHEMA_VERSION:
            logger.debug(f"Coercing unknown schemaVersion {v!r} to {CURRENT_SCHEMA_VERSION}")
        return CURRENT_SCHEMA_VERSION

    @field_validator("settings", mode="before")
    @classmethod
    def _coerce_settings(cls, v):
        return {} if v is None else v

    @field_validator("tags", "checklist", "notes", mode="before")
    @classmethod
    def _coerce_collection(cls, v):
        return tuple(v) if isinstance(v, (list, tuple)) else ()

    def has_data(self) -> bool:
        """True when any of the three collections is non-empty."""
        return bool(self.tags or self.checklist or self.notes)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


def default_state() -> AppState:
    """A fresh, empty state."""
    return AppState()


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a local import; failures never raise past the import call."""

    success: bool
    error: Optional[str] = None


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "KNOWN_SCHEMA_VERSIONS",
    "DEFAULT_SPLIT_RATIO",
    "MIN_SPLIT_RATIO",
    "MAX_SPLIT_RATIO",
    "TAG_TITLE_MAX_LENGTH",
    "Theme",
    "PanelCollapse",
    "AlarmRepeat",
    "AlarmStatus",
    "EntityKind",
    "Alarm",
    "TagDef",
    "ChecklistItem",
    "NoteBlock",
    "PanelLayout",
    "Settings",
    "AppState",
    "ImportResult",
    "default_state",
]
