"""
Request models - 创建/更新请求模型

Update models distinguish "leave unchanged" from "set to value" by pydantic's
unset-field tracking: only fields the caller actually passed end up in
``changes()``. Passing ``None`` explicitly is only meaningful for nullable
fields (``color_key``, ``content_json``) and is rejected everywhere else.
"""

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from noto.models.state import (
    MAX_SPLIT_RATIO,
    MIN_SPLIT_RATIO,
    TAG_TITLE_MAX_LENGTH,
    PanelCollapse,
    Theme,
)


def _dedupe(tags: Optional[tuple[str, ...]]) -> Optional[tuple[str, ...]]:
    if tags is None:
        return None
    unique: list[str] = []
    for tag in tags:
        if tag and tag not in unique:
            unique.append(tag)
    return tuple(unique)


class _PartialUpdate(BaseModel):
    """Base for partial updates with explicit leave-unchanged semantics."""

    model_config = ConfigDict(extra="forbid")

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required(self):
        for name in self.model_fields_set:
            if name not in self.NULLABLE_FIELDS and getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be set to null")
        return self

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller set, keyed by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def is_empty(self) -> bool:
        return not self.model_fields_set


class ChecklistItemUpdate(_PartialUpdate):
    """更新清单项请求"""

    title: Optional[str] = None
    description_html: Optional[str] = None
    checked: Optional[bool] = None
    pinned: Optional[bool] = None
    archived: Optional[bool] = None
    tags: Optional[tuple[str, ...]] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, v):
        return _dedupe(v)


class NoteUpdate(_PartialUpdate):
    """更新便签请求"""

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"content_json"})

    title: Optional[str] = None
    html: Optional[str] = None
    content_json: Optional[Any] = None
    pinned: Optional[bool] = None
    archived: Optional[bool] = None
    tags: Optional[tuple[str, ...]] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, v):
        return _dedupe(v)


class TagCreate(BaseModel):
    """创建标签请求"""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=TAG_TITLE_MAX_LENGTH)
    color_key: Optional[str] = None


class TagUpdate(_PartialUpdate):
    """更新标签请求"""

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"color_key"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=TAG_TITLE_MAX_LENGTH)
    color_key: Optional[str] = None


class PanelLayoutUpdate(_PartialUpdate):
    """更新布局请求（0-100 百分比）"""

    split_ratio: Optional[float] = Field(default=None, ge=MIN_SPLIT_RATIO, le=MAX_SPLIT_RATIO)
    collapsed: Optional[PanelCollapse] = None


class SettingsUpdate(_PartialUpdate):
    """更新设置请求（布局使用 PanelLayoutUpdate）"""

    theme: Optional[Theme] = None
    use_persian_digits: Optional[bool] = None


__all__ = [
    "ChecklistItemUpdate",
    "NoteUpdate",
    "TagCreate",
    "TagUpdate",
    "PanelLayoutUpdate",
    "SettingsUpdate",
]
