"""
Identifier utilities - 标识符生成与修复

Every entity id must be a canonical UUID. Legacy data (hand-edited exports,
early app versions using short ids like ``"t1"``) is repaired on load by
mapping each non-canonical id to one fresh UUID, consistently across every
reference within the same pass.
"""

import logging
import random
import re
import uuid
from typing import Optional

from noto.models.state import Alarm, AppState, TagDef

logger = logging.getLogger(__name__)

_CANONICAL_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def generate_id() -> str:
    """Generate a version-4 UUID string.

    Uses the OS CSPRNG (via ``uuid.uuid4``); falls back to the ``random``
    module only when the platform has no urandom source.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        logger.warning("os.urandom unavailable, falling back to pseudo-random UUIDs")
        return str(uuid.UUID(int=random.getrandbits(128), version=4))


def is_canonical_id(value: object) -> bool:
    """Strict RFC 4122 textual format check (36 chars, version 1-5, variant 10xx)."""
    return isinstance(value, str) and bool(_CANONICAL_ID_RE.match(value))


class _IdMapper:
    """Single-pass old-id -> new-id table."""

    def __init__(self):
        self.mapping: dict[str, str] = {}
        self.generated = 0

    def entity_id(self, old: str) -> str:
        # 空 id 不能共享映射，否则多个实体会拿到同一个 UUID
        if not old:
            self.generated += 1
            return generate_id()
        return self.ref(old)

    def ref(self, old: str) -> str:
        if is_canonical_id(old):
            return old
        if old not in self.mapping:
            self.mapping[old] = generate_id()
        return self.mapping[old]

    def refs(self, olds: tuple[str, ...]) -> tuple[str, ...]:
        fixed: list[str] = []
        for old in olds:
            if not old:
                continue
            new = self.ref(old)
            if new not in fixed:
                fixed.append(new)
        return tuple(fixed)

    @property
    def changed(self) -> bool:
        return bool(self.mapping) or self.generated > 0


def _repair_alarm(alarm: Optional[Alarm], mapper: _IdMapper) -> Optional[Alarm]:
    if alarm is None:
        return None
    new_id = mapper.entity_id(alarm.id)
    return alarm if new_id == alarm.id else alarm.model_copy(update={"id": new_id})


def _repair_tag(tag: TagDef, mapper: _IdMapper) -> TagDef:
    new_id = mapper.entity_id(tag.id)
    return tag if new_id == tag.id else tag.model_copy(update={"id": new_id})


def _repair_entity(entity, mapper: _IdMapper):
    new_id = mapper.entity_id(entity.id)
    new_tags = mapper.refs(entity.tags)
    new_alarm = _repair_alarm(entity.alarm, mapper)
    if new_id == entity.id and new_tags == entity.tags and new_alarm is entity.alarm:
        return entity
    return entity.model_copy(update={"id": new_id, "tags": new_tags, "alarm": new_alarm})


def repair_identifiers(state: AppState) -> AppState:
    """Rewrite every non-canonical id and every reference to it.

    Pure and idempotent: canonical ids pass through unchanged, and a state
    with nothing to repair is returned as the same object.

    Args:
        state: 待修复的状态

    Returns:
        修复后的状态
    """
    mapper = _IdMapper()

    tags = tuple(_repair_tag(t, mapper) for t in state.tags)
    checklist = tuple(_repair_entity(c, mapper) for c in state.checklist)
    notes = tuple(_repair_entity(n, mapper) for n in state.notes)

    unchanged = (
        all(a is b for a, b in zip(tags, state.tags))
        and all(a is b for a, b in zip(checklist, state.checklist))
        and all(a is b for a, b in zip(notes, state.notes))
    )
    if unchanged:
        return state

    if mapper.changed:
        logger.info(
            f"Repaired identifiers: {len(mapper.mapping)} remapped, {mapper.generated} generated"
        )
    return state.model_copy(update={"tags": tags, "checklist": checklist, "notes": notes})


__all__ = ["generate_id", "is_canonical_id", "repair_identifiers"]
