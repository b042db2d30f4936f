"""
Snapshot Codec - 本地快照编解码

Serializes the full AppState to a single durable key and back.

加载策略：
- 缺失 / 损坏 / 无法解析 → 返回默认状态（损坏数据另存为 <key>.corrupt）
- 成功 → 字段补全 + 标识符修复，然后立即回写（读时自愈）

保存策略：
- 容量不足 → StorageQuotaExceeded 原样抛给调用方
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from noto.config import DEFAULT_STATE_KEY
from noto.core.identifiers import repair_identifiers
from noto.core.timeutil import isoformat_z
from noto.exceptions import InvalidFormat, StorageQuotaExceeded
from noto.models.state import KNOWN_SCHEMA_VERSIONS, AppState, default_state
from noto.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

_ORDERED_COLLECTIONS = ("checklist", "notes")
_COLLECTIONS = ("tags", "checklist", "notes")


def _prepare(data: dict) -> dict:
    """Drop non-object entries and give order-less entities their list index."""
    prepared = dict(data)
    for name in _COLLECTIONS:
        raw = prepared.get(name)
        if not isinstance(raw, list):
            continue
        entries = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping non-object entry in '{name}' at index {index}")
                continue
            if name in _ORDERED_COLLECTIONS and "order" not in entry:
                entry = {**entry, "order": index}
            entries.append(entry)
        prepared[name] = entries
    return prepared


def _is_well_formed(text: str) -> bool:
    # 存储层用 surrogateescape 保留了无法解码的原始字节
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class SnapshotCodec:
    """Durable AppState codec over a KeyValueStorage."""

    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_STATE_KEY):
        """
        Args:
            storage: 本地存储介质
            key: 快照键名
        """
        self.storage = storage
        self.key = key

    @property
    def corrupt_key(self) -> str:
        return f"{self.key}.corrupt"

    # ============ Encoding ============

    def decode(self, data: dict) -> AppState:
        """Build a state from a raw dict: defaulting, coercion, id repair.

        Raises:
            ValidationError: 数据结构无法补全
        """
        state = AppState.model_validate(_prepare(data))
        return repair_identifiers(state)

    def encode(self, state: AppState) -> str:
        return json.dumps(state.to_wire(), ensure_ascii=False, separators=(",", ":"))

    # ============ Durable load/save ============

    def load_snapshot(self) -> AppState:
        """读取本地快照，任何失败都回退到默认状态"""
        raw = self.storage.read(self.key)
        if raw is None:
            logger.debug(f"No snapshot under '{self.key}', starting fresh")
            return default_state()

        if not _is_well_formed(raw):
            logger.error(f"Snapshot '{self.key}' is not valid UTF-8")
            self._quarantine(raw)
            return default_state()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Snapshot '{self.key}' is not valid JSON: {e}")
            self._quarantine(raw)
            return default_state()

        if not isinstance(data, dict):
            logger.error(f"Snapshot '{self.key}' is not a JSON object")
            self._quarantine(raw)
            return default_state()

        try:
            state = self.decode(data)
        except ValidationError as e:
            logger.error(f"Snapshot '{self.key}' failed validation: {e.error_count()} error(s)")
            self._quarantine(raw)
            return default_state()

        # 读时自愈：回写修复后的形态
        try:
            self.save_snapshot(state)
        except StorageQuotaExceeded as e:
            logger.warning(f"Could not re-persist repaired snapshot: {e}")

        return state

    def save_snapshot(self, state: AppState) -> None:
        """序列化并持久化

        Raises:
            StorageQuotaExceeded: 介质容量不足，本次写入未生效
        """
        self.storage.write(self.key, self.encode(state))

    def _quarantine(self, raw: str) -> None:
        try:
            self.storage.write(self.corrupt_key, raw)
            logger.info(f"Backed up unreadable snapshot to '{self.corrupt_key}'")
        except StorageQuotaExceeded as e:
            logger.warning(f"Could not back up unreadable snapshot: {e}")

    # ============ Export / Import documents ============

    def export_document(self, state: AppState, exported_at: datetime) -> str:
        """Pretty JSON of the state plus an ``exportedAt`` stamp."""
        document: dict[str, Any] = {**state.to_wire(), "exportedAt": isoformat_z(exported_at)}
        return json.dumps(document, ensure_ascii=False, indent=2)

    def parse_import(self, text: str) -> AppState:
        """Parse an exported document (or a remote ``{exportedAt, state}`` envelope).

        Raises:
            InvalidFormat: 无法解析、不是对象、或 schemaVersion 缺失/未知
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise InvalidFormat(f"Import payload is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise InvalidFormat("Import payload must be a JSON object")

        envelope: Optional[Any] = data.get("state")
        if "schemaVersion" not in data and isinstance(envelope, dict):
            data = envelope

        version = data.get("schemaVersion")
        if version is None:
            raise InvalidFormat("Import payload has no schemaVersion")
        if isinstance(version, bool) or not isinstance(version, int) or version not in KNOWN_SCHEMA_VERSIONS:
            raise InvalidFormat(f"Unrecognized schemaVersion: {version!r}")

        try:
            return self.decode(data)
        except ValidationError as e:
            raise InvalidFormat(f"Import payload failed validation: {e.error_count()} error(s)") from e


__all__ = ["SnapshotCodec"]
