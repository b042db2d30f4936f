"""
Local Storage Backend - 本地持久化介质

A tiny key/value medium holding serialized blobs: one key for the full
AppState snapshot, one key for the anonymous credential triple.

设计原则：
- Protocol 模式，允许第三方实现
- 容量不足必须显式报错（StorageQuotaExceeded），绝不静默丢数据
"""

import errno
import logging
import os
import re
import tempfile
from abc import abstractmethod
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from noto.exceptions import StorageQuotaExceeded

logger = logging.getLogger(__name__)

# 视为"容量不足"的 errno
_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC), errno.EFBIG}

_SAFE_KEY_RE = re.compile(r"[^a-zA-Z0-9_.-]")


def _byte_size(value: str) -> int:
    return len(value.encode("utf-8", errors="surrogateescape"))


@runtime_checkable
class KeyValueStorage(Protocol):
    """本地存储介质协议"""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """读取值，不存在返回 None"""
        ...

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """写入值

        Raises:
            StorageQuotaExceeded: 介质容量不足
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """删除值（不存在时忽略）"""
        ...


class MemoryStorage:
    """In-process storage with an optional byte quota (tests, ephemeral sessions)."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self.writes = 0

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            others = sum(_byte_size(v) for k, v in self._data.items() if k != key)
            if others + _byte_size(value) > self.quota_bytes:
                raise StorageQuotaExceeded(key)
        self._data[key] = value
        self.writes += 1

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileStorage:
    """One JSON file per key under a data directory.

    Writes go to a temp file in the same directory and are renamed into
    place, so a crash never leaves a half-written snapshot.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            # 保留原始字节（surrogateescape），由上层按"损坏数据"处理并备份
            logger.error(f"Undecodable storage file {path}: {e}")
            return path.read_bytes().decode("utf-8", errors="surrogateescape")

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_name: Optional[str] = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            if e.errno in _QUOTA_ERRNOS:
                raise StorageQuotaExceeded(key, f"Storage quota exceeded while writing {path}: {e}") from e
            raise
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temp file {tmp_name}")

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


__all__ = ["KeyValueStorage", "MemoryStorage", "FileStorage"]
