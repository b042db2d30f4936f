"""
Noto Configuration - 配置管理模块

支持三种配置来源（优先级从高到低）：
1. 环境变量（NOTO_ 前缀，覆盖所有配置）
2. 数据目录配置文件（<data_dir>/config.yaml）
3. 全局配置文件（~/.noto/config.yaml）
4. 默认值

用法：
    from noto.config import get_config
    config = get_config()
    print(config.data_dir)
    print(config.sync.api_base_url)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# 默认全局配置目录
DEFAULT_GLOBAL_CONFIG_DIR = Path.home() / ".noto"

DEFAULT_STATE_KEY = "noto-app-state"
DEFAULT_AUTH_KEY = "noto-auth"


class ConfigLoadError(Exception):
    """配置加载错误"""

    pass


@dataclass
class SyncConfig:
    """远端同步配置"""

    enabled: bool = True
    api_base_url: str = "http://localhost:8080"
    api_prefix: str = "/api/v1"
    debounce_seconds: float = 1.0
    # None 表示使用 httpx 默认超时
    request_timeout: Optional[float] = None


@dataclass
class NotoConfig:
    """Noto 配置"""

    # === 存储路径 ===
    data_dir: Path = field(default_factory=lambda: DEFAULT_GLOBAL_CONFIG_DIR / "data")
    state_key: str = DEFAULT_STATE_KEY
    auth_key: str = DEFAULT_AUTH_KEY

    # === 撤销配置 ===
    undo_limit: int = 50

    # === 同步配置 ===
    sync: SyncConfig = field(default_factory=SyncConfig)

    @property
    def api_url(self) -> str:
        """Base URL joined with the API prefix, without a trailing slash."""
        base = self.sync.api_base_url.rstrip("/")
        prefix = self.sync.api_prefix.strip("/")
        return f"{base}/{prefix}" if prefix else base

    def ensure_directories(self):
        """确保数据目录存在"""
        self.data_dir.mkdir(parents=True, exist_ok=True)


def _load_yaml_config(path: Path) -> dict:
    """
    加载 YAML 配置文件。

    Args:
        path: 配置文件路径

    Returns:
        配置字典，如果文件不存在则返回空字典

    Raises:
        ConfigLoadError: YAML 解析失败或其他错误
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
            return content or {}
    except FileNotFoundError:
        logger.debug(f"Config file disappeared: {path}")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        logger.error(f"Failed to load config from {path}: {e}")
        raise ConfigLoadError(f"Failed to load config from {path}: {e}") from e


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _load_sync_config(merged: dict) -> SyncConfig:
    """
    从合并后的配置字典加载同步配置。

    Args:
        merged: 已合并的配置字典

    Returns:
        SyncConfig 对象
    """
    sync_cfg = dict(merged.get("sync") or {})

    # 环境变量覆盖（NOTO_ 前缀）
    env_overrides = {
        "enabled": os.getenv("NOTO_SYNC_ENABLED"),
        "api_base_url": os.getenv("NOTO_API_BASE_URL"),
        "api_prefix": os.getenv("NOTO_API_PREFIX"),
        "debounce_seconds": os.getenv("NOTO_SYNC_DEBOUNCE_SECONDS"),
        "request_timeout": os.getenv("NOTO_REQUEST_TIMEOUT"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            sync_cfg[key] = value

    if "enabled" in sync_cfg:
        sync_cfg["enabled"] = _parse_bool(sync_cfg["enabled"])

    for float_key in ("debounce_seconds", "request_timeout"):
        raw = sync_cfg.get(float_key)
        if raw is None or isinstance(raw, (int, float)):
            continue
        try:
            sync_cfg[float_key] = float(raw)
        except ValueError:
            logger.warning(f"Invalid float value for sync.{float_key}: {raw}")
            sync_cfg.pop(float_key)

    api_base_url = str(sync_cfg.get("api_base_url") or "http://localhost:8080").strip()

    return SyncConfig(
        enabled=sync_cfg.get("enabled", True),
        api_base_url=api_base_url.rstrip("/"),
        api_prefix=sync_cfg.get("api_prefix", "/api/v1"),
        debounce_seconds=sync_cfg.get("debounce_seconds", 1.0),
        request_timeout=sync_cfg.get("request_timeout"),
    )


def load_config(
    data_dir: Optional[Path] = None,
    config_dir: Optional[Path] = None,
) -> NotoConfig:
    """
    加载配置

    Args:
        data_dir: 数据目录（默认 ~/.noto/data 或 NOTO_DATA_DIR）
        config_dir: 全局配置目录（默认 ~/.noto）

    Returns:
        配置对象
    """
    # 1. 确定配置目录
    global_config_dir = config_dir or DEFAULT_GLOBAL_CONFIG_DIR

    # 2. 确定数据目录（优先级：参数 > 环境变量 > 默认）
    env_data_dir = os.getenv("NOTO_DATA_DIR")
    if data_dir is not None:
        resolved_data_dir = Path(data_dir).expanduser()
    elif env_data_dir:
        resolved_data_dir = Path(env_data_dir).expanduser()
    else:
        resolved_data_dir = global_config_dir / "data"

    # 3. 加载全局配置与数据目录配置，后者覆盖前者
    global_cfg = _load_yaml_config(global_config_dir / "config.yaml")
    local_cfg = _load_yaml_config(resolved_data_dir / "config.yaml")
    merged = {**global_cfg, **local_cfg}

    # 4. 整数环境变量覆盖
    undo_limit = merged.get("undo_limit", 50)
    env_undo = os.getenv("NOTO_UNDO_LIMIT")
    if env_undo is not None:
        try:
            undo_limit = int(env_undo)
        except ValueError:
            logger.warning(f"Invalid integer value for NOTO_UNDO_LIMIT: {env_undo}")

    return NotoConfig(
        data_dir=resolved_data_dir,
        state_key=merged.get("state_key", DEFAULT_STATE_KEY),
        auth_key=merged.get("auth_key", DEFAULT_AUTH_KEY),
        undo_limit=undo_limit,
        sync=_load_sync_config(merged),
    )


# === 全局单例 ===
_config: Optional[NotoConfig] = None


def get_config(force_reload: bool = False) -> NotoConfig:
    """
    获取配置单例

    Args:
        force_reload: 强制重新加载

    Returns:
        配置对象
    """
    global _config

    if _config is None or force_reload:
        _config = load_config()

    return _config


def reset_config():
    """重置配置单例（用于测试）"""
    global _config
    _config = None


__all__ = [
    "NotoConfig",
    "SyncConfig",
    "ConfigLoadError",
    "DEFAULT_GLOBAL_CONFIG_DIR",
    "get_config",
    "load_config",
    "reset_config",
]
