"""
CLI runtime helpers - 命令行公共工具

Each command is a top-level composition point: it loads the config,
constructs its own NotoStore and throws it away when done.
"""

import logging
import sys
from typing import Optional, Union

import typer
from rich.console import Console

from noto.config import NotoConfig, get_config
from noto.exceptions import EntityNotFound
from noto.models.state import ChecklistItem, EntityKind, NoteBlock
from noto.store import NotoStore

console = Console()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def current_config(ctx: Optional[typer.Context] = None) -> NotoConfig:
    """全局选项加载的配置（ctx.obj），未经 CLI 入口调用时退回配置单例"""
    if ctx is not None and isinstance(ctx.obj, NotoConfig):
        return ctx.obj
    return get_config()


def open_store(ctx: Optional[typer.Context] = None, with_sync: bool = False) -> NotoStore:
    """按当前配置构造 Store

    Args:
        ctx: 命令上下文（携带全局选项加载的配置）
        with_sync: 是否挂载远端同步客户端（仅 sync 命令需要）
    """
    return NotoStore.from_config(current_config(ctx), sync=with_sync)


def find_entity(
    store: NotoStore,
    id_prefix: str,
    kinds: tuple[EntityKind, ...] = (EntityKind.CHECKLIST, EntityKind.NOTE),
) -> tuple[EntityKind, Union[ChecklistItem, NoteBlock]]:
    """按 id 或唯一前缀查找条目

    Raises:
        EntityNotFound: 没有匹配或前缀不唯一
    """
    state = store.get_snapshot()
    matches: list[tuple[EntityKind, Union[ChecklistItem, NoteBlock]]] = []
    for kind in kinds:
        entities = state.checklist if kind is EntityKind.CHECKLIST else state.notes
        for entity in entities:
            if entity.id == id_prefix:
                return kind, entity
            if entity.id.startswith(id_prefix):
                matches.append((kind, entity))
    if len(matches) != 1:
        raise EntityNotFound("/".join(k.value for k in kinds), id_prefix)
    return matches[0]


def resolve_entity(
    store: NotoStore,
    id_prefix: str,
    kinds: tuple[EntityKind, ...] = (EntityKind.CHECKLIST, EntityKind.NOTE),
) -> tuple[EntityKind, Union[ChecklistItem, NoteBlock]]:
    """find_entity 的 CLI 版本：找不到时打印错误并退出"""
    try:
        return find_entity(store, id_prefix, kinds)
    except EntityNotFound as e:
        console.print(f"[red]❌ {e}（id 不存在或前缀不唯一）[/red]")
        raise typer.Exit(1)


def short_id(entity_id: str, length: int = 8) -> str:
    return entity_id[:length]


def entity_label(entity: Optional[Union[ChecklistItem, NoteBlock]]) -> str:
    if entity is None:
        return "-"
    return entity.title or "(untitled)"


__all__ = [
    "console",
    "configure_logging",
    "current_config",
    "entity_label",
    "find_entity",
    "open_store",
    "resolve_entity",
    "short_id",
]
