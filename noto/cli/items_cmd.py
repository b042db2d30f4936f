"""
Checklist / note / tag commands - 条目命令

提供：
- noto list: 列出清单或便签
- noto add: 新建清单项
- noto toggle: 勾选/取消勾选
- noto pin: 置顶/取消置顶
- noto delete: 删除清单项或便签
- noto note: 新建便签
- noto tag: 新建标签，或把标签挂到条目上
"""

import html
from typing import Optional

import typer
from pydantic import ValidationError
from rich.table import Table

from noto.cli.runtime import console, open_store, resolve_entity, short_id
from noto.exceptions import StorageQuotaExceeded
from noto.models.state import EntityKind
from noto.store import sorted_checklist, sorted_notes


def _quota_exit(e: StorageQuotaExceeded):
    console.print(f"[red]❌ 保存失败，存储空间不足: {e}[/red]")
    raise typer.Exit(1)


def list_command(
    ctx: typer.Context,
    notes: bool = typer.Option(False, "--notes", "-n", help="列出便签而不是清单"),
    archived: bool = typer.Option(False, "--archived", "-a", help="包含已归档条目"),
):
    """列出清单项或便签"""
    store = open_store(ctx)
    state = store.get_snapshot()
    tag_titles = {t.id: t.title for t in state.tags}

    if notes:
        table = Table(title="🗒️ 便签")
        table.add_column("ID", style="dim", width=8)
        table.add_column("📌", width=2)
        table.add_column("标题", overflow="fold")
        table.add_column("标签")
        for note in sorted_notes(state, include_archived=archived):
            table.add_row(
                short_id(note.id),
                "📌" if note.pinned else "",
                note.title or "[dim](untitled)[/dim]",
                ", ".join(tag_titles.get(t, "?") for t in note.tags),
            )
        console.print(table)
        console.print(f"[dim]共 {len(state.notes)} 条便签[/dim]")
        return

    table = Table(title="✅ 清单")
    table.add_column("ID", style="dim", width=8)
    table.add_column("", width=3)
    table.add_column("标题", overflow="fold")
    table.add_column("标签")
    table.add_column("提醒")
    for item in sorted_checklist(state, include_archived=archived):
        mark = "[green]✓[/green]" if item.checked else ("📌" if item.pinned else "·")
        title = f"[dim strike]{item.title}[/dim strike]" if item.checked else item.title
        alarm = item.alarm.at.strftime("%Y-%m-%d %H:%M") if item.alarm else ""
        table.add_row(
            short_id(item.id),
            mark,
            title,
            ", ".join(tag_titles.get(t, "?") for t in item.tags),
            alarm,
        )
    console.print(table)
    console.print(f"[dim]共 {len(state.checklist)} 条清单项[/dim]")


def add_command(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="清单项标题"),
    description: str = typer.Option("", "--description", "-d", help="描述（纯文本）"),
):
    """新建清单项"""
    store = open_store(ctx)
    description_html = f"<p>{html.escape(description)}</p>" if description else ""
    try:
        item = store.add_checklist_item(title, description_html)
    except StorageQuotaExceeded as e:
        _quota_exit(e)
    console.print(f"[green]✅ 已添加[/green] {item.title} [dim]({short_id(item.id)})[/dim]")


def toggle_command(ctx: typer.Context, item_id: str = typer.Argument(..., help="清单项 id 或前缀")):
    """勾选/取消勾选清单项"""
    store = open_store(ctx)
    _, item = resolve_entity(store, item_id, (EntityKind.CHECKLIST,))
    try:
        updated = store.toggle_checklist_item(item.id)
    except StorageQuotaExceeded as e:
        _quota_exit(e)
    state = "已完成" if updated.checked else "未完成"
    console.print(f"[green]✅ {updated.title}[/green] → {state}")


def pin_command(ctx: typer.Context, entity_id: str = typer.Argument(..., help="清单项或便签 id（前缀）")):
    """置顶/取消置顶"""
    store = open_store(ctx)
    kind, entity = resolve_entity(store, entity_id)
    try:
        if kind is EntityKind.CHECKLIST:
            updated = store.pin_checklist_item(entity.id)
        else:
            updated = store.pin_note(entity.id)
    except StorageQuotaExceeded as e:
        _quota_exit(e)
    console.print(f"{'📌 已置顶' if updated.pinned else '已取消置顶'}: {updated.title or '(untitled)'}")


def delete_command(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="清单项或便签 id（前缀）"),
    yes: bool = typer.Option(False, "--yes", "-y", help="不确认直接删除"),
):
    """删除清单项或便签"""
    store = open_store(ctx)
    kind, entity = resolve_entity(store, entity_id)

    if not yes and not typer.confirm(f"删除 {kind.value} “{entity.title or '(untitled)'}”？"):
        console.print("[dim]已取消[/dim]")
        raise typer.Exit(0)

    try:
        if kind is EntityKind.CHECKLIST:
            store.delete_checklist_item(entity.id)
        else:
            store.delete_note(entity.id)
    except StorageQuotaExceeded as e:
        _quota_exit(e)
    console.print(f"[green]🗑️ 已删除[/green] {entity.title or '(untitled)'}")


def note_command(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="便签标题"),
    body: str = typer.Option("", "--body", "-b", help="正文（纯文本）"),
):
    """新建便签"""
    store = open_store(ctx)
    content_json = None
    note_html = ""
    if body:
        note_html = f"<p>{html.escape(body)}</p>"
        content_json = {
            "type": "doc",
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": body}]}],
        }
    try:
        note = store.add_note(title=title, html=note_html, content_json=content_json)
    except StorageQuotaExceeded as e:
        _quota_exit(e)
    console.print(f"[green]✅ 已添加便签[/green] {note.title} [dim]({short_id(note.id)})[/dim]")


def tag_command(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="标签名（1-32 字符）"),
    color: Optional[str] = typer.Option(None, "--color", "-c", help="颜色键"),
    on: Optional[str] = typer.Option(None, "--on", help="挂到指定条目上（id 前缀），标签不存在时先创建"),
):
    """新建标签，或切换条目上的标签"""
    store = open_store(ctx)
    state = store.get_snapshot()
    tag = next((t for t in state.tags if t.title == title), None)

    try:
        if tag is None:
            try:
                tag = store.add_tag(title, color)
            except ValidationError as e:
                console.print(f"[red]❌ 标签名无效: {e.errors()[0]['msg']}[/red]")
                raise typer.Exit(1)
            console.print(f"[green]✅ 已创建标签[/green] {tag.title}")

        if on:
            kind, entity = resolve_entity(store, on)
            updated = store.toggle_tag_on_item(kind, entity.id, tag.id)
            action = "已添加" if tag.id in updated.tags else "已移除"
            console.print(f"🏷️ {action}标签 {tag.title} → {updated.title or '(untitled)'}")
    except StorageQuotaExceeded as e:
        _quota_exit(e)


__all__ = [
    "add_command",
    "delete_command",
    "list_command",
    "note_command",
    "pin_command",
    "tag_command",
    "toggle_command",
]
