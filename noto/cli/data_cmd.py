"""
Data commands - 导入导出与检索

提供：
- noto export: 导出完整快照（JSON）
- noto import: 从导出文件整体替换本地数据
- noto search: 全文检索清单与便签
"""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from noto.cli.runtime import console, open_store, short_id
from noto.exceptions import StorageQuotaExceeded
from noto.services.search import search_state


def export_command(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出文件（默认打印到标准输出）"),
):
    """导出完整快照"""
    store = open_store(ctx)
    document = store.export_data()

    if output is None:
        typer.echo(document)
        return

    output.write_text(document, encoding="utf-8")
    state = store.get_snapshot()
    console.print(
        f"[green]✅ 已导出[/green] {output} "
        f"[dim]({len(state.checklist)} 清单项, {len(state.notes)} 便签, {len(state.tags)} 标签)[/dim]"
    )


def import_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="导出文件路径"),
    yes: bool = typer.Option(False, "--yes", "-y", help="不确认直接覆盖"),
):
    """从导出文件整体替换本地数据（不合并）"""
    store = open_store(ctx)

    if store.get_snapshot().has_data() and not yes:
        if not typer.confirm("导入会覆盖全部本地数据，继续？"):
            console.print("[dim]导入已取消[/dim]")
            raise typer.Exit(0)

    try:
        result = store.import_data(path.read_text(encoding="utf-8"))
    except StorageQuotaExceeded as e:
        console.print(f"[red]❌ 导入失败，存储空间不足: {e}[/red]")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[red]❌ 文件无效: {result.error}[/red]")
        raise typer.Exit(1)

    state = store.get_snapshot()
    console.print(
        f"[green]✅ 导入完成[/green] "
        f"[dim]({len(state.checklist)} 清单项, {len(state.notes)} 便签, {len(state.tags)} 标签)[/dim]"
    )


def search_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="查询串"),
    archived: bool = typer.Option(False, "--archived", "-a", help="包含已归档条目"),
    limit: int = typer.Option(20, "--limit", "-l", help="每类最大结果数"),
):
    """全文检索"""
    store = open_store(ctx)
    try:
        hits = search_state(store.get_snapshot(), query, include_archived=archived, limit=limit)
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    if not hits:
        console.print(f"[dim]没有匹配 “{query}” 的结果[/dim]")
        return

    table = Table(title=f"🔍 {query}")
    table.add_column("ID", style="dim", width=8)
    table.add_column("类型", width=9)
    table.add_column("标题")
    table.add_column("摘要", overflow="fold")
    for hit in hits:
        table.add_row(short_id(hit.id), hit.kind.value, hit.title or "(untitled)", hit.snippet)
    console.print(table)


__all__ = ["export_command", "import_command", "search_command"]
