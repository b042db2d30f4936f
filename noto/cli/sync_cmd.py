"""
Status & sync commands - 状态与同步

提供：
- noto status: 查看配置与本地数据统计
- noto sync: 认证 + 对账 + 推送，等待完成后退出
"""

import asyncio

import typer
from rich.panel import Panel
from rich.table import Table

from noto.cli.runtime import console, current_config, open_store
from noto.exceptions import StorageQuotaExceeded
from noto.store import NotoStore, StorePhase


def status_command(ctx: typer.Context):
    """查看配置与本地数据统计"""
    config = current_config(ctx)
    store = open_store(ctx)
    state = store.get_snapshot()

    console.print(Panel.fit("[bold blue]Noto[/bold blue] - 状态", border_style="blue"))

    config_table = Table(title="📋 配置", show_header=False, box=None)
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value")
    config_table.add_row("数据目录", str(config.data_dir))
    config_table.add_row("快照键", config.state_key)
    config_table.add_row("远端同步", "[green]开启[/green]" if config.sync.enabled else "[dim]关闭[/dim]")
    config_table.add_row("API", config.api_url)
    config_table.add_row("防抖窗口", f"{config.sync.debounce_seconds}s")
    config_table.add_row("撤销上限", str(config.undo_limit))
    console.print(config_table)
    console.print()

    data_table = Table(title="📦 本地数据", show_header=False, box=None)
    data_table.add_column("Key", style="cyan")
    data_table.add_column("Value")
    done = sum(1 for c in state.checklist if c.checked)
    data_table.add_row("清单项", f"{len(state.checklist)}（已完成 {done}）")
    data_table.add_row("便签", str(len(state.notes)))
    data_table.add_row("标签", str(len(state.tags)))
    data_table.add_row("主题", state.settings.theme.value)
    data_table.add_row("Schema", str(state.schema_version))
    console.print(data_table)


async def _run_sync(store: NotoStore) -> StorePhase:
    try:
        phase = await store.bootstrap()
        await store.wait_for_sync()
    finally:
        await store.aclose()
    return phase


def sync_command(ctx: typer.Context):
    """与远端对账并推送本地快照"""
    config = current_config(ctx)
    if not config.sync.enabled:
        console.print("[red]❌ 远端同步未启用（NOTO_SYNC_ENABLED=false）[/red]")
        raise typer.Exit(1)

    store = open_store(ctx, with_sync=True)
    console.print(Panel(f"[bold blue]同步[/bold blue]\n远端: {config.api_url}"))

    try:
        with console.status("[bold green]正在同步..."):
            phase = asyncio.run(_run_sync(store))
    except StorageQuotaExceeded as e:
        console.print(f"[red]❌ 无法保存远端数据，存储空间不足: {e}[/red]")
        raise typer.Exit(1)

    if phase is StorePhase.READY and store.last_push_succeeded is False:
        console.print("[yellow]⚠️ 推送失败，本地数据未受影响，下次修改时会重试（使用 -v 查看详情）[/yellow]")
        raise typer.Exit(1)

    if phase is StorePhase.READY:
        state = store.get_snapshot()
        console.print(
            f"[green]✅ 同步完成[/green] "
            f"[dim]({len(state.checklist)} 清单项, {len(state.notes)} 便签, {len(state.tags)} 标签)[/dim]"
        )
    else:
        console.print("[yellow]⚠️ 远端不可用，本地数据未受影响（使用 -v 查看详情）[/yellow]")
        raise typer.Exit(1)


__all__ = ["status_command", "sync_command"]
