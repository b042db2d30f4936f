"""
Alarm commands - 提醒命令

提供：
- noto remind: 设置/清除提醒
- noto snooze: 延后提醒
- noto dismiss: 关闭提醒（重复提醒推进到下一次）
- noto today: 今日提醒看板（错过 / 今天 / 即将到来）
"""

from datetime import datetime
from typing import Optional

import typer
from rich.table import Table

from noto.cli.runtime import console, open_store, resolve_entity, short_id
from noto.core.identifiers import generate_id
from noto.core.timeutil import now_utc, parse_instant
from noto.exceptions import StorageQuotaExceeded
from noto.models.state import Alarm, AlarmRepeat, AlarmStatus
from noto.services.alarm_schedule import AlarmEntry, collect_alarms
from noto.services.search import normalize_digits


def _parse_at(value: str) -> datetime:
    # 允许波斯/阿拉伯数字输入；无时区视为本地时间
    text = normalize_digits(value.strip())
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = parse_instant(text)
        if parsed is None:
            console.print(f"[red]❌ 无法解析时间: {value}（示例: 2025-01-01T09:00）[/red]")
            raise typer.Exit(1)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def remind_command(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="清单项或便签 id（前缀）"),
    at: Optional[str] = typer.Argument(None, help="提醒时间（ISO-8601），省略配合 --clear"),
    repeat: AlarmRepeat = typer.Option(AlarmRepeat.NONE, "--repeat", "-r", help="重复周期"),
    clear: bool = typer.Option(False, "--clear", help="清除提醒"),
):
    """设置或清除提醒"""
    store = open_store(ctx)
    kind, entity = resolve_entity(store, entity_id)

    if clear:
        alarm = None
    elif at is None:
        console.print("[red]❌ 需要提醒时间或 --clear[/red]")
        raise typer.Exit(1)
    else:
        alarm = Alarm(id=generate_id(), at=_parse_at(at), repeat=repeat)

    try:
        store.set_alarm(kind, entity.id, alarm)
    except StorageQuotaExceeded as e:
        console.print(f"[red]❌ 保存失败，存储空间不足: {e}[/red]")
        raise typer.Exit(1)

    if alarm is None:
        console.print(f"[green]✅ 已清除提醒[/green] {entity.title or '(untitled)'}")
    else:
        local_at = alarm.at.astimezone().strftime("%Y-%m-%d %H:%M")
        console.print(f"[green]⏰ 已设置提醒[/green] {local_at} ({alarm.repeat.value})")


def snooze_command(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="清单项或便签 id（前缀）"),
    minutes: int = typer.Argument(10, help="延后分钟数（1-1440）"),
):
    """延后提醒"""
    store = open_store(ctx)
    kind, entity = resolve_entity(store, entity_id)
    if entity.alarm is None:
        console.print("[yellow]该条目没有提醒[/yellow]")
        raise typer.Exit(0)

    try:
        updated = store.snooze_alarm(kind, entity.id, minutes)
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    except StorageQuotaExceeded as e:
        console.print(f"[red]❌ 保存失败，存储空间不足: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"😴 已延后到 {updated.alarm.at.astimezone().strftime('%H:%M')}")


def dismiss_command(ctx: typer.Context, entity_id: str = typer.Argument(..., help="清单项或便签 id（前缀）")):
    """关闭提醒"""
    store = open_store(ctx)
    kind, entity = resolve_entity(store, entity_id)
    if entity.alarm is None:
        console.print("[yellow]该条目没有提醒[/yellow]")
        raise typer.Exit(0)

    try:
        updated = store.dismiss_alarm(kind, entity.id)
    except StorageQuotaExceeded as e:
        console.print(f"[red]❌ 保存失败，存储空间不足: {e}[/red]")
        raise typer.Exit(1)

    alarm = updated.alarm
    if alarm.status is AlarmStatus.SCHEDULED:
        console.print(f"🔁 下一次提醒: {alarm.at.astimezone().strftime('%Y-%m-%d %H:%M')}")
    else:
        console.print("[green]✅ 提醒已关闭[/green]")


def _bucket_table(title: str, entries: list[AlarmEntry], style: str) -> Table:
    table = Table(title=title, title_style=style)
    table.add_column("ID", style="dim", width=8)
    table.add_column("类型", width=9)
    table.add_column("时间")
    table.add_column("标题", overflow="fold")
    table.add_column("重复")
    for entry in entries:
        table.add_row(
            short_id(entry.entity_id),
            entry.kind.value,
            entry.at.astimezone().strftime("%Y-%m-%d %H:%M"),
            entry.title or "(untitled)",
            entry.alarm.repeat.value,
        )
    return table


def today_command(ctx: typer.Context):
    """今日提醒看板"""
    store = open_store(ctx)
    now = now_utc()
    buckets = collect_alarms(store.get_snapshot(), now, tz=now.astimezone().tzinfo)

    if not len(buckets):
        console.print("[dim]没有提醒[/dim]")
        return

    if buckets.missed:
        console.print(_bucket_table("⚠️ 已错过", buckets.missed, "bold red"))
    if buckets.today:
        console.print(_bucket_table("📅 今天", buckets.today, "bold green"))
    if buckets.upcoming:
        console.print(_bucket_table("🔜 即将到来", buckets.upcoming, "bold blue"))


__all__ = ["dismiss_command", "remind_command", "snooze_command", "today_command"]
