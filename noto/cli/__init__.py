"""
Noto CLI - 命令行工具

提供主要命令：
- noto status: 查看配置与本地数据
- noto list / add / toggle / pin / delete: 清单操作
- noto note / tag: 便签与标签
- noto remind / snooze / dismiss / today: 提醒
- noto export / import / search: 数据
- noto sync: 与远端对账并推送
"""

from pathlib import Path
from typing import Optional

import typer

from noto.cli.alarm_cmd import dismiss_command, remind_command, snooze_command, today_command
from noto.cli.data_cmd import export_command, import_command, search_command
from noto.cli.items_cmd import (
    add_command,
    delete_command,
    list_command,
    note_command,
    pin_command,
    tag_command,
    toggle_command,
)
from noto.cli.runtime import configure_logging
from noto.cli.sync_cmd import status_command, sync_command
from noto.config import load_config

app = typer.Typer(
    name="noto",
    help="Noto - 本地优先的清单与便签\n\n数据保存在本地，可选与远端服务同步。",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="数据目录（默认 ~/.noto/data 或 NOTO_DATA_DIR）",
    ),
):
    """全局选项"""
    configure_logging(verbose)
    # --data-dir 只作用于本次调用
    ctx.obj = load_config(data_dir=data_dir)


# 注册子命令
app.command(name="status", help="查看配置与本地数据统计")(status_command)
app.command(name="list", help="列出清单项或便签")(list_command)
app.command(name="add", help="新建清单项")(add_command)
app.command(name="toggle", help="勾选/取消勾选清单项")(toggle_command)
app.command(name="pin", help="置顶/取消置顶")(pin_command)
app.command(name="delete", help="删除清单项或便签")(delete_command)
app.command(name="note", help="新建便签")(note_command)
app.command(name="tag", help="新建标签或切换条目标签")(tag_command)
app.command(name="remind", help="设置或清除提醒")(remind_command)
app.command(name="snooze", help="延后提醒")(snooze_command)
app.command(name="dismiss", help="关闭提醒")(dismiss_command)
app.command(name="today", help="今日提醒看板")(today_command)
app.command(name="export", help="导出完整快照")(export_command)
app.command(name="import", help="从导出文件整体替换本地数据")(import_command)
app.command(name="search", help="全文检索")(search_command)
app.command(name="sync", help="与远端对账并推送本地快照")(sync_command)


def main():
    """CLI 入口点"""
    app()


if __name__ == "__main__":
    main()


__all__ = ["app", "main"]
