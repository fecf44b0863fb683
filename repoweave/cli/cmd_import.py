"""CLI: 导入命令"""

from __future__ import annotations

import click

from repoweave.cli import _fail, _workspace
from repoweave.core.exceptions import RepoweaveError


def register(group: click.Group) -> None:
    group.add_command(update)


@click.command()
@click.argument("selection", nargs=-1)
@click.option("-k", "--keep-going", is_flag=True, help="单个包失败时继续处理其他包")
@click.option("--auto-exclude", is_flag=True, help="自动排除导入失败的包")
@click.option("-p", "--parallel", type=click.IntRange(min=1), default=None, help="并行导入数")
@click.option("--retry-count", type=click.IntRange(min=0), default=None, help="每个包的重试次数")
@click.option("--no-osdeps", is_flag=True, help="不安装系统包与 VCS 工具")
@click.option("--only-present", is_flag=True, help="只更新已在磁盘上的包")
@click.option("--weak", is_flag=True, help="匹配不到任何包的选择项静默忽略")
@click.pass_context
def update(
    ctx: click.Context, selection: tuple[str, ...], keep_going: bool,
    auto_exclude: bool, parallel: int | None, retry_count: int | None,
    no_osdeps: bool, only_present: bool, weak: bool,
) -> None:
    """更新包集合，然后导入选中的包（默认为布局中的全部包）"""
    ws = _workspace(ctx)
    if no_osdeps:
        ws.config.install_os_packages = False
    try:
        ws.update_package_sets(retry_count=retry_count)
        result = ws.update(
            selection,
            weak=weak,
            keep_going=keep_going or None,
            auto_exclude=auto_exclude or None,
            parallel_import_level=parallel,
            retry_count=retry_count,
            non_imported_packages="ignore" if only_present else None,
        )
    except RepoweaveError as e:
        raise _fail(e) from e

    click.echo(f"已处理 {len(result.processed)} 个包")
    if result.failures:
        click.echo(f"{len(result.failures)} 个包失败:", err=True)
        for failure in result.failures:
            click.echo(f"  {failure}", err=True)
        ctx.exit(1)
