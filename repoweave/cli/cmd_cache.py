"""CLI: 缓存命令"""

from __future__ import annotations

import click

from repoweave.cli import _fail, _workspace
from repoweave.core.exceptions import RepoweaveError


def register(group: click.Group) -> None:
    group.add_command(cache)


@click.command()
@click.argument("cache_dir", type=click.Path(file_okay=False))
@click.argument("names", nargs=-1)
@click.option("-k", "--keep-going", is_flag=True, help="单个包失败时继续")
@click.option("--checkout-only", is_flag=True, help="已存在的镜像不再更新")
@click.pass_context
def cache(
    ctx: click.Context, cache_dir: str, names: tuple[str, ...],
    keep_going: bool, checkout_only: bool,
) -> None:
    """创建或刷新抓取加速缓存"""
    ws = _workspace(ctx)
    try:
        ws.load_package_sets()
        failures = ws.cache(cache_dir).create_or_update(
            *names, keep_going=keep_going, checkout_only=checkout_only,
        )
    except RepoweaveError as e:
        raise _fail(e) from e

    if failures:
        click.echo(f"{len(failures)} 个包缓存失败", err=True)
        ctx.exit(1)
    click.echo(f"缓存已更新: {cache_dir}")
