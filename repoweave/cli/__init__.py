"""repoweave 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import click

from repoweave import __version__
from repoweave.core.exceptions import RepoweaveError
from repoweave.services.workspace import Workspace
from repoweave.utils.logger import setup_logging_from_env


def _workspace(ctx: click.Context) -> Workspace:
    """当前命令的工作空间上下文（首次访问时构建）"""
    obj = ctx.find_root().obj
    if obj.get("workspace") is None:
        try:
            obj["workspace"] = Workspace.from_dir(obj["root"])
        except RepoweaveError as e:
            raise click.ClickException(str(e)) from e
    return obj["workspace"]


def _fail(error: RepoweaveError) -> click.ClickException:
    """业务异常 → 单行错误信息 + 退出码 1"""
    return click.ClickException(f"[{error.code}] {error}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--root", default=".", type=click.Path(file_okay=False),
    envvar="REPOWEAVE_ROOT", help="工作空间根目录",
)
@click.pass_context
def main(ctx: click.Context, root: str) -> None:
    """repoweave - 多仓库工作空间同步引擎"""
    setup_logging_from_env()
    ctx.ensure_object(dict)
    ctx.obj.setdefault("root", root)
    ctx.obj.setdefault("workspace", None)


# 注册各领域子命令
from repoweave.cli.cmd_import import register as _reg_import  # noqa: E402
from repoweave.cli.cmd_query import register as _reg_query  # noqa: E402
from repoweave.cli.cmd_cache import register as _reg_cache  # noqa: E402

_reg_import(main)
_reg_query(main)
_reg_cache(main)
