"""CLI: 查询命令"""

from __future__ import annotations

import click
import yaml

from repoweave.cli import _fail, _workspace
from repoweave.core.exceptions import RepoweaveError


def register(group: click.Group) -> None:
    group.add_command(list_packages)
    group.add_command(resolve)


@click.command(name="list")
@click.pass_context
def list_packages(ctx: click.Context) -> None:
    """列出所有包、所属来源与排除原因"""
    ws = _workspace(ctx)
    try:
        manifest = ws.load_package_sets()
    except RepoweaveError as e:
        raise _fail(e) from e

    if not manifest.packages:
        click.echo("没有已登记的包。")
        return
    for name in sorted(manifest.packages):
        definition = manifest.packages[name]
        line = f"  {name:30s} [{definition.source.name}]"
        if manifest.excluded(name):
            line += f"  排除: {manifest.exclusion_reason(name)}"
        elif manifest.ignored(name):
            line += "  忽略"
        click.echo(line)


@click.command()
@click.argument("name")
@click.pass_context
def resolve(ctx: click.Context, name: str) -> None:
    """输出包最终的 VCS 定义"""
    ws = _workspace(ctx)
    try:
        manifest = ws.load_package_sets()
        vcs = manifest.importer_definition_for(name, ws.importers.known_types())
    except RepoweaveError as e:
        raise _fail(e) from e
    click.echo(yaml.safe_dump(vcs.to_hash(), default_flow_style=False, sort_keys=True).rstrip())
