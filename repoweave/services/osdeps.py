"""系统包安装

*.osdeps 文件（配置目录下，YAML）把逻辑名映射为系统包名:

    git: git
    cmake: [cmake, cmake-data]
    boost: libboost-all-dev

未出现在映射中的名字按原样安装。安装命令是一个模板，{packages}
替换为空格分隔的系统包名；模板为空时只记录日志不安装。
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ConfigError
from repoweave.utils.shell import run_cmd
from repoweave.utils.yaml_io import load_config_yaml

if TYPE_CHECKING:
    from repoweave.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


def load_osdeps(paths: Iterable[str | Path]) -> dict[str, list[str]]:
    """合并多个 osdeps 文件，后读入的覆盖先读入的"""
    mapping: dict[str, list[str]] = {}
    for path in paths:
        for name, value in load_config_yaml(path).items():
            if isinstance(value, str):
                mapping[str(name)] = value.split()
            elif isinstance(value, list):
                mapping[str(name)] = [str(v) for v in value]
            elif value is None:
                mapping[str(name)] = []
            else:
                raise ConfigError(f"{path}: {name} 的系统包定义应为字符串或列表")
    return mapping


class CommandInstaller:
    """通过命令模板安装系统包"""

    def __init__(
        self,
        command: str = "",
        mapping: dict[str, list[str]] | None = None,
        *,
        executor: CommandExecutor | None = None,
    ) -> None:
        if executor is None:
            from repoweave.utils.shell import LocalExecutor
            executor = LocalExecutor()
        if command and "{packages}" not in command:
            raise ConfigError(f"系统包安装命令缺少 {{packages}} 占位符: {command}")
        self.command = command
        self.mapping = dict(mapping or {})
        self.executor = executor
        self.installed: set[str] = set()

    @classmethod
    def from_config_dir(
        cls, config_dir: str | Path, command: str = "", **kwargs,
    ) -> CommandInstaller:
        files = sorted(Path(config_dir).glob("*.osdeps"))
        return cls(command, load_osdeps(files), **kwargs)

    def resolve(self, names: Iterable[str]) -> list[str]:
        """逻辑名 → 系统包名（去重，保持顺序）"""
        result: list[str] = []
        for name in sorted(set(names)):
            result.extend(self.mapping.get(name, [name]))
        return list(dict.fromkeys(result))

    def install(self, names: set[str]) -> None:
        packages = [p for p in self.resolve(names) if p not in self.installed]
        if not packages:
            return
        if not self.command:
            logger.info("未配置系统包安装命令，跳过安装: %s", " ".join(packages))
            return
        cmd = self.command.format(packages=" ".join(shlex.quote(p) for p in packages))
        logger.info("安装系统包: %s", " ".join(packages))
        run_cmd(self.executor, cmd, label="系统包安装")
        self.installed.update(packages)
