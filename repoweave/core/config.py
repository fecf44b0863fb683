"""集中配置管理

工作空间运行参数的统一入口，支持从 YAML 文件加载 + 编程式覆盖。
不再提供全局单例：Config 作为 Workspace 的一部分被显式传递。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from repoweave.core.exceptions import ConfigError
from repoweave.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_NON_IMPORTED_POLICIES = ("checkout", "ignore", "return")


def default_parallel_level() -> int:
    """默认并行导入数与可用 CPU 数一致"""
    return os.cpu_count() or 1


@dataclass
class Config:
    """工作空间运行配置"""

    # 目录（相对工作空间根目录）
    config_dir: str = "autoproj"
    remotes_dir: str = ".remotes"
    cache_dir: str = ""

    # 导入
    parallel_import_level: int = field(default_factory=default_parallel_level)
    retry_count: int | None = None
    keep_going: bool = False
    auto_exclude: bool = False
    non_imported_packages: str = "checkout"

    # 系统包
    install_os_packages: bool = True
    osdeps_install_cmd: str = ""

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.non_imported_packages not in _NON_IMPORTED_POLICIES:
            raise ConfigError(
                f"non_imported_packages 取值无效: {self.non_imported_packages}，"
                f"可选: {', '.join(_NON_IMPORTED_POLICIES)}"
            )
        self.parallel_import_level = max(1, int(self.parallel_import_level))

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        logger.info("配置已加载: %s", path)
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)
