"""导入器注册表: VCS 类型名 → 导入器工厂

启动时填充，未知类型是一次查找失败（ConfigError），不依赖反射。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ConfigError
from repoweave.core.vcs.definition import LOCAL_TYPE

if TYPE_CHECKING:
    from repoweave.core.protocols import Importer
    from repoweave.core.vcs import VCSDefinition
    from repoweave.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

# (vcs, 已解析的 url) → 导入器
ImporterFactory = Callable[["VCSDefinition", str], "Importer"]


class ImporterRegistry:
    """VCS 类型 → 导入器工厂"""

    def __init__(self) -> None:
        self._factories: dict[str, ImporterFactory] = {}

    def register(self, type_name: str, factory: ImporterFactory) -> None:
        if type_name in self._factories:
            logger.warning("导入器类型 %s 被重新注册", type_name)
        self._factories[type_name] = factory

    def known_types(self) -> set[str]:
        return set(self._factories)

    def create(self, vcs: VCSDefinition, root_dir: str | Path) -> Importer | None:
        """为 VCS 定义创建导入器；none 类型返回 None"""
        if vcs.none:
            return None
        factory = self._factories.get(vcs.type)
        if factory is None:
            raise ConfigError(
                f"未知的版本控制类型: {vcs.type}（已注册: {', '.join(sorted(self._factories))}）"
            )
        return factory(vcs, vcs.resolved_url(root_dir))


def default_registry(
    executor: CommandExecutor | None = None,
    cache_dir: str | Path | None = None,
) -> ImporterRegistry:
    """注册内置导入器: git / archive / local"""
    from repoweave.services.importers.archive import ArchiveImporter
    from repoweave.services.importers.base import LocalImporter
    from repoweave.services.importers.git import GitImporter

    registry = ImporterRegistry()
    for cls in (GitImporter, ArchiveImporter):
        registry.register(
            cls.type_name,
            lambda vcs, url, cls=cls: cls(vcs, url, executor=executor, cache_dir=cache_dir),
        )
    registry.register(LOCAL_TYPE, lambda vcs, url: LocalImporter(vcs, url, executor=executor))
    return registry
