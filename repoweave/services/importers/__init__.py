"""导入器: 将包检出/更新到工作空间

- registry.py: 类型名 → 工厂
- base.py: 重试与错误归一化、local 类型
- git.py / archive.py: 内置导入器
"""

from repoweave.services.importers.archive import ArchiveImporter
from repoweave.services.importers.base import BaseImporter, LocalImporter
from repoweave.services.importers.git import GitImporter
from repoweave.services.importers.registry import ImporterRegistry, default_registry

__all__ = [
    "ImporterRegistry",
    "default_registry",
    "BaseImporter",
    "LocalImporter",
    "GitImporter",
    "ArchiveImporter",
]
