"""核心数据模型

所有核心数据类集中定义，消除 manifest ↔ orchestrator 的循环依赖。
其他模块统一从此处导入 Package / ImportOptions / ImportResult 等实体。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from repoweave.core.protocols import Importer
    from repoweave.core.source import Source
    from repoweave.core.vcs import VCSDefinition


# =========================================================================
# 包模型
# =========================================================================


@dataclass(eq=False)
class Package:
    """工作空间中的一个可构建单元

    dependencies 在导入后从包清单中发现，并非预先已知。
    """

    name: str
    srcdir: str
    importer: Importer | None = None
    vcs: VCSDefinition | None = None
    dependencies: list[str] = field(default_factory=list)
    os_packages: list[str] = field(default_factory=list)
    importdir: str = ""  # 与其他包共享检出目录时指向对方的 srcdir

    def __post_init__(self) -> None:
        if not self.importdir:
            self.importdir = self.srcdir

    @property
    def present(self) -> bool:
        """源码目录是否已存在于磁盘上"""
        return Path(self.srcdir).is_dir()

    @property
    def interactive(self) -> bool:
        return bool(self.importer is not None and getattr(self.importer, "interactive", False))

    def depends_on(self, name: str) -> None:
        if name not in self.dependencies:
            self.dependencies.append(name)

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Package) and other.name == self.name

    def __repr__(self) -> str:
        return f"Package({self.name!r})"


@dataclass
class PackageDefinition:
    """包注册表条目: 包 + 定义它的来源 + 声明文件"""

    package: Package
    source: Source
    file: str = ""


@dataclass
class PackageManifest:
    """单个包的清单信息（依赖包名 + 系统包名）"""

    package_name: str
    dependencies: list[str] = field(default_factory=list)
    os_packages: list[str] = field(default_factory=list)
    path: str = ""


# =========================================================================
# 导入领域模型
# =========================================================================


class ImportState(str, Enum):
    """包在一次导入运行中的状态"""

    PENDING = "pending"
    QUEUED = "queued"
    IMPORTING = "importing"
    IMPORTED = "imported"
    FAILED = "failed"
    SKIPPED = "skipped"


class NonImportedPolicy(str, Enum):
    """磁盘上不存在的包如何处理"""

    CHECKOUT = "checkout"  # 正常导入
    IGNORE = "ignore"      # 不导入，标记为 ignored，不返回
    RETURN = "return"      # 不导入，作为已处理返回，但不加载清单


@dataclass
class ImportOptions:
    """导入运行参数"""

    parallel_import_level: int = 1
    retry_count: int | None = None
    keep_going: bool = False
    auto_exclude: bool = False
    install_vcs_packages: bool = True
    install_os_packages: bool = True
    non_imported_packages: NonImportedPolicy = NonImportedPolicy.CHECKOUT

    def __post_init__(self) -> None:
        self.parallel_import_level = max(1, self.parallel_import_level)
        self.non_imported_packages = NonImportedPolicy(self.non_imported_packages)

    @classmethod
    def from_config(cls, config: Any, **overrides: Any) -> ImportOptions:
        """从 Config 构建，overrides 中值为 None 的项不覆盖"""
        values: dict[str, Any] = {
            "parallel_import_level": config.parallel_import_level,
            "retry_count": config.retry_count,
            "keep_going": config.keep_going,
            "auto_exclude": config.auto_exclude,
            "install_vcs_packages": config.install_os_packages,
            "install_os_packages": config.install_os_packages,
            "non_imported_packages": config.non_imported_packages,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ImportResult:
    """一次导入运行的结果

    processed 为已处理的包名（排除/忽略的包已移除），failures 按发生顺序排列。
    """

    processed: set[str] = field(default_factory=set)
    failures: list[Exception] = field(default_factory=list)
    states: dict[str, ImportState] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures
