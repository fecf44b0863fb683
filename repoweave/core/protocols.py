"""领域协议定义

集中定义同步引擎与外部协作者之间的接口契约（Protocol），
实现依赖倒置: 编排器依赖抽象而非具体的 git/系统包/清单实现。

使用 typing.Protocol 而非 ABC，测试中的假实现无需继承即可满足协议。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from repoweave.core.models import Package, PackageManifest


# =========================================================================
# 导入器协议
# =========================================================================

class Importer(Protocol):
    """VCS 导入器协议

    import_package 成功时返回 None；需要交互时抛 InteractionRequired，
    其他失败抛出任意异常（通常是 ImportFailure）。
    retry_count 由编排器在调用前设置，重试在导入器内部完成。
    """

    interactive: bool
    retry_count: int

    def import_package(self, package: Package, *, allow_interactive: bool) -> None:
        """将包检出/更新到 package.importdir"""
        ...


# =========================================================================
# 系统包安装协议
# =========================================================================

class OSPackageInstaller(Protocol):
    """系统包安装器协议"""

    def install(self, names: set[str]) -> None:
        """安装给定的系统包，失败抛异常"""
        ...


# =========================================================================
# 包清单加载协议
# =========================================================================

class ManifestLoader(Protocol):
    """包清单加载器协议

    清单不存在时返回 None（显式可选值），而不是抛出异常。
    """

    def load(self, package: Package) -> PackageManifest | None:
        """读取包的依赖与系统包声明"""
        ...
