"""工作空间上下文

一次运行所需的全部协作者（配置、清单、导入器注册表、系统包安装器、
包清单加载器、钩子）都由 Workspace 持有并懒加载，显式传给编排器，
不存在进程级的全局状态。

用法:
    ws = Workspace.from_dir("/path/to/workspace")
    ws.update_package_sets()
    ws.load_package_sets()
    result = ws.update(["drivers/"], keep_going=True)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from repoweave.core.config import Config
from repoweave.core.models import ImportOptions, Package
from repoweave.core.source import Source

if TYPE_CHECKING:
    from repoweave.core.manifest import Manifest
    from repoweave.core.models import ImportResult
    from repoweave.core.protocols import ManifestLoader, OSPackageInstaller
    from repoweave.core.selection import PackageSelection
    from repoweave.services.cache import Cache
    from repoweave.services.hooks import PostImportHooks
    from repoweave.services.importers.registry import ImporterRegistry
    from repoweave.services.orchestrator import ImportOrchestrator
    from repoweave.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
MANIFEST_FILE = "manifest"


class Workspace:
    """懒加载的工作空间上下文"""

    def __init__(
        self,
        root_dir: str | Path,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        **components: Any,
    ) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.config = config or Config()
        self._executor = executor
        # 预先注入的组件（测试中替换为假实现）
        self._instances: dict[str, object] = dict(components)
        self._package_sets_loaded = False

    @classmethod
    def from_dir(cls, root_dir: str | Path, **kwargs: Any) -> Workspace:
        """按 <root>/autoproj/config.yml 构建（文件不存在时使用默认配置）"""
        root = Path(root_dir)
        config = Config.from_file(root / Config().config_dir / CONFIG_FILE)
        return cls(root, config, **kwargs)

    # ---- 目录 ----

    @property
    def config_dir(self) -> Path:
        return self.root_dir / self.config.config_dir

    @property
    def remotes_dir(self) -> Path:
        return self.root_dir / self.config.remotes_dir

    @property
    def cache_dir(self) -> Path | None:
        return self.root_dir / self.config.cache_dir if self.config.cache_dir else None

    @property
    def manifest_file(self) -> Path:
        return self.config_dir / MANIFEST_FILE

    # ---- 协作者 ----

    @property
    def executor(self) -> CommandExecutor:
        if self._executor is None:
            from repoweave.utils.shell import LocalExecutor
            self._executor = LocalExecutor()
        return self._executor

    @property
    def importers(self) -> ImporterRegistry:
        if "importers" not in self._instances:
            from repoweave.services.importers import default_registry
            self._instances["importers"] = default_registry(self.executor, self.cache_dir)
        return self._instances["importers"]  # type: ignore[return-value]

    @property
    def os_installer(self) -> OSPackageInstaller:
        if "os_installer" not in self._instances:
            from repoweave.services.osdeps import CommandInstaller
            self._instances["os_installer"] = CommandInstaller.from_config_dir(
                self.config_dir, self.config.osdeps_install_cmd, executor=self.executor,
            )
        return self._instances["os_installer"]  # type: ignore[return-value]

    @property
    def package_loader(self) -> ManifestLoader:
        if "package_loader" not in self._instances:
            from repoweave.services.package_loader import XmlManifestLoader
            self._instances["package_loader"] = XmlManifestLoader()
        return self._instances["package_loader"]  # type: ignore[return-value]

    @property
    def hooks(self) -> PostImportHooks:
        if "hooks" not in self._instances:
            from repoweave.services.hooks import PostImportHooks
            self._instances["hooks"] = PostImportHooks()
        return self._instances["hooks"]  # type: ignore[return-value]

    @property
    def manifest(self) -> Manifest:
        if "manifest" not in self._instances:
            from repoweave.core.manifest import Manifest
            self._instances["manifest"] = Manifest.load(
                self.manifest_file,
                root_dir=self.root_dir,
                config_dir=self.config_dir,
                remotes_dir=self.remotes_dir,
                package_loader=self.package_loader,
            )
        return self._instances["manifest"]  # type: ignore[return-value]

    def orchestrator(self) -> ImportOrchestrator:
        from repoweave.services.orchestrator import ImportOrchestrator
        return ImportOrchestrator(self.manifest, os_installer=self.os_installer, hooks=self.hooks)

    def cache(self, cache_dir: str | Path) -> Cache:
        from repoweave.services.cache import Cache
        return Cache(cache_dir, self.manifest, executor=self.executor)

    # ---- 操作 ----

    def update_package_sets(self, *, retry_count: int | None = None) -> None:
        """检出/更新所有受版本控制的来源（在加载来源描述之前）"""
        registry = self.importers
        definitions = [
            vcs for vcs in self.manifest.package_set_definitions(registry.known_types())
            if vcs.needs_import
        ]
        if definitions and self.config.install_os_packages:
            self.os_installer.install({vcs.type for vcs in definitions})
        for vcs in definitions:
            source = Source(vcs, remotes_dir=self.remotes_dir)
            importer = registry.create(vcs, self.root_dir)
            if retry_count is not None:
                importer.retry_count = retry_count
            package = Package(name=f"package set {source.automatic_name}", srcdir=str(source.local_dir))
            logger.info("更新包集合 %s -> %s", vcs, source.local_dir)
            importer.import_package(package, allow_interactive=True)

    def load_package_sets(self) -> Manifest:
        """加载来源描述、登记包并创建导入器（只执行一次）"""
        manifest = self.manifest
        if not self._package_sets_loaded:
            registry = self.importers
            manifest.load_sources(registry.known_types())
            manifest.register_source_packages()
            manifest.load_importers(registry)
            self._package_sets_loaded = True
        return manifest

    def import_options(self, **overrides: Any) -> ImportOptions:
        return ImportOptions.from_config(self.config, **overrides)

    def expand_selection(self, tokens: Iterable[str], *, weak: bool = False) -> PackageSelection:
        """展开选择项；没有选择项时使用布局中的全部包"""
        from repoweave.core.selection import SelectionExpander
        manifest = self.load_package_sets()
        tokens = list(tokens)
        if not tokens:
            tokens = [n for n in manifest.default_packages() if not manifest.excluded(n)]
            weak = True
        return SelectionExpander(manifest, self.root_dir).expand(tokens, weak=weak)

    def update(
        self, tokens: Iterable[str] = (), *, weak: bool = False, **overrides: Any,
    ) -> ImportResult:
        """展开选择项并导入"""
        selection = self.expand_selection(tokens, weak=weak)
        return self.orchestrator().import_packages(selection, self.import_options(**overrides))
