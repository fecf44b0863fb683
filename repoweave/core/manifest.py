"""工作空间清单

一次运行的共享可变状态:
- 来源列表（按 manifest 中 package_sets 的顺序，local 覆盖层总在最后）
- 包注册表: 包名 → (Package, Source, 声明文件)
- manifest 声明的排除规则（exclude_packages，优先检查，不可被覆盖）
- 运行时自动排除: 包名 → 原因（单调: 一旦排除本次运行内不会撤销）
- 忽略集合: 视为由外部满足的包
- 布局树（layout）与工作空间常量

manifest 文件格式:

    package_sets:
      - git:https://example.com/rock.core.git
      - type: git
        url: https://example.com/orocos.git
        branch: stable
      - my_local_set            # 配置目录下的本地来源
    layout:
      - base/types
      - rock.core
      - drivers:
          - drivers/.*
    exclude_packages: [drivers/broken]
    ignore_packages: [external/eigen]
    constants:
      ROCK_GIT: https://example.com/rock
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from repoweave.core.exceptions import (
    ConfigError,
    ImportFailure,
    InternalError,
    PackageNotFoundError,
)
from repoweave.core.models import Package, PackageDefinition, PackageManifest
from repoweave.core.source import LocalSource, Source, resolve_constants
from repoweave.core.vcs import VCSDefinition, VCSResolver, normalize_vcs_definition
from repoweave.utils.yaml_io import load_config_yaml

if TYPE_CHECKING:
    from repoweave.core.protocols import ManifestLoader
    from repoweave.services.importers.registry import ImporterRegistry

logger = logging.getLogger(__name__)


class Manifest:
    """工作空间清单（每次运行构建一次）"""

    def __init__(
        self,
        data: dict[str, Any] | None = None,
        *,
        file: str | Path = "",
        root_dir: str | Path = ".",
        config_dir: str | Path | None = None,
        remotes_dir: str | Path | None = None,
        package_loader: ManifestLoader | None = None,
    ) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.file = str(file)
        self.root_dir = Path(root_dir).resolve()
        self.config_dir = Path(config_dir) if config_dir else self.root_dir / "autoproj"
        self.remotes_dir = Path(remotes_dir) if remotes_dir else self.root_dir / ".remotes"
        self.package_loader = package_loader

        self.packages: dict[str, PackageDefinition] = {}
        self.package_manifests: dict[str, PackageManifest] = {}
        self.automatic_exclusions: dict[str, str] = {}
        self._exclusion_chains: dict[str, list[str]] = {}
        self._root_reasons: dict[str, str] = {}
        self._ignored: set[str] = set()
        self._sources: list[Source] | None = None
        self.constants = resolve_constants(self.data.get("constants") or {})

        self.exclude_patterns = _string_list(self.data.get("exclude_packages"), "exclude_packages")
        self.ignore_patterns = _string_list(self.data.get("ignore_packages"), "ignore_packages")

    @classmethod
    def load(cls, file: str | Path, **kwargs: Any) -> Manifest:
        """从 manifest 文件加载"""
        path = Path(file)
        if not path.is_file():
            raise ConfigError(f"期望在 {path.parent} 中找到工作空间配置，但 {path} 不存在")
        return cls(load_config_yaml(path), file=path, **kwargs)

    # =====================================================================
    # 来源
    # =====================================================================

    def package_set_definitions(self, known_types: Collection[str] | None = None) -> list[VCSDefinition]:
        """manifest 中 package_sets 段的规范化定义"""
        raw = self.data.get("package_sets") or []
        if not isinstance(raw, list):
            raise ConfigError(f"{self.file}: package_sets 段应为列表")
        definitions: list[VCSDefinition] = []
        for spec in raw:
            try:
                definitions.append(normalize_vcs_definition(
                    spec, config_dir=self.config_dir, known_types=known_types,
                ))
            except ConfigError as e:
                raise ConfigError(f"{self.file}: {e}") from e
        return definitions

    def load_sources(self, known_types: Collection[str] | None = None) -> list[Source]:
        """加载全部来源（只加载一次并缓存），local 覆盖层追加在最后"""
        if self._sources is not None:
            return self._sources
        sources: list[Source] = []
        for vcs in self.package_set_definitions(known_types):
            source = Source(vcs, remotes_dir=self.remotes_dir)
            source.load_description(self.constants)
            sources.append(source)
        local = LocalSource(self.config_dir)
        local.load_description(self.constants)
        sources.append(local)
        self.set_sources(sources)
        return sources

    def set_sources(self, sources: list[Source]) -> None:
        """直接设置来源列表（local 覆盖层缺失时自动追加）"""
        sources = list(sources)
        if not sources or not isinstance(sources[-1], LocalSource):
            local = LocalSource(self.config_dir)
            local.apply_description({}, self.constants)
            sources.append(local)
        names = [s.name for s in sources]
        duplicated = {n for n in names if names.count(n) > 1}
        if duplicated:
            raise ConfigError(f"来源名称重复: {', '.join(sorted(duplicated))}")
        self._sources = sources

    @property
    def sources(self) -> list[Source]:
        if self._sources is None:
            raise InternalError("来源尚未加载，请先调用 load_sources()")
        return self._sources

    def each_remote_source(self) -> Iterator[Source]:
        """受版本控制的来源"""
        for vcs in self.package_set_definitions():
            if not vcs.local:
                yield Source(vcs, remotes_dir=self.remotes_dir)

    def find_source(self, name: str) -> Source | None:
        return next((s for s in self.sources if s.name == name), None)

    # =====================================================================
    # 包注册表
    # =====================================================================

    def register_package(self, package: Package, source: Source, file: str = "") -> None:
        self.packages[package.name] = PackageDefinition(package=package, source=source, file=file)

    def register_source_packages(self) -> None:
        """将每个来源 packages 段中的包登记到注册表"""
        for source in self.sources:
            for entry in source.package_entries:
                name = str(entry["name"])
                if name in self.packages:
                    previous = self.packages[name].source.name
                    raise ConfigError(f"包 {name} 同时由来源 {previous} 和 {source.name} 定义")
                srcdir = self.root_dir / str(entry.get("srcdir") or name)
                package = Package(
                    name=name,
                    srcdir=str(srcdir),
                    os_packages=[str(p) for p in entry.get("os_packages") or []],
                )
                self.register_package(package, source, str(source.description_file))
        logger.info("已登记 %d 个包（%d 个来源）", len(self.packages), len(self.sources))

    def find_package(self, name: str) -> PackageDefinition | None:
        return self.packages.get(name)

    def package(self, name: str) -> Package:
        definition = self.packages.get(name)
        if definition is None:
            raise PackageNotFoundError(f"包不存在: {name}")
        return definition.package

    def definition_source(self, name: str) -> Source:
        definition = self.packages.get(name)
        if definition is None:
            raise InternalError(f"包 {name} 已被引用但没有所属来源")
        return definition.source

    def each_package(self) -> Iterator[Package]:
        for definition in self.packages.values():
            yield definition.package

    def source_packages(self, source_name: str) -> list[str]:
        """某来源定义的全部包名"""
        return [
            name for name, d in self.packages.items() if d.source.name == source_name
        ]

    # =====================================================================
    # VCS 定义
    # =====================================================================

    def resolver(self, known_types: Collection[str] | None = None) -> VCSResolver:
        return VCSResolver(
            self.sources,
            root_dir=self.root_dir,
            config_dir=self.config_dir,
            known_types=known_types,
            constants=self.constants,
        )

    def importer_definition_for(
        self, package_name: str, known_types: Collection[str] | None = None,
    ) -> VCSDefinition:
        return self.resolver(known_types).resolve(package_name, self.definition_source(package_name))

    def load_importers(self, registry: ImporterRegistry) -> None:
        """为每个已登记的包解析 VCS 定义并创建导入器"""
        resolver = self.resolver(registry.known_types())
        for name, definition in self.packages.items():
            vcs = resolver.resolve(name, definition.source)
            definition.package.vcs = vcs
            definition.package.importer = registry.create(vcs, self.root_dir)

    # =====================================================================
    # 排除与忽略
    # =====================================================================

    def excluded_in_manifest(self, name: str) -> bool:
        """是否被 exclude_packages 匹配（布局中显式列出的包不受影响）"""
        return self._manifest_exclusion_reason(name) is not None

    def _manifest_exclusion_reason(self, name: str) -> str | None:
        if self.explicitly_selected_in_layout(name):
            return None
        for pattern in self.exclude_patterns:
            definition = self.packages.get(name)
            if definition is not None and definition.source.name == pattern:
                return (
                    f"{name} is a member of package set {pattern}, "
                    "which is listed in the exclude_packages section of the manifest"
                )
            if pattern == name or _full_match(pattern, name):
                return f"{name} is listed in the exclude_packages section of the manifest"
        return None

    def exclude_package(
        self, name: str, reason: str, *,
        chain: list[str] | None = None,
        root_reason: str | None = None,
    ) -> None:
        """运行时排除；已排除的包保留原因不变

        chain 为经由依赖链排除时的链（包自身在前），root_reason 为链末端包的原始排除原因。
        """
        if self.excluded(name):
            return
        self.automatic_exclusions[name] = reason
        if chain:
            self._exclusion_chains[name] = list(chain)
            self._root_reasons[name] = root_reason if root_reason is not None else reason
        logger.info("排除包 %s: %s", name, reason)

    def excluded(self, name: str) -> bool:
        return name in self.automatic_exclusions or self.excluded_in_manifest(name)

    def exclusion_reason(self, name: str) -> str | None:
        if name in self.automatic_exclusions:
            return self.automatic_exclusions[name]
        return self._manifest_exclusion_reason(name)

    def exclusion_chain(self, name: str) -> list[str]:
        """导致该包被排除的依赖链（包自身 → ... → 根排除包）"""
        return list(self._exclusion_chains.get(name, [name]))

    def root_exclusion_reason(self, name: str) -> str | None:
        """依赖链末端包的原始排除原因（不含链注释）"""
        if name in self._root_reasons:
            return self._root_reasons[name]
        return self.exclusion_reason(name)

    def ignore_package(self, name: str) -> None:
        self._ignored.add(name)

    def ignored(self, name: str) -> bool:
        if name in self._ignored:
            return True
        return any(pattern == name or _full_match(pattern, name) for pattern in self.ignore_patterns)

    # =====================================================================
    # 布局
    # =====================================================================

    @property
    def layout(self) -> list[Any] | None:
        return self.data.get("layout")

    def resolve_package_set(self, name: str) -> list[str]:
        """包名 → [包名]；来源名 → 该来源定义的全部包"""
        if name in self.packages:
            return [name]
        source = next((s for s in self.sources if s.name == name), None)
        if source is None:
            raise PackageNotFoundError(f"{name} 既不是包也不是包集合")
        return self.source_packages(source.name)

    @staticmethod
    def each_sublayout(layout_def: list[Any]) -> Iterator[tuple[str, list[Any]]]:
        for value in layout_def:
            if isinstance(value, dict):
                for name, sublayout in value.items():
                    yield str(name), list(sublayout or [])

    def layout_packages(self, layout_def: list[Any], recursive: bool) -> list[str]:
        """布局某一层（recursive=True 时含全部子布局）中的包名，保持顺序去重"""
        result: list[str] = []
        for value in layout_def:
            if not isinstance(value, dict):
                result.extend(self.resolve_package_set(str(value)))
        if recursive:
            for _, sublayout in self.each_sublayout(layout_def):
                result.extend(self.layout_packages(sublayout, True))
        return list(dict.fromkeys(result))

    def each_layout(
        self, layout_def: list[Any] | None = None, path: str = "/",
    ) -> Iterator[tuple[str, list[Any]]]:
        """按顺序遍历布局及子布局，返回 (路径, 布局定义)，路径形如 /drivers/"""
        if layout_def is None:
            layout_def = self.layout or []
        yield path, layout_def
        for name, sublayout in self.each_sublayout(layout_def):
            yield from self.each_layout(sublayout, f"{path}{name}/")

    def explicitly_selected_in_layout(self, name: str) -> bool:
        """布局中是否按名字直接列出了该包"""
        if not self.layout:
            return False
        return any(
            not isinstance(value, dict) and str(value) == name
            for _, layout_def in self.each_layout()
            for value in layout_def
        )

    def default_packages(self) -> list[str]:
        """布局中的全部包；没有布局时为全部已登记的包"""
        if self.layout:
            return self.layout_packages(self.layout, True)
        return list(self.packages)

    # =====================================================================
    # 包清单
    # =====================================================================

    def load_package_manifest(self, name: str) -> PackageManifest | None:
        """加载包清单，将依赖与系统包写回 Package

        清单不存在时返回 None。
        异常:
            ImportFailure: 清单列出了不存在的依赖包
        """
        package = self.package(name)
        if self.package_loader is None:
            return None
        manifest = self.package_loader.load(package)
        if manifest is None:
            return None
        for dep_name in manifest.dependencies:
            if dep_name not in self.packages:
                raise ImportFailure(
                    name, f"清单列出的依赖 '{dep_name}' 不存在（清单文件: {manifest.path}）",
                )
            package.depends_on(dep_name)
        for os_name in manifest.os_packages:
            if os_name not in package.os_packages:
                package.os_packages.append(os_name)
        self.package_manifests[name] = manifest
        return manifest


def _string_list(raw: Any, section: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"{section} 段应为列表")
    return [str(v) for v in raw]


def _full_match(pattern: str, name: str) -> bool:
    try:
        return re.fullmatch(pattern, name) is not None
    except re.error as e:
        raise ConfigError(f"正则 {pattern!r} 无效: {e}") from e
