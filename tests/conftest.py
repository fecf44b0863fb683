"""共享 fixture: 内存中的工作空间 + 假导入器/清单加载器

  make_manifest(...)          构建带来源的 Manifest（根目录在 tmp_path 下）
  define_package(m, name)     登记一个包，默认带 FakeImporter 与 git 类型 VCS
  FakeImporter                记录调用线程与 allow_interactive，可按序抛出异常
  FakeLoader                  按包名返回依赖/系统包，可对指定包抛出异常
  FakeExecutor                记录命令的 CommandExecutor，可按命令返回失败结果

所有假实现都不触碰网络或子进程。
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from repoweave.core.manifest import Manifest
from repoweave.core.models import Package, PackageManifest
from repoweave.core.source import Source
from repoweave.core.vcs import VCSDefinition
from repoweave.utils.shell import CommandResult

# =========================================================================
# 假协作者
# =========================================================================


class FakeImporter:
    """记录每次调用 (allow_interactive, 线程)；errors 中的异常依次抛出"""

    def __init__(
        self,
        *,
        interactive: bool = False,
        errors: list[BaseException] | None = None,
        on_import: Callable[[Package], None] | None = None,
    ) -> None:
        self.interactive = interactive
        self.retry_count = 0
        self.errors = list(errors or [])
        self.on_import = on_import
        self.calls: list[tuple[bool, threading.Thread]] = []
        self._lock = threading.Lock()

    def import_package(self, package: Package, *, allow_interactive: bool) -> None:
        with self._lock:
            self.calls.append((allow_interactive, threading.current_thread()))
            error = self.errors.pop(0) if self.errors else None
        if self.on_import is not None:
            self.on_import(package)
        if error is not None:
            raise error
        Path(package.srcdir).mkdir(parents=True, exist_ok=True)


class FakeLoader:
    """按包名返回清单；errors 中的包加载时抛出对应异常"""

    def __init__(
        self,
        deps: dict[str, list[str]] | None = None,
        os_packages: dict[str, list[str]] | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.deps = deps or {}
        self.os_packages = os_packages or {}
        self.errors = errors or {}
        self.loaded: list[str] = []

    def load(self, package: Package) -> PackageManifest | None:
        self.loaded.append(package.name)
        if package.name in self.errors:
            raise self.errors[package.name]
        return PackageManifest(
            package_name=package.name,
            dependencies=list(self.deps.get(package.name, [])),
            os_packages=list(self.os_packages.get(package.name, [])),
        )


class FakeExecutor:
    """记录每条命令；handler(命令列表) 返回 CommandResult 时使用其结果，否则视为成功"""

    def __init__(self, handler: Callable[[list[str]], CommandResult | None] | None = None) -> None:
        self.handler = handler
        self.commands: list[list[str]] = []
        self.calls: list[dict[str, Any]] = []

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        interactive: bool = False,
    ) -> CommandResult:
        args = cmd.split() if isinstance(cmd, str) else list(cmd)
        self.commands.append(args)
        self.calls.append({"cmd": args, "cwd": cwd, "env": env, "interactive": interactive})
        if self.handler is not None:
            result = self.handler(args)
            if result is not None:
                return result
        return CommandResult(returncode=0, stdout="", stderr="")


class FakeInstaller:
    """记录每次 install 调用"""

    def __init__(self) -> None:
        self.calls: list[set[str]] = []

    def install(self, names: set[str]) -> None:
        self.calls.append(set(names))


# =========================================================================
# 工作空间构建
# =========================================================================


def make_source(
    name: str,
    description: dict[str, Any] | None = None,
    *,
    remotes_dir: Path | str = ".remotes",
    constants: dict[str, Any] | None = None,
) -> Source:
    """不经过磁盘直接构造一个已加载描述的来源"""
    source = Source(
        VCSDefinition(type="git", url=f"https://example.com/{name}.git"),
        remotes_dir=remotes_dir,
    )
    source.apply_description({"name": name, **(description or {})}, constants)
    return source


@pytest.fixture
def ws_root(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    (root / "autoproj").mkdir(parents=True)
    return root


@pytest.fixture
def make_manifest(ws_root: Path) -> Callable[..., Manifest]:
    def _make(
        data: dict[str, Any] | None = None,
        *,
        sources: list[Source] | None = None,
        loader: Any = None,
    ) -> Manifest:
        manifest = Manifest(data or {}, root_dir=ws_root, package_loader=loader)
        if sources is None:
            sources = [make_source("main", remotes_dir=ws_root / ".remotes")]
        manifest.set_sources(sources)
        return manifest
    return _make


@pytest.fixture
def define_package() -> Callable[..., Package]:
    def _define(
        manifest: Manifest,
        name: str,
        *,
        source: Source | None = None,
        present: bool = True,
        importer: Any = "fake",
        vcs: VCSDefinition | None = None,
    ) -> Package:
        srcdir = manifest.root_dir / name
        if present:
            srcdir.mkdir(parents=True, exist_ok=True)
        if importer == "fake":
            importer = FakeImporter()
        if vcs is None:
            vcs = VCSDefinition(type="git", url=f"https://example.com/{name}.git")
        package = Package(name=name, srcdir=str(srcdir), importer=importer, vcs=vcs)
        manifest.register_package(package, source or manifest.sources[0])
        return package
    return _define


@pytest.fixture
def fake_loader() -> type[FakeLoader]:
    return FakeLoader


@pytest.fixture
def fake_importer() -> type[FakeImporter]:
    return FakeImporter


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def fake_installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def new_source(ws_root: Path) -> Callable[..., Source]:
    def _new(
        name: str,
        description: dict[str, Any] | None = None,
        *,
        constants: dict[str, Any] | None = None,
    ) -> Source:
        return make_source(name, description, remotes_dir=ws_root / ".remotes", constants=constants)
    return _new
