"""抓取加速缓存

git 包镜像为 <cache>/git/<包名> 下的裸仓库（远端名 autobuild），
archive 包的下载文件刷新到 <cache>/archives。
每个远程步骤固定重试 10 次，无退避；缓存本身不加锁。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from repoweave.core.exceptions import ExecutionError, PackageNotFoundError
from repoweave.services.importers.archive import ArchiveImporter
from repoweave.services.importers.git import GitImporter
from repoweave.utils.shell import run_cmd

if TYPE_CHECKING:
    from repoweave.core.manifest import Manifest
    from repoweave.core.models import Package
    from repoweave.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

REMOTE_RETRIES = 10
REMOTE_NAME = "autobuild"


class Cache:
    """缓存构建器"""

    def __init__(
        self,
        cache_dir: str | Path,
        manifest: Manifest,
        *,
        executor: CommandExecutor | None = None,
    ) -> None:
        if executor is None:
            from repoweave.utils.shell import LocalExecutor
            executor = LocalExecutor()
        self.cache_dir = Path(cache_dir)
        self.manifest = manifest
        self.executor = executor

    @staticmethod
    def with_retry(count: int, func: Callable[[], T]) -> T:
        """执行 func，ExecutionError 时最多重试 count 次"""
        for i in range(count):
            try:
                return func()
            except ExecutionError as e:
                logger.warning("  失败，重试 (%d/%d): %s", i + 1, count, e)
        return func()

    @property
    def git_cache_dir(self) -> Path:
        return self.cache_dir / "git"

    @property
    def archive_cache_dir(self) -> Path:
        return self.cache_dir / "archives"

    def _git(self, git_dir: Path, *args: str) -> None:
        run_cmd(self.executor, ["git", "--git-dir", str(git_dir), *args], label="git " + args[0])

    def cache_git(self, package: Package, *, checkout_only: bool = False) -> None:
        importer = package.importer
        git_dir = self.git_cache_dir / package.name
        if checkout_only and git_dir.is_dir():
            return

        if not git_dir.is_dir():
            git_dir.parent.mkdir(parents=True, exist_ok=True)
            self._git(git_dir, "init", "--bare")
            self._git(git_dir, "remote", "add", REMOTE_NAME, importer.url)
        else:
            self._git(git_dir, "remote", "set-url", REMOTE_NAME, importer.url)

        self.with_retry(REMOTE_RETRIES, lambda: self._git(git_dir, "remote", "update", REMOTE_NAME))
        self.with_retry(REMOTE_RETRIES, lambda: self._git(git_dir, "fetch", REMOTE_NAME, "--tags"))
        self._git(git_dir, "gc", "--prune=all")

    def cache_archive(self, package: Package) -> None:
        importer = package.importer

        def update() -> Path:
            try:
                return importer.update_cache(package, force=True, cache_dir=self.cache_dir)
            except OSError as e:
                raise ExecutionError(str(e)) from e

        self.with_retry(REMOTE_RETRIES, update)

    def _packages(self, names: tuple[str, ...], all_packages: bool) -> list[Package]:
        if names:
            packages = []
            for name in names:
                definition = self.manifest.find_package(name)
                if definition is None:
                    raise PackageNotFoundError(f"no package named {name}")
                packages.append(definition.package)
        elif all_packages:
            packages = list(self.manifest.each_package())
        else:
            packages = [self.manifest.package(n) for n in self.manifest.default_packages()]
        return sorted(packages, key=lambda p: p.name)

    def create_or_update(
        self,
        *names: str,
        all: bool = True,  # noqa: A002
        keep_going: bool = False,
        checkout_only: bool = False,
    ) -> list[Exception]:
        """创建或刷新缓存

        参数:
            names: 指定的包名；为空时处理全部包（all=False 时为布局中的包）
            keep_going: 失败时记录并继续，而不是抛出

        返回:
            keep_going 时收集到的失败
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        packages = self._packages(names, all)
        total = len(packages)
        logger.info("处理 %d 个包", total)

        failures: list[Exception] = []
        for i, package in enumerate(packages, 1):
            # 复用其他包检出目录的包无需缓存
            if package.srcdir != package.importdir:
                continue
            try:
                if isinstance(package.importer, GitImporter):
                    logger.info("  [%d/%d] 缓存 %s (git)", i, total, package.name)
                    self.cache_git(package, checkout_only=checkout_only)
                elif isinstance(package.importer, ArchiveImporter):
                    logger.info("  [%d/%d] 缓存 %s (archive)", i, total, package.name)
                    self.cache_archive(package)
                else:
                    logger.info("  [%d/%d] 不缓存 %s（%s 不支持缓存）",
                                i, total, package.name, type(package.importer).__name__)
            except Exception as e:
                if not keep_going:
                    raise
                logger.error("  缓存 %s 失败，按要求继续: %s", package.name, e)
                failures.append(e)
        return failures
