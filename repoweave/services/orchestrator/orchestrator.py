"""导入编排器

按波次（广度优先）导入选中的包:

  1. 准备: 跳过已处理/排除/忽略的包，按 non_imported_packages 策略处理磁盘上不存在的包
  2. 安装本波次需要的 VCS 工具
  3. 非交互通道: 线程池并发导入，结果经完成队列回到主线程；
     抛出 InteractionRequired 的包转入交互通道
  4. 交互通道: 在主线程中逐个导入
  5. 后处理（成功的包）: 加载清单 → 导入后钩子 → 记录反向依赖 →
     检查被排除的依赖 → 新依赖进入下一波次
  6. 安装本波次包声明的系统包

共享状态（清单中的排除集合、已处理集合、失败列表）只在主线程中修改。
"""

from __future__ import annotations

import logging
import queue
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ConfigError, ImportFailedError, InteractionRequired
from repoweave.core.exclusion import build_revdeps, chain_reason, mark_exclusion_along_revdeps
from repoweave.core.models import ImportOptions, ImportResult, ImportState, NonImportedPolicy, Package
from repoweave.services.hooks import PostImportHooks
from repoweave.services.orchestrator.models import ImportRun, Wave

if TYPE_CHECKING:
    from repoweave.core.manifest import Manifest
    from repoweave.core.protocols import OSPackageInstaller
    from repoweave.core.selection import PackageSelection

logger = logging.getLogger(__name__)

# 完成队列中的消息: (包, 异常或 None)
Completion = tuple[Package, "BaseException | None"]


class ImportOrchestrator:
    """并发导入编排器"""

    def __init__(
        self,
        manifest: Manifest,
        *,
        os_installer: OSPackageInstaller | None = None,
        hooks: PostImportHooks | None = None,
    ) -> None:
        self.manifest = manifest
        self.os_installer = os_installer
        self.hooks = hooks or PostImportHooks()

    # =====================================================================
    # 顶层入口
    # =====================================================================

    def import_packages(
        self, selection: PackageSelection, options: ImportOptions | None = None,
    ) -> ImportResult:
        """导入选中的包，再为布局中未触及的包加载清单

        异常:
            ImportFailedError: 存在失败且既未开启 keep_going 也未开启 auto_exclude
        """
        options = options or ImportOptions()
        result = self.import_selected_packages(selection, options)
        tolerant = options.keep_going or options.auto_exclude
        if result.failures and not tolerant:
            raise ImportFailedError(result.failures)

        result.failures.extend(
            self.finalize_package_load(result.processed, auto_exclude=options.auto_exclude)
        )
        if result.failures and not tolerant:
            raise ImportFailedError(result.failures)
        return result

    def import_selected_packages(
        self, selection: PackageSelection, options: ImportOptions | None = None,
    ) -> ImportResult:
        """按波次导入选中的包及其依赖

        返回:
            ImportResult: processed 为已处理的包（去掉排除/忽略的包），failures 按发生顺序

        异常:
            ConfigError: 包没有导入器且不在磁盘上
            ExcludedSelectionError: 选择项经由依赖落入排除范围
        """
        options = options or ImportOptions()
        run = ImportRun(options=options)
        pending = _ordered_selection(selection)

        index = 0
        while pending and not run.stopped:
            index += 1
            wave = self._prepare_wave(index, pending, selection, run)
            pending = self._run_wave(wave, selection, run)

        for name in list(run.processed):
            if self.manifest.excluded(name) or self.manifest.ignored(name):
                run.processed.discard(name)
        logger.info(
            "导入结束: %d 个包已处理, %d 个失败, 共 %d 个波次",
            len(run.processed), len(run.failures), index,
        )
        return run.to_result()

    # =====================================================================
    # 波次
    # =====================================================================

    def _prepare_wave(
        self, index: int, names: list[str], selection: PackageSelection, run: ImportRun,
    ) -> Wave:
        wave = Wave(index=index)
        policy = run.options.non_imported_packages
        for name in names:
            if run.seen(name):
                continue
            if self.manifest.excluded(name):
                selection.check_excluded(self.manifest, [name])
                logger.debug("跳过被排除的包 %s", name)
                continue
            if self.manifest.ignored(name):
                continue

            package = self.manifest.package(name)
            if not package.present and policy is not NonImportedPolicy.CHECKOUT:
                run.mark(name, ImportState.SKIPPED)
                if policy is NonImportedPolicy.IGNORE:
                    self.manifest.ignore_package(name)
                    logger.info("%s 不在磁盘上，按策略忽略", name)
                else:
                    run.processed.add(name)
                    logger.info("%s 不在磁盘上，按策略不导入", name)
                continue

            if package.importer is None:
                if not package.present:
                    raise ConfigError(f"{name} has no VCS, but is not checked out in {package.srcdir}")
                run.mark(name, ImportState.SKIPPED)
                run.processed.add(name)
                wave.passthrough.append(package)
                continue

            run.mark(name, ImportState.QUEUED)
            run.processed.add(name)
            wave.to_import.append(package)

        wave.split_lanes()
        return wave

    def _run_wave(self, wave: Wave, selection: PackageSelection, run: ImportRun) -> list[str]:
        logger.info(
            "第 %d 波次: %d 个非交互, %d 个交互, %d 个无需导入",
            wave.index, len(wave.non_interactive), len(wave.interactive), len(wave.passthrough),
        )
        self.install_vcs_packages(wave, run)

        for package in wave.to_import:
            if run.options.retry_count is not None:
                package.importer.retry_count = run.options.retry_count

        imported = {p.name for p in self._run_non_interactive_lane(wave, run)}
        if not run.stopped:
            imported.update(p.name for p in self._run_interactive_lane(wave, run))
        candidates = [*wave.passthrough, *(p for p in wave.to_import if p.name in imported)]
        if run.stopped:
            _discard_unprocessed(candidates, run)
            return []

        next_names: list[str] = []
        done: list[Package] = []
        for i, package in enumerate(candidates):
            deps = self.post_package_import(package, selection, run)
            if deps is None:
                if run.stopped:
                    _discard_unprocessed(candidates[i + 1:], run)
                    return []
                continue
            next_names.extend(deps)
            done.append(package)

        self.install_os_packages(done, run)
        return list(dict.fromkeys(next_names))

    # =====================================================================
    # 通道
    # =====================================================================

    def queue_import_work(
        self, pool: ThreadPoolExecutor, package: Package, completion: queue.Queue[Completion],
    ) -> None:
        pool.submit(self._import_worker, package, completion)

    @staticmethod
    def _import_worker(package: Package, completion: queue.Queue[Completion]) -> None:
        """工作线程: 只调用导入器，结果交回主线程"""
        try:
            package.importer.import_package(package, allow_interactive=False)
        except BaseException as e:  # noqa: BLE001 - 交由主线程处理
            completion.put((package, e))
        else:
            completion.put((package, None))

    def _run_non_interactive_lane(self, wave: Wave, run: ImportRun) -> list[Package]:
        if not wave.non_interactive:
            return []
        level = run.options.parallel_import_level
        todo = deque(wave.non_interactive)
        completion: queue.Queue[Completion] = queue.Queue()
        imported: list[Package] = []
        in_flight = 0

        with ThreadPoolExecutor(max_workers=level, thread_name_prefix="repoweave-import") as pool:
            while todo or in_flight:
                while todo and in_flight < level and not run.stopped:
                    package = todo.popleft()
                    run.mark(package.name, ImportState.IMPORTING)
                    logger.info("导入 %s", package.name)
                    self.queue_import_work(pool, package, completion)
                    in_flight += 1
                if not in_flight:
                    break

                package, error = completion.get()
                in_flight -= 1
                if error is None:
                    run.mark(package.name, ImportState.IMPORTED)
                    imported.append(package)
                    logger.info("完成 %s", package.name)
                elif isinstance(error, InteractionRequired):
                    run.mark(package.name, ImportState.QUEUED)
                    wave.interactive.append(package)
                    logger.info("%s 需要交互，转入主线程重试", package.name)
                elif isinstance(error, Exception):
                    self._record_failure(package, error, run)
                else:
                    raise error

        # 停止后未派发的包不算已处理
        for package in todo:
            run.processed.discard(package.name)
            run.mark(package.name, ImportState.PENDING)
        return imported

    def _run_interactive_lane(self, wave: Wave, run: ImportRun) -> list[Package]:
        imported: list[Package] = []
        for package in wave.interactive:
            if run.stopped:
                run.processed.discard(package.name)
                run.mark(package.name, ImportState.PENDING)
                continue
            run.mark(package.name, ImportState.IMPORTING)
            logger.info("交互导入 %s", package.name)
            try:
                package.importer.import_package(package, allow_interactive=True)
            except Exception as e:  # noqa: BLE001 - 按包记录失败
                self._record_failure(package, e, run)
                continue
            run.mark(package.name, ImportState.IMPORTED)
            imported.append(package)
        return imported

    # =====================================================================
    # 后处理与失败
    # =====================================================================

    def post_package_import(
        self, package: Package, selection: PackageSelection, run: ImportRun,
    ) -> list[str] | None:
        """加载清单、执行钩子，返回需要进入下一波次的依赖

        清单加载失败时记录失败并返回 None。
        """
        try:
            self.manifest.load_package_manifest(package.name)
        except Exception as e:  # noqa: BLE001 - 清单加载失败按包记录
            self._record_failure(package, e, run)
            return None
        self.hooks.run(package)

        for dep in package.dependencies:
            run.revdeps.setdefault(dep, set()).add(package.name)
        run.succeeded.add(package.name)

        for dep in package.dependencies:
            if self.manifest.excluded(dep):
                self._exclude_through_dependency(package, dep, selection, run)
                return []
        return [
            dep for dep in package.dependencies
            if not run.seen(dep) and not self.manifest.ignored(dep)
        ]

    def _exclude_through_dependency(
        self, package: Package, dep: str, selection: PackageSelection, run: ImportRun,
    ) -> None:
        chain = [package.name, *self.manifest.exclusion_chain(dep)]
        root_reason = self.manifest.root_exclusion_reason(dep) or ""
        self.manifest.exclude_package(
            package.name, chain_reason(root_reason, chain),
            chain=chain, root_reason=root_reason,
        )
        # 本次已成功导入的包保持不变，只排除 package 自身与尚未成功的依赖者
        affected = [package.name, *mark_exclusion_along_revdeps(
            self.manifest, package.name, run.revdeps, skip=run.succeeded - {package.name},
        )]
        selection.check_excluded(self.manifest, affected)

    def _record_failure(self, package: Package, error: Exception, run: ImportRun) -> None:
        run.failures.append(error)
        run.mark(package.name, ImportState.FAILED)
        logger.error("%s 导入失败: %s", package.name, error)

        if run.options.auto_exclude:
            self.manifest.exclude_package(package.name, f"{package.name} failed to import with {error}")
            mark_exclusion_along_revdeps(
                self.manifest, package.name, run.revdeps, skip=run.succeeded,
            )
        elif not run.options.keep_going:
            run.stopped = True
            logger.error("keep_going 未开启，停止派发新的导入")

    # =====================================================================
    # 系统包
    # =====================================================================

    def install_vcs_packages(self, wave: Wave, run: ImportRun) -> None:
        """安装本波次需要、且本次运行尚未安装过的 VCS 工具"""
        if not run.options.install_vcs_packages or self.os_installer is None:
            return
        needed = {
            p.vcs.type for p in wave.to_import
            if p.vcs is not None and p.vcs.needs_import
        } - run.installed_vcs
        if not needed:
            return
        logger.info("安装 VCS 工具: %s", ", ".join(sorted(needed)))
        self.os_installer.install(needed)
        run.installed_vcs.update(needed)

    def install_os_packages(self, packages: list[Package], run: ImportRun) -> None:
        """批量安装本波次包声明的系统包（local / none 类型的包跳过）"""
        if not run.options.install_os_packages or self.os_installer is None:
            return
        names = {
            name
            for p in packages
            if p.vcs is not None and p.vcs.needs_import
            for name in p.os_packages
        }
        if names:
            self.os_installer.install(names)

    # =====================================================================
    # finalize
    # =====================================================================

    def finalize_package_load(
        self, processed: set[str], *, auto_exclude: bool = False,
    ) -> list[Exception]:
        """为布局中本次未处理、但已在磁盘上的包加载清单并执行钩子

        返回加载失败（且未被 auto_exclude 吸收）的异常列表。
        """
        failures: list[Exception] = []
        for name in self.manifest.default_packages():
            if name in processed or self.manifest.excluded(name) or self.manifest.ignored(name):
                continue
            package = self.manifest.package(name)
            if not package.present:
                continue
            try:
                self.manifest.load_package_manifest(name)
            except Exception as e:  # noqa: BLE001 - 按包记录失败
                logger.error("%s 清单加载失败: %s", name, e)
                if not auto_exclude:
                    failures.append(e)
                    continue
                self.manifest.exclude_package(name, f"{name} failed to load its manifest with {e}")
                revdeps = build_revdeps({p.name: p.dependencies for p in self.manifest.each_package()})
                mark_exclusion_along_revdeps(self.manifest, name, revdeps, skip=processed)
                continue
            self.hooks.run(package)
        return failures


def _discard_unprocessed(packages: list[Package], run: ImportRun) -> None:
    """停止后未完成后处理的包不算已处理（状态保留，检出结果仍在磁盘上）"""
    for package in packages:
        run.processed.discard(package.name)


def _ordered_selection(selection: PackageSelection) -> list[str]:
    """选择项声明顺序，同一选择项内按名字排序"""
    return list(dict.fromkeys(
        name for _, names in selection.each() for name in sorted(names)
    ))
