"""导入器基类: 内部重试与错误归一化"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ExecutionError, ImportFailure, InteractionRequired

if TYPE_CHECKING:
    from repoweave.core.models import Package
    from repoweave.core.vcs import VCSDefinition
    from repoweave.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class BaseImporter:
    """导入器公共部分

    子类实现 _do_import。ExecutionError / OSError 按 retry_count 重试，
    重试耗尽后包装为 ImportFailure；InteractionRequired 直接透传。
    """

    type_name = ""

    def __init__(
        self,
        vcs: VCSDefinition,
        url: str,
        *,
        executor: CommandExecutor | None = None,
        cache_dir: str | Path | None = None,
    ) -> None:
        if executor is None:
            from repoweave.utils.shell import LocalExecutor
            executor = LocalExecutor()
        self.vcs = vcs
        self.url = url
        self.options = dict(vcs.options)
        self.executor = executor
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.interactive = bool(self.options.get("interactive", False))
        self.retry_count = 0

    def import_package(self, package: Package, *, allow_interactive: bool) -> None:
        attempts = max(0, int(self.retry_count or 0)) + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                self._do_import(package, allow_interactive=allow_interactive)
                return
            except InteractionRequired:
                raise
            except (ExecutionError, OSError) as e:
                last_error = e
                if attempt < attempts:
                    logger.warning("%s 导入失败（第 %d/%d 次），重试: %s",
                                   package.name, attempt, attempts, e)
        raise ImportFailure(package.name, f"{self.vcs} 导入失败: {last_error}") from last_error

    def _do_import(self, package: Package, *, allow_interactive: bool) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"


class LocalImporter(BaseImporter):
    """local 类型: 源码由用户自行维护，只校验目录存在"""

    type_name = "local"

    def _do_import(self, package: Package, *, allow_interactive: bool) -> None:
        if not Path(self.url).is_dir():
            raise ImportFailure(package.name, f"本地目录不存在: {self.url}")
