"""导入后钩子

钩子在包导入（或 finalize 阶段首次加载）并读取清单之后调用，
可按包名正则限定作用范围。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repoweave.core.models import Package

logger = logging.getLogger(__name__)

PostImportHook = Callable[["Package"], None]


class PostImportHooks:
    """导入后钩子注册表"""

    def __init__(self) -> None:
        self._hooks: list[tuple[re.Pattern[str] | None, PostImportHook]] = []

    def register(self, hook: PostImportHook, *, pattern: str | None = None) -> PostImportHook:
        regex = re.compile(pattern) if pattern else None
        self._hooks.append((regex, hook))
        return hook

    def each_post_import_block(self, package: Package) -> Iterator[PostImportHook]:
        for regex, hook in self._hooks:
            if regex is None or regex.match(package.name):
                yield hook

    def run(self, package: Package) -> None:
        for hook in self.each_post_import_block(package):
            logger.debug("执行导入后钩子 %s: %s", getattr(hook, "__name__", hook), package.name)
            hook(package)

    def __len__(self) -> int:
        return len(self._hooks)
