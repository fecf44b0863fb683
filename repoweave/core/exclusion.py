"""排除传播

沿反向依赖图（依赖 → 依赖它的包）广度优先遍历，
将依赖了被排除包的所有包一并排除，原因中附带依赖链 child>...>root。
已排除的节点保留原有原因且不再继续遍历，因此环也能终止。
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Collection, Iterable, Mapping

from repoweave.core.manifest import Manifest

logger = logging.getLogger(__name__)


def format_chain(chain: Iterable[str]) -> str:
    return ">".join(chain)


def chain_reason(reason: str, chain: list[str]) -> str:
    """带依赖链的排除原因"""
    return f"{reason} (dependency chain: {format_chain(chain)})"


def build_revdeps(dependencies: Mapping[str, Iterable[str]]) -> dict[str, set[str]]:
    """包 → 依赖 映射反转为 依赖 → 依赖它的包"""
    revdeps: dict[str, set[str]] = {}
    for name, deps in dependencies.items():
        for dep in deps:
            revdeps.setdefault(dep, set()).add(name)
    return revdeps


def mark_exclusion_along_revdeps(
    manifest: Manifest,
    name: str,
    revdeps: Mapping[str, Collection[str]],
    *,
    skip: Collection[str] = (),
) -> list[str]:
    """从已排除的 name 出发传播排除

    参数:
        manifest: 记录排除的清单（name 必须已被排除）
        name: 传播起点
        revdeps: 依赖 → 依赖它的包
        skip: 不排除也不穿越的包（例如本次已成功导入的包）

    返回:
        本次新排除的包名，按遍历顺序
    """
    root_reason = manifest.root_exclusion_reason(name) or ""
    root_chain = manifest.exclusion_chain(name)
    newly_excluded: list[str] = []

    queue: deque[tuple[str, list[str]]] = deque([(name, root_chain)])
    while queue:
        current, chain = queue.popleft()
        for dependent in sorted(revdeps.get(current, ())):
            if dependent in skip or manifest.excluded(dependent):
                continue
            dep_chain = [dependent, *chain]
            manifest.exclude_package(
                dependent, chain_reason(root_reason, dep_chain),
                chain=dep_chain, root_reason=root_reason,
            )
            newly_excluded.append(dependent)
            queue.append((dependent, dep_chain))

    if newly_excluded:
        logger.info("%s 的排除传播到 %d 个包: %s",
                    name, len(newly_excluded), ", ".join(newly_excluded))
    return newly_excluded
