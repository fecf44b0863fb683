"""选择展开

将用户/工作空间给出的选择项（包名、正则、来源名、布局路径、源码目录）
展开为具体的包名集合，并扣除被排除与被忽略的包。

单个选择项的匹配顺序:
  1. 包名精确匹配；含正则元字符时按整体正则匹配
  2. 与某来源同名时并入该来源定义的全部包
  3. 仍为空时按布局路径匹配（子树内全部包）
  4. 仍为空时按源码目录前缀匹配
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from repoweave.core.exceptions import ExcludedSelectionError, PackageNotFoundError
from repoweave.core.manifest import Manifest

logger = logging.getLogger(__name__)

_REGEX_CHARS = re.compile(r"[\\^$.|?*+()\[\]{}]")


def excluded_selection_message(token: str, packages: list[str], manifest: Manifest) -> str:
    """选择项展开后全部被排除时的错误信息"""
    if len(packages) == 1:
        name = packages[0]
        return (
            f"{token} is selected in the manifest or on the command line, "
            f"but it expands to {name}, which is excluded from the build: "
            f"{manifest.exclusion_reason(name)}"
        )
    details = "\n".join(f"  {name}: {manifest.exclusion_reason(name)}" for name in packages)
    return (
        f"{token} is selected in the manifest or on the command line, "
        f"but it expands to {', '.join(packages)}, which are all excluded from the build:\n"
        f"{details}"
    )


def _chained_first(manifest: Manifest, names: Iterable[str]) -> list[str]:
    """被依赖链排除的包排在前面（更能说明问题）"""
    names = list(names)
    return sorted(names, key=lambda n: len(manifest.exclusion_chain(n)) <= 1)


class PackageSelection:
    """选择项 → 包名集合"""

    def __init__(self) -> None:
        self.selection: dict[str, set[str]] = {}
        self.weak_tokens: set[str] = set()

    def select(self, token: str, packages: Iterable[str], *, weak: bool = False) -> None:
        self.selection.setdefault(token, set()).update(packages)
        if weak:
            self.weak_tokens.add(token)

    def each(self) -> Iterator[tuple[str, set[str]]]:
        yield from self.selection.items()

    @property
    def package_names(self) -> set[str]:
        return set().union(*self.selection.values()) if self.selection else set()

    def check_excluded(self, manifest: Manifest, names: Iterable[str] | None = None) -> None:
        """若某个选择项的匹配已全部被排除则抛出 ExcludedSelectionError

        names 给出时只检查包含其中某个包的选择项。
        """
        candidates = set(names) if names is not None else None
        for token, matches in self.selection.items():
            if not matches:
                continue
            if candidates is not None and not (matches & candidates):
                continue
            if all(manifest.excluded(n) for n in matches):
                excluded = _chained_first(manifest, sorted(matches))
                first = excluded[0]
                raise ExcludedSelectionError(
                    excluded_selection_message(token, excluded, manifest),
                    selection=token,
                    package=first,
                    chain=manifest.exclusion_chain(first),
                    reason=manifest.exclusion_reason(first) or "",
                )

    def filter_excluded_and_ignored_packages(self, manifest: Manifest) -> None:
        """扣除被排除与被忽略的包

        异常:
            ExcludedSelectionError: 非空的选择项展开后全部被排除
        """
        self.check_excluded(manifest)
        for token in list(self.selection):
            kept = {
                n for n in self.selection[token]
                if not manifest.excluded(n) and not manifest.ignored(n)
            }
            dropped = self.selection[token] - kept
            if dropped:
                logger.debug("选择项 %s 扣除 %d 个排除/忽略的包", token, len(dropped))
            self.selection[token] = kept


class SelectionExpander:
    """选择项展开器"""

    def __init__(self, manifest: Manifest, root_dir: str | Path | None = None) -> None:
        self.manifest = manifest
        self.root_dir = Path(root_dir) if root_dir else manifest.root_dir

    def match_package_names(self, token: str) -> set[str]:
        if token in self.manifest.packages:
            return {token}
        if not _REGEX_CHARS.search(token):
            return set()
        try:
            regex = re.compile(token)
        except re.error:
            return set()
        return {name for name in self.manifest.packages if regex.fullmatch(name)}

    def match_layout(self, token: str) -> set[str]:
        wanted = "/" + token.strip("/") + "/"
        if wanted == "//":
            return set()
        result: set[str] = set()
        for path, layout_def in self.manifest.each_layout():
            if path.startswith(wanted):
                result.update(self.manifest.layout_packages(layout_def, True))
        return result

    def match_srcdir(self, token: str) -> set[str]:
        path = Path(token).expanduser()
        if not path.is_absolute():
            path = self.root_dir / path
        path = path.resolve()
        result: set[str] = set()
        for pkg in self.manifest.each_package():
            srcdir = Path(pkg.srcdir).resolve()
            if srcdir == path or path in srcdir.parents:
                result.add(pkg.name)
        return result

    def expand_token(self, token: str) -> set[str]:
        matches = self.match_package_names(token)
        source = self.manifest.find_source(token)
        if source is not None:
            matches |= set(self.manifest.source_packages(source.name))
        if not matches:
            matches = self.match_layout(token)
        if not matches:
            matches = self.match_srcdir(token)
        return matches

    def expand(self, tokens: Iterable[str], *, weak: bool = False) -> PackageSelection:
        """展开选择项

        参数:
            tokens: 选择项
            weak: 弱选择，匹配不到任何包时静默丢弃

        异常:
            PackageNotFoundError: 强选择项没有匹配到任何包
            ExcludedSelectionError: 选择项展开后全部被排除
        """
        selection = PackageSelection()
        not_found: list[str] = []
        for token in tokens:
            matches = self.expand_token(token)
            if not matches:
                if weak:
                    logger.debug("弱选择项 %s 未匹配到任何包，忽略", token)
                else:
                    not_found.append(token)
                continue
            selection.select(token, matches, weak=weak)

        if not_found:
            raise PackageNotFoundError(
                f"选择项没有匹配到任何包或包集合: {', '.join(not_found)}"
            )
        selection.filter_excluded_and_ignored_packages(self.manifest)
        return selection
