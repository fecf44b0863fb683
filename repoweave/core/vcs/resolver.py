"""VCS 定义解析器

合并顺序:
  1. 定义该包的来源的 version_control 规则（必须至少一条匹配）
  2. 之后声明的每个来源（包括总是最后的 local 覆盖层）的 overrides 规则

每个来源贡献的部分定义先用该来源自己的变量展开，再合并。
覆盖层可以新增或替换键，但不能移除基础定义的 type。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Collection, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from repoweave.core.exceptions import ConfigError
from repoweave.core.vcs.definition import NONE_TYPE, VCSDefinition, normalize_vcs_definition
from repoweave.core.vcs.expansion import expand

if TYPE_CHECKING:
    from repoweave.core.source import Source

logger = logging.getLogger(__name__)


class VCSResolver:
    """将有序来源列表中的规则合并为单个包的 VCSDefinition"""

    def __init__(
        self,
        sources: Sequence[Source],
        *,
        root_dir: str | Path,
        config_dir: str | Path,
        known_types: Collection[str] | None = None,
        constants: Mapping[str, Any] | None = None,
    ) -> None:
        self.sources = list(sources)
        self.root_dir = Path(root_dir)
        self.config_dir = Path(config_dir)
        self.known_types = known_types
        self.constants = dict(constants or {})

    def expansions_for(self, package_name: str, source: Source) -> dict[str, Any]:
        """变量表，优先级: 内置变量 > 来源常量 > 工作空间常量"""
        builtins = {
            "PACKAGE": package_name,
            "PACKAGE_BASENAME": package_name.rsplit("/", 1)[-1],
            "AUTOPROJ_ROOT": str(self.root_dir),
            "AUTOPROJ_CONFIG": str(self.config_dir),
            "AUTOPROJ_SOURCE_DIR": str(source.local_dir),
            "HOME": os.path.expanduser("~"),
        }
        return {**self.constants, **source.constants, **builtins}

    def _contribution(
        self, source: Source, raw: dict[str, Any] | None, package_name: str,
    ) -> dict[str, Any] | None:
        if raw is None:
            return None
        return expand(
            raw, self.expansions_for(package_name, source),
            context=f"（来源 {source.name}，包 {package_name}）",
        )

    def resolve(self, package_name: str, source: Source) -> VCSDefinition:
        """解析包的最终 VCS 定义

        参数:
            package_name: 包名
            source: 定义该包的来源

        异常:
            ConfigError: 定义来源没有匹配规则、缺少 type/url、变量未定义或类型未知
        """
        from repoweave.core.source import source_index

        index = source_index(self.sources, source)
        spec = self._contribution(source, source.version_control_for(package_name), package_name)
        if not spec or (spec.get("type") != NONE_TYPE and not (spec.get("type") and spec.get("url"))):
            raise ConfigError(
                f"来源 {source.name} 定义了 {package_name}，但没有为其提供完整的版本控制定义"
                f"（{source.description_file}）"
            )

        for later in self.sources[index + 1:]:
            override = self._contribution(later, later.overrides_for(package_name), package_name)
            if not override:
                continue
            logger.debug("%s 的 VCS 定义被来源 %s 覆盖: %s", package_name, later.name, override)
            spec = merge_override(spec, override)

        try:
            return normalize_vcs_definition(spec, known_types=self.known_types)
        except ConfigError as e:
            raise ConfigError(f"{package_name}: {e}（定义来源 {source.name}）") from e


def merge_override(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """覆盖合并，空 type 不会移除基础定义的 type"""
    merged = dict(base)
    for key, value in override.items():
        if key == "type" and not value:
            continue
        merged[key] = value
    return merged
