"""VCS 规则列表

source.yml 中 version_control / overrides 两段的格式:

    version_control:
      - base/.*:
          type: git
          url: $GITORIOUS/$PACKAGE.git
      - base/types: "git:https://example.com/types.git"

每条规则是 (名称前缀正则, 部分 VCS 定义)，按声明顺序求值，
多条规则匹配时后者覆盖前者的同名键。
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from repoweave.core.exceptions import ConfigError
from repoweave.core.vcs.definition import vcs_definition_to_hash


@dataclass(frozen=True)
class VCSRule:
    """单条规则"""

    pattern: str
    regex: re.Pattern[str]
    spec: dict[str, Any]

    def matches(self, package_name: str) -> bool:
        """正则从包名起始处锚定匹配"""
        return self.regex.match(package_name) is not None


def parse_rules(raw: Any, section: str) -> list[VCSRule]:
    """解析规则列表，格式不合法时抛 ConfigError"""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"{section} 段格式错误: 应为列表")

    rules: list[VCSRule] = []
    for entry in raw:
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ConfigError(
                f"{section} 段格式错误: 每一项应为单键映射，实际为 {entry!r}"
            )
        pattern, spec = next(iter(entry.items()))
        pattern = str(pattern)
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ConfigError(f"{section} 段中的正则 {pattern!r} 无效: {e}") from e
        rules.append(VCSRule(
            pattern=pattern,
            regex=regex,
            spec=vcs_definition_to_hash(spec or {}),
        ))
    return rules


def merge_matching(rules: Sequence[VCSRule], package_name: str) -> dict[str, Any] | None:
    """合并所有匹配规则；没有任何规则匹配时返回 None"""
    merged: dict[str, Any] | None = None
    for rule in rules:
        if rule.matches(package_name):
            merged = {**(merged or {}), **rule.spec}
    return merged
