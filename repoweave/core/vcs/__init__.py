"""版本控制定义模块

拆分说明:
- definition.py: VCSDefinition 值类型 + 三种写法的规范化
- expansion.py: $VAR 变量展开（不动点迭代）
- rules.py: 名称前缀正则 → 部分 VCS 定义 的规则列表
- resolver.py: 来源规则与覆盖层合并为单个 VCSDefinition
"""

from repoweave.core.vcs.definition import (
    VCSDefinition,
    normalize_vcs_definition,
    vcs_definition_to_hash,
)
from repoweave.core.vcs.expansion import expand, single_expansion
from repoweave.core.vcs.resolver import VCSResolver
from repoweave.core.vcs.rules import VCSRule, parse_rules

__all__ = [
    "VCSDefinition",
    "VCSResolver",
    "VCSRule",
    "expand",
    "normalize_vcs_definition",
    "parse_rules",
    "single_expansion",
    "vcs_definition_to_hash",
]
