"""$VAR 变量展开

规则:
- $NAME 按单词边界匹配，$PACKAGE 不会误替换 $PACKAGE_BASENAME
- 反复替换直到结果不再变化（不动点）
- 不动点后仍残留 $NAME 视为配置错误，并指出未定义的变量名
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from repoweave.core.exceptions import ConfigError

_VAR_RE = re.compile(r"\$(\w+)")


def single_expansion(data: str, definitions: Mapping[str, Any]) -> str:
    """对字符串做一轮替换"""
    for name, value in definitions.items():
        if value is None:
            continue
        data = re.sub(
            rf"\${re.escape(name)}\b", lambda _m, v=str(value): v, data,
        )
    return data


def unresolved_variables(data: str) -> list[str]:
    """列出字符串中残留的变量名"""
    return _VAR_RE.findall(data)


def expand(data: Any, definitions: Mapping[str, Any], *, context: str = "") -> Any:
    """不动点展开，支持 str / dict / list 嵌套

    参数:
        data: 待展开的值，非字符串标量原样返回
        definitions: 变量名 → 值
        context: 附加在错误信息末尾的上下文描述

    异常:
        ConfigError: 存在未定义变量或循环定义
    """
    if isinstance(data, Mapping):
        return {k: expand(v, definitions, context=context) for k, v in data.items()}
    if isinstance(data, list):
        return [expand(v, definitions, context=context) for v in data]
    if not isinstance(data, str):
        return data

    value = data
    # 每轮至少消除一层引用，超过定义数仍在变化只可能是循环
    for _ in range(len(definitions) + 2):
        new_value = single_expansion(value, definitions)
        if new_value == value:
            break
        value = new_value
    else:
        raise ConfigError(f"展开 {data!r} 时检测到循环定义{context}")

    missing = unresolved_variables(value)
    if missing:
        # 已定义却仍残留的变量只能是引用了自身
        if definitions.get(missing[0]) is not None:
            raise ConfigError(f"展开 {data!r} 时检测到循环定义（${missing[0]} 引用自身）{context}")
        raise ConfigError(f"变量 ${missing[0]} 未定义，无法展开 {data!r}{context}")
    return value
