"""VCS 定义值类型

配置文件中的 VCS 定义有三种写法:
  * 字符串 "type:url"，如 "git:https://example.com/repo.git"
  * 字符串形式的目录名（相对配置目录），表示一个 local 来源
  * 映射 {type: ..., url: ..., 其他键作为 VCS 专有选项}

normalize_vcs_definition 将三者统一为 VCSDefinition。
"""

from __future__ import annotations

import os
import re
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from repoweave.core.exceptions import ConfigError
from repoweave.core.vcs.expansion import single_expansion

NONE_TYPE = "none"
LOCAL_TYPE = "local"
SPECIAL_TYPES = frozenset({NONE_TYPE, LOCAL_TYPE})

# 远程地址（scheme://、绝对路径、user@host:）不做相对路径解析
_REMOTE_URL_RE = re.compile(r"^(\w+:/)?/|^\w+@")


@dataclass(frozen=True)
class VCSDefinition:
    """规范化后的 {type, url, options} 三元组（不可变）"""

    type: str
    url: str = ""
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def none(self) -> bool:
        return self.type == NONE_TYPE

    @property
    def local(self) -> bool:
        return self.type == LOCAL_TYPE

    @property
    def needs_import(self) -> bool:
        """none / local 类型不创建导入器"""
        return self.type not in SPECIAL_TYPES

    def resolved_url(self, root_dir: str | Path) -> str:
        """展开 $HOME 后，相对路径基于工作空间根目录解析（从不基于当前目录）"""
        url = single_expansion(self.url, {"HOME": os.path.expanduser("~")})
        if url and not _REMOTE_URL_RE.match(url):
            url = str((Path(root_dir) / url).resolve())
        return url

    def to_hash(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url, **self.options}

    def __str__(self) -> str:
        return f"{self.type}:{self.url}"


def vcs_definition_to_hash(
    spec: Any, *, config_dir: str | Path | None = None,
) -> dict[str, Any]:
    """将字符串/映射写法统一转换为字典（不做合法性校验）"""
    if isinstance(spec, str):
        if spec == NONE_TYPE:
            return {"type": NONE_TYPE}
        vcs, sep, url = spec.partition(":")
        if sep:
            return {"type": vcs, "url": url}
        if config_dir is None:
            raise ConfigError(f"{spec!r} 不是 type:url 形式的 VCS 定义")
        source_dir = (Path(config_dir) / spec).resolve()
        if not source_dir.is_dir():
            raise ConfigError(
                f"{spec!r} 既不是远程来源定义，也不是本地来源目录"
            )
        return {"type": LOCAL_TYPE, "url": str(source_dir)}

    if isinstance(spec, Mapping):
        return {str(k): v for k, v in spec.items()}

    raise ConfigError(f"无法识别的 VCS 定义: {spec!r}")


def normalize_vcs_definition(
    spec: Any, *,
    config_dir: str | Path | None = None,
    known_types: Collection[str] | None = None,
) -> VCSDefinition:
    """规范化 VCS 定义并校验 type

    参数:
        spec: 三种写法之一
        config_dir: 解析本地来源目录名的基准目录
        known_types: 已注册的 VCS 类型；为 None 时不校验

    异常:
        ConfigError: 缺少 type / url，或 type 未注册
    """
    data = vcs_definition_to_hash(spec, config_dir=config_dir)
    vcs_type = data.pop("type", None)
    url = data.pop("url", None)
    if not vcs_type or (vcs_type != NONE_TYPE and not url):
        raise ConfigError(f"VCS 定义 {spec!r} 缺少 type 或 url")

    vcs_type = str(vcs_type)
    if (
        known_types is not None
        and vcs_type not in SPECIAL_TYPES
        and vcs_type not in known_types
    ):
        raise ConfigError(f"未知的版本控制类型: {vcs_type}")

    return VCSDefinition(type=vcs_type, url=str(url or ""), options=data)
