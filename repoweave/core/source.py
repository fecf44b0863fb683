"""来源（包集合）模型

一个来源是一个包含 source.yml 的目录（通常本身受版本控制），描述:
- name: 来源名称，匹配 [\\w.-]+，且不能为 "local"
- constants: 常量定义，可相互引用，加载时解析为最终值
- packages: 本来源定义的包
- version_control / overrides: VCS 规则列表

LocalSource 表示工作空间自身的覆盖层（配置目录下的 overrides.yml），
总是最后求值，不受版本控制，名称固定为 "local"。
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from repoweave.core.exceptions import ConfigError, InternalError
from repoweave.core.vcs.definition import LOCAL_TYPE, VCSDefinition
from repoweave.core.vcs.expansion import single_expansion, unresolved_variables
from repoweave.core.vcs.rules import VCSRule, merge_matching, parse_rules
from repoweave.utils.yaml_io import load_config_yaml

logger = logging.getLogger(__name__)

_SOURCE_NAME_RE = re.compile(r"^[\w.-]+$")
LOCAL_SOURCE_NAME = "local"
SOURCE_FILE = "source.yml"
OVERRIDES_FILE = "overrides.yml"


def resolve_constants(
    raw: Mapping[str, Any], external: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """解析相互引用的常量定义

    参数:
        raw: 原始常量定义（值可引用其他常量）
        external: 外部可用的定义（工作空间常量），优先级低于本地定义

    异常:
        ConfigError: 引用了未定义的常量，或存在循环定义
    """
    external = dict(external or {})
    constants = {str(k): "" if v is None else str(v) for k, v in raw.items()}
    constants.setdefault("HOME", os.path.expanduser("~"))

    for _ in range(len(constants) + 2):
        changed = False
        for name, value in list(constants.items()):
            # 常量不能用自身展开，自引用会在下面作为循环报告
            others = {k: v for k, v in constants.items() if k != name}
            new_value = single_expansion(value, {**external, **others})
            if new_value != value:
                constants[name] = new_value
                changed = True
        if not changed:
            break
    else:
        raise ConfigError(f"常量定义存在循环引用: {', '.join(sorted(raw))}")

    for name, value in constants.items():
        missing = unresolved_variables(value)
        if not missing:
            continue
        ref = missing[0]
        if ref in constants:
            raise ConfigError(f"常量 '{name}' 存在循环定义（经由 '{ref}'）")
        raise ConfigError(f"常量 '{ref}'（用于定义 '{name}'）未在任何地方定义")
    return constants


def validate_source_name(name: str) -> str:
    if not _SOURCE_NAME_RE.match(name):
        raise ConfigError(f"来源名称非法: {name!r}，只允许字母数字、'_'、'.'、'-'")
    if name == LOCAL_SOURCE_NAME:
        raise ConfigError(f"来源名称 {LOCAL_SOURCE_NAME!r} 为工作空间覆盖层保留")
    return name


class Source:
    """一个包集合"""

    def __init__(
        self,
        vcs: VCSDefinition,
        *,
        remotes_dir: str | Path = ".remotes",
        name: str = "",
    ) -> None:
        self.vcs = vcs
        self.remotes_dir = Path(remotes_dir)
        self._name = name
        self.description: dict[str, Any] | None = None
        self.constants: dict[str, str] = {}
        self.version_control: list[VCSRule] = []
        self.overrides: list[VCSRule] = []
        self.package_entries: list[dict[str, Any]] = []

    # ---- 标识 ----

    @property
    def local(self) -> bool:
        """不受版本控制的来源"""
        return self.vcs.local

    @property
    def automatic_name(self) -> str:
        """由 VCS 地址生成的名称"""
        return re.sub(r"[^\w]", "_", str(self.vcs))

    @property
    def name(self) -> str:
        if self.description and self.description.get("name"):
            return str(self.description["name"])
        return self._name or self.automatic_name

    @property
    def local_dir(self) -> Path:
        """本来源检出到的目录"""
        if self.local:
            return Path(self.vcs.url)
        return self.remotes_dir / self.automatic_name

    @property
    def present(self) -> bool:
        return self.local_dir.is_dir()

    @property
    def description_file(self) -> Path:
        return self.local_dir / SOURCE_FILE

    # ---- 加载 ----

    def raw_description(self) -> dict[str, Any] | None:
        """读取 source.yml 原始内容；来源尚未检出时返回 None"""
        if not self.present:
            return None
        if not self.description_file.is_file():
            raise ConfigError(f"来源 {self.vcs} 缺少 {SOURCE_FILE}: {self.description_file}")
        data = load_config_yaml(self.description_file)
        if not data.get("name"):
            raise ConfigError(f"{self.description_file} 缺少 'name' 字段")
        return data

    def load_description(self, workspace_constants: Mapping[str, Any] | None = None) -> Source:
        """加载并解析 source.yml；来源未检出时仅记录警告"""
        data = self.raw_description()
        if data is None:
            logger.warning("来源尚未检出，跳过加载: %s (%s)", self.vcs, self.local_dir)
            return self
        try:
            self.apply_description(data, workspace_constants)
        except ConfigError as e:
            raise ConfigError(f"{self.description_file}: {e}") from e
        return self

    def apply_description(
        self, data: Mapping[str, Any],
        workspace_constants: Mapping[str, Any] | None = None,
    ) -> None:
        """应用已读取的描述（也供测试直接构造来源使用）"""
        data = dict(data)
        if "name" in data:
            validate_source_name(str(data["name"]))
        self.description = data
        self.constants = resolve_constants(data.get("constants") or {}, workspace_constants)
        self.version_control = parse_rules(data.get("version_control"), "version_control")
        self.overrides = parse_rules(data.get("overrides"), "overrides")
        self.package_entries = _parse_package_entries(data.get("packages"))

    # ---- VCS 规则 ----

    def version_control_for(self, package_name: str) -> dict[str, Any] | None:
        """本来源 version_control 段对该包给出的（未展开）定义"""
        return merge_matching(self.version_control, package_name)

    def overrides_for(self, package_name: str) -> dict[str, Any] | None:
        """本来源 overrides 段对该包给出的（未展开）覆盖"""
        return merge_matching(self.overrides, package_name)

    def __repr__(self) -> str:
        return f"Source({self.name!r}, {self.vcs})"


class LocalSource(Source):
    """工作空间覆盖层: 配置目录下的 overrides.yml"""

    def __init__(self, config_dir: str | Path) -> None:
        config_dir = Path(config_dir)
        super().__init__(
            VCSDefinition(type=LOCAL_TYPE, url=str(config_dir)),
            remotes_dir=config_dir,
            name=LOCAL_SOURCE_NAME,
        )

    @property
    def name(self) -> str:
        return LOCAL_SOURCE_NAME

    @property
    def description_file(self) -> Path:
        return self.local_dir / OVERRIDES_FILE

    def raw_description(self) -> dict[str, Any] | None:
        if not self.description_file.is_file():
            return {}
        data = load_config_yaml(self.description_file)
        data.pop("name", None)
        return data

    def load_description(self, workspace_constants: Mapping[str, Any] | None = None) -> Source:
        data = self.raw_description() or {}
        try:
            self.apply_description(data, workspace_constants)
        except ConfigError as e:
            raise ConfigError(f"{self.description_file}: {e}") from e
        return self


def _parse_package_entries(raw: Any) -> list[dict[str, Any]]:
    """packages 段: 包名字符串，或 {name, srcdir, os_packages} 映射"""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("packages 段格式错误: 应为列表")
    entries: list[dict[str, Any]] = []
    for item in raw:
        if isinstance(item, str):
            entries.append({"name": item})
        elif isinstance(item, dict) and item.get("name"):
            entries.append(dict(item))
        else:
            raise ConfigError(f"packages 段中的条目无效: {item!r}")
    return entries


def source_index(sources: list[Source], source: Source) -> int:
    """来源在有序列表中的位置"""
    for i, candidate in enumerate(sources):
        if candidate is source or candidate.name == source.name:
            return i
    raise InternalError(f"来源 {source.name} 不在工作空间的来源列表中")
