"""包清单加载（<srcdir>/manifest.xml）

    <package>
      <depend package="base/types"/>
      <rosdep name="boost"/>
    </package>

<depend> 给出依赖包名，<rosdep>/<osdep> 给出系统包名。
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ConfigError
from repoweave.core.models import PackageManifest

if TYPE_CHECKING:
    from repoweave.core.models import Package

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.xml"


class XmlManifestLoader:
    """读取包目录下的 manifest.xml"""

    def __init__(self, filename: str = MANIFEST_FILE) -> None:
        self.filename = filename

    def load(self, package: Package) -> PackageManifest | None:
        path = Path(package.srcdir) / self.filename
        if not path.is_file():
            logger.warning("%s 没有 %s，视为无依赖", package.name, self.filename)
            return None
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as e:
            raise ConfigError(f"{path} 解析失败: {e}") from e

        dependencies: list[str] = []
        for node in root.iter("depend"):
            name = node.get("package")
            if not name:
                raise ConfigError(f"{path}: <depend> 缺少 package 属性")
            dependencies.append(name)

        os_packages = [
            node.get("name", "")
            for tag in ("rosdep", "osdep")
            for node in root.iter(tag)
        ]
        if "" in os_packages:
            raise ConfigError(f"{path}: <rosdep>/<osdep> 缺少 name 属性")

        return PackageManifest(
            package_name=package.name,
            dependencies=list(dict.fromkeys(dependencies)),
            os_packages=list(dict.fromkeys(os_packages)),
            path=str(path),
        )
