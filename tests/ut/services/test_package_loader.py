"""manifest.xml 加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from repoweave.core.exceptions import ConfigError
from repoweave.core.models import Package
from repoweave.services.package_loader import XmlManifestLoader


def _package(tmp_path: Path, xml: str | None) -> Package:
    srcdir = tmp_path / "pkg"
    srcdir.mkdir()
    if xml is not None:
        (srcdir / "manifest.xml").write_text(xml)
    return Package(name="pkg", srcdir=str(srcdir))


class TestXmlManifestLoader:
    def test_dependencies_and_os_packages(self, tmp_path: Path) -> None:
        pkg = _package(tmp_path, """
            <package>
              <depend package="base/types"/>
              <depend package="base/logging"/>
              <depend package="base/types"/>
              <rosdep name="boost"/>
              <osdep name="cmake"/>
            </package>
        """)
        manifest = XmlManifestLoader().load(pkg)
        assert manifest.dependencies == ["base/types", "base/logging"]
        assert manifest.os_packages == ["boost", "cmake"]
        assert manifest.path.endswith("manifest.xml")

    def test_missing_file(self, tmp_path: Path) -> None:
        assert XmlManifestLoader().load(_package(tmp_path, None)) is None

    def test_parse_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="解析失败"):
            XmlManifestLoader().load(_package(tmp_path, "<package>"))

    @pytest.mark.parametrize("xml, message", [
        ("<package><depend/></package>", "缺少 package 属性"),
        ("<package><rosdep/></package>", "缺少 name 属性"),
    ])
    def test_missing_attributes(self, tmp_path: Path, xml: str, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            XmlManifestLoader().load(_package(tmp_path, xml))
