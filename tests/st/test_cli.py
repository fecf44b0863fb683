"""CLI 系统测试：在磁盘上构建完整工作空间，通过 click 调用命令"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from repoweave import __version__
from repoweave.cli import main
from repoweave.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    reset_logging()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _dump(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, allow_unicode=True))


def make_workspace(root: Path, *, broken: bool = False) -> Path:
    """工作空间: 一个本地包集合，base/types 依赖 tools/cmake，base/logging 被排除"""
    config_dir = root / "autoproj"
    packages = ["base/types", "base/logging", "tools/cmake"]
    version_control: list[dict] = [{".*": "none"}]
    if broken:
        packages.append("broken")
        version_control.append({"broken": "local:$AUTOPROJ_ROOT/missing"})

    _dump(config_dir / "manifest", {
        "package_sets": ["my_set"],
        "layout": ["my_set"],
        "exclude_packages": ["base/logging"],
    })
    _dump(config_dir / "my_set" / "source.yml", {
        "name": "my_set",
        "packages": packages,
        "version_control": version_control,
    })
    _dump(config_dir / "config.yml", {"parallel_import_level": 2})
    for name in ("base/types", "base/logging", "tools/cmake"):
        (root / name).mkdir(parents=True, exist_ok=True)
    (root / "base/types/manifest.xml").write_text('<package><depend package="tools/cmake"/></package>')
    return root


def invoke(root: Path, *args: str):
    return CliRunner().invoke(main, ["--root", str(root), *args])


class TestCli:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_list(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "list")
        assert result.exit_code == 0, result.output
        assert "base/types" in result.output
        assert "[my_set]" in result.output
        assert "排除: base/logging is listed in the exclude_packages section of the manifest" in result.output

    def test_list_empty(self, tmp_path: Path) -> None:
        _dump(tmp_path / "autoproj" / "manifest", {"package_sets": []})
        result = invoke(tmp_path, "list")
        assert result.exit_code == 0
        assert "没有已登记的包" in result.output

    def test_missing_manifest(self, tmp_path: Path) -> None:
        result = invoke(tmp_path, "list")
        assert result.exit_code == 1
        assert "[CONFIG_ERROR]" in result.output

    def test_resolve(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "resolve", "base/types")
        assert result.exit_code == 0, result.output
        assert "type: none" in result.output

    def test_resolve_local_override(self, tmp_path: Path) -> None:
        root = make_workspace(tmp_path)
        _dump(root / "autoproj" / "overrides.yml", {
            "overrides": [{"tools/cmake": {"type": "git", "url": "https://e.com/cmake.git", "branch": "next"}}],
        })
        result = invoke(root, "resolve", "tools/cmake")
        assert result.exit_code == 0, result.output
        assert yaml.safe_load(result.output) == {
            "type": "git", "url": "https://e.com/cmake.git", "branch": "next",
        }


class TestUpdate:
    def test_default_selection(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "update", "--no-osdeps")
        assert result.exit_code == 0, result.output
        assert "已处理 2 个包" in result.output

    def test_explicit_selection(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "update", "--no-osdeps", "tools/cmake")
        assert result.exit_code == 0, result.output
        assert "已处理 1 个包" in result.output

    def test_unknown_selection(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "update", "nope")
        assert result.exit_code == 1
        assert "[PACKAGE_NOT_FOUND]" in result.output

    def test_weak_unknown_selection(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "update", "--weak", "nope", "tools/cmake")
        assert result.exit_code == 0, result.output

    def test_excluded_selection(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path), "update", "base/logging")
        assert result.exit_code == 1
        assert "[EXCLUDED_SELECTION]" in result.output
        assert "which is excluded from the build" in result.output

    def test_failure_stops_run(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path, broken=True), "update", "broken")
        assert result.exit_code == 1
        assert "[IMPORT_FAILED]" in result.output
        assert "本地目录不存在" in result.output

    def test_keep_going_reports_failures(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path, broken=True), "update", "-k", "broken", "base/types")
        assert result.exit_code == 1
        assert "已处理 3 个包" in result.output
        assert "1 个包失败" in result.output

    def test_only_present(self, tmp_path: Path) -> None:
        result = invoke(make_workspace(tmp_path, broken=True), "update", "--only-present", "broken")
        assert result.exit_code == 0, result.output
        assert "已处理 0 个包" in result.output


class TestCache:
    def test_nothing_to_cache(self, tmp_path: Path) -> None:
        root = make_workspace(tmp_path / "ws")
        result = invoke(root, "cache", str(tmp_path / "cache"))
        assert result.exit_code == 0, result.output
        assert "缓存已更新" in result.output
        assert (tmp_path / "cache").is_dir()

    def test_unknown_package(self, tmp_path: Path) -> None:
        root = make_workspace(tmp_path / "ws")
        result = invoke(root, "cache", str(tmp_path / "cache"), "nope")
        assert result.exit_code == 1
        assert "no package named nope" in result.output
