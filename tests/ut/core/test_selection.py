"""选择项展开"""

from __future__ import annotations

from pathlib import Path

import pytest

from repoweave.core.exceptions import ExcludedSelectionError, PackageNotFoundError
from repoweave.core.manifest import Manifest
from repoweave.core.selection import PackageSelection, SelectionExpander


@pytest.fixture
def manifest(make_manifest, new_source, define_package) -> Manifest:
    tools = new_source("tools")
    manifest = make_manifest(
        {"layout": ["base/types", {"drivers": ["drivers/imu", "drivers/gps"]}]},
        sources=[new_source("main"), tools],
    )
    for name in ("base/types", "base/logging", "drivers/imu", "drivers/gps"):
        define_package(manifest, name)
    define_package(manifest, "tools/cmake", source=tools)
    return manifest


def _expand(manifest: Manifest, *tokens: str, weak: bool = False) -> PackageSelection:
    return SelectionExpander(manifest).expand(tokens, weak=weak)


class TestMatching:
    def test_exact_name(self, manifest: Manifest) -> None:
        assert _expand(manifest, "base/types").package_names == {"base/types"}

    def test_regex_full_match(self, manifest: Manifest) -> None:
        assert _expand(manifest, "base/.*").package_names == {"base/types", "base/logging"}

    def test_plain_token_is_not_a_substring_match(self, manifest: Manifest) -> None:
        with pytest.raises(PackageNotFoundError, match="types"):
            _expand(manifest, "types")

    def test_source_name(self, manifest: Manifest) -> None:
        selection = _expand(manifest, "tools")
        assert selection.package_names == {"tools/cmake"}

    def test_layout_path(self, manifest: Manifest) -> None:
        assert _expand(manifest, "/drivers/").package_names == {"drivers/imu", "drivers/gps"}
        assert _expand(manifest, "drivers").package_names == {"drivers/imu", "drivers/gps"}

    def test_srcdir(self, manifest: Manifest) -> None:
        assert _expand(manifest, str(manifest.root_dir / "base")).package_names == {
            "base/types", "base/logging",
        }

    def test_relative_srcdir_against_root(self, manifest: Manifest) -> None:
        assert _expand(manifest, "base/logging/").package_names == {"base/logging"}

    def test_tokens_kept_separately(self, manifest: Manifest) -> None:
        selection = _expand(manifest, "base/types", "base/.*")
        assert dict(selection.each()) == {
            "base/types": {"base/types"},
            "base/.*": {"base/types", "base/logging"},
        }


class TestNotFound:
    def test_all_unmatched_strong_tokens_reported(self, manifest: Manifest) -> None:
        with pytest.raises(PackageNotFoundError, match="nope, ghost"):
            _expand(manifest, "nope", "base/types", "ghost")

    def test_weak_tokens_dropped_silently(self, manifest: Manifest) -> None:
        selection = _expand(manifest, "nope", "base/types", weak=True)
        assert selection.package_names == {"base/types"}
        assert selection.weak_tokens == {"base/types"}


class TestExcludedAndIgnored:
    def test_excluded_packages_removed(self, manifest: Manifest) -> None:
        manifest.exclude_package("base/logging", "broken")
        assert _expand(manifest, "base/.*").package_names == {"base/types"}

    def test_ignored_packages_removed(self, manifest: Manifest) -> None:
        manifest.ignore_package("drivers/gps")
        assert _expand(manifest, "drivers").package_names == {"drivers/imu"}

    def test_single_excluded_package(self, manifest: Manifest) -> None:
        manifest.exclude_package("base/types", "broken")
        with pytest.raises(ExcludedSelectionError) as exc_info:
            _expand(manifest, "base/types")

        err = exc_info.value
        assert str(err) == (
            "base/types is selected in the manifest or on the command line, "
            "but it expands to base/types, which is excluded from the build: broken"
        )
        assert err.selection == "base/types"
        assert err.package == "base/types"
        assert err.reason == "broken"

    def test_all_matches_excluded(self, manifest: Manifest) -> None:
        manifest.exclude_package("base/types", "r1")
        manifest.exclude_package("base/logging", "r2")
        with pytest.raises(ExcludedSelectionError, match="which are all excluded from the build") as exc_info:
            _expand(manifest, "base/.*")
        assert "base/logging: r2" in str(exc_info.value)

    def test_chained_exclusion_reported_first(self, manifest: Manifest) -> None:
        manifest.exclude_package("base/logging", "r (dependency chain: base/logging>x)", chain=["base/logging", "x"])
        manifest.exclude_package("base/types", "r2")
        with pytest.raises(ExcludedSelectionError) as exc_info:
            _expand(manifest, "base/.*")
        assert exc_info.value.package == "base/logging"
        assert exc_info.value.chain == ["base/logging", "x"]

    def test_weak_selection_of_excluded_still_raises(self, manifest: Manifest) -> None:
        manifest.exclude_package("tools/cmake", "broken")
        with pytest.raises(ExcludedSelectionError):
            _expand(manifest, "tools", weak=True)


class TestPackageSelection:
    def test_empty(self) -> None:
        assert PackageSelection().package_names == set()

    def test_check_excluded_restricted_to_names(self, manifest: Manifest) -> None:
        selection = PackageSelection()
        selection.select("a", ["base/types"])
        selection.select("b", ["drivers/imu"])
        manifest.exclude_package("base/types", "broken")

        selection.check_excluded(manifest, ["drivers/imu"])
        with pytest.raises(ExcludedSelectionError):
            selection.check_excluded(manifest, ["base/types"])

    def test_filter_keeps_remaining_matches(self, manifest: Manifest) -> None:
        selection = PackageSelection()
        selection.select("tools", ["tools/cmake", "base/types"])
        manifest.exclude_package("base/types", "broken")
        selection.filter_excluded_and_ignored_packages(manifest)

        assert dict(selection.each()) == {"tools": {"tools/cmake"}}


def test_srcdir_token_outside_root(manifest: Manifest, tmp_path: Path) -> None:
    with pytest.raises(PackageNotFoundError):
        _expand(manifest, str(tmp_path / "elsewhere"))
