"""导入器单元测试（git / archive / local / 注册表）"""

from __future__ import annotations

import tarfile
from pathlib import Path

import pytest

from repoweave.core.exceptions import ConfigError, ImportFailure, InteractionRequired
from repoweave.core.models import Package
from repoweave.core.vcs import VCSDefinition
from repoweave.services.importers import default_registry
from repoweave.services.importers.archive import STAMP_FILE, ArchiveImporter
from repoweave.services.importers.base import LocalImporter
from repoweave.services.importers.git import NON_INTERACTIVE_ENV, GitImporter
from repoweave.utils.shell import CommandResult

URL = "https://example.com/pkg.git"


def _git(executor, cache_dir=None, **options) -> GitImporter:
    return GitImporter(
        VCSDefinition(type="git", url=URL, options=options), URL,
        executor=executor, cache_dir=cache_dir,
    )


@pytest.fixture
def package(tmp_path: Path) -> Package:
    return Package(name="pkg", srcdir=str(tmp_path / "src" / "pkg"))


# =========================================================================
# git
# =========================================================================


class TestGitCheckout:
    def test_clone_branch(self, fake_executor, package: Package) -> None:
        _git(fake_executor, branch="stable").import_package(package, allow_interactive=False)

        assert fake_executor.commands == [
            ["git", "clone", "--branch", "stable", URL, package.importdir],
        ]
        call = fake_executor.calls[0]
        assert call["cwd"] == str(Path(package.importdir).parent)
        assert call["env"] == NON_INTERACTIVE_ENV
        assert call["interactive"] is False

    def test_default_branch(self, fake_executor) -> None:
        assert _git(fake_executor).target == "origin/master"

    def test_tag_detached_after_clone(self, fake_executor, package: Package) -> None:
        _git(fake_executor, tag="v1.0").import_package(package, allow_interactive=False)

        assert fake_executor.commands == [
            ["git", "clone", URL, package.importdir],
            ["git", "checkout", "--detach", "v1.0"],
        ]

    def test_commit_wins_over_tag(self, fake_executor) -> None:
        assert _git(fake_executor, tag="v1.0", commit="abc123").target == "abc123"

    def test_reference_mirror_used(self, fake_executor, package: Package, tmp_path: Path) -> None:
        mirror = tmp_path / "cache" / "git" / "pkg"
        mirror.mkdir(parents=True)
        _git(fake_executor, cache_dir=tmp_path / "cache").import_package(package, allow_interactive=False)

        assert fake_executor.commands[0][:4] == ["git", "clone", "--reference", str(mirror)]

    def test_interactive_inherits_terminal(self, fake_executor, package: Package) -> None:
        _git(fake_executor).import_package(package, allow_interactive=True)
        assert fake_executor.calls[0]["env"] is None
        assert fake_executor.calls[0]["interactive"] is True

    def test_unsafe_ref_rejected(self, fake_executor) -> None:
        with pytest.raises(ConfigError, match="非法字符"):
            _git(fake_executor, branch="main; rm -rf /")


class TestGitUpdate:
    def test_fetch_then_fast_forward(self, fake_executor, package: Package) -> None:
        (Path(package.importdir) / ".git").mkdir(parents=True)
        _git(fake_executor).import_package(package, allow_interactive=False)

        assert fake_executor.commands == [
            ["git", "fetch", "--tags", "origin"],
            ["git", "checkout", "master"],
            ["git", "merge", "--ff-only", "origin/master"],
        ]
        assert {c["cwd"] for c in fake_executor.calls} == {package.importdir}

    def test_commit_checked_out_detached(self, fake_executor, package: Package) -> None:
        (Path(package.importdir) / ".git").mkdir(parents=True)
        _git(fake_executor, commit="abc123").import_package(package, allow_interactive=False)

        assert fake_executor.commands[-1] == ["git", "checkout", "--detach", "abc123"]


class TestGitErrors:
    def test_prompt_requires_interaction(self, fake_executor, package: Package) -> None:
        fake_executor.handler = lambda _cmd: CommandResult(
            128, "", "fatal: could not read Username for 'https://example.com'",
        )
        importer = _git(fake_executor)
        importer.retry_count = 3

        with pytest.raises(InteractionRequired):
            importer.import_package(package, allow_interactive=False)
        assert len(fake_executor.commands) == 1

    def test_failure_retried_then_wrapped(self, fake_executor, package: Package) -> None:
        fake_executor.handler = lambda _cmd: CommandResult(1, "", "network unreachable")
        importer = _git(fake_executor)
        importer.retry_count = 2

        with pytest.raises(ImportFailure, match="network unreachable") as exc_info:
            importer.import_package(package, allow_interactive=False)
        assert exc_info.value.package_name == "pkg"
        assert len(fake_executor.commands) == 3

    def test_transient_failure_recovers(self, fake_executor, package: Package) -> None:
        results = [CommandResult(1, "", "timeout")]
        fake_executor.handler = lambda _cmd: results.pop() if results else None
        importer = _git(fake_executor)
        importer.retry_count = 1

        importer.import_package(package, allow_interactive=False)
        assert len(fake_executor.commands) == 2


# =========================================================================
# archive
# =========================================================================


def _make_tarball(path: Path, top: str = "pkg-1.0") -> Path:
    content = path.parent / "content"
    (content / top).mkdir(parents=True)
    (content / top / "CMakeLists.txt").write_text("project(pkg)\n")
    with tarfile.open(path, "w:gz") as tf:
        tf.add(content / top, arcname=top)
    return path


class TestArchiveImporter:
    def _importer(self, url: str, cache_dir: Path | None = None, **options) -> ArchiveImporter:
        return ArchiveImporter(
            VCSDefinition(type="archive", url=url, options=options), url, cache_dir=cache_dir,
        )

    def test_extract_archive_dir(self, tmp_path: Path, package: Package) -> None:
        tarball = _make_tarball(tmp_path / "dl" / "pkg-1.0.tar.gz")
        importer = self._importer(str(tarball), archive_dir="pkg-1.0")
        importer.import_package(package, allow_interactive=False)

        importdir = Path(package.importdir)
        assert (importdir / "CMakeLists.txt").is_file()
        assert (importdir / STAMP_FILE).read_text().strip() == str(tarball)
        assert importer.cachefile(package) == importdir.parent / ".archives" / "pkg-1.0.tar.gz"
        assert importer.cachefile(package).is_file()

    def test_unchanged_url_not_extracted_again(self, tmp_path: Path, package: Package) -> None:
        tarball = _make_tarball(tmp_path / "dl" / "pkg.tgz")
        importer = self._importer(str(tarball), archive_dir="pkg-1.0")
        importer.import_package(package, allow_interactive=False)
        marker = Path(package.importdir) / "local-change"
        marker.write_text("keep")

        importer.import_package(package, allow_interactive=False)
        assert marker.is_file()

    def test_missing_archive_dir(self, tmp_path: Path, package: Package) -> None:
        tarball = _make_tarball(tmp_path / "dl" / "pkg.tgz")
        with pytest.raises(ImportFailure, match="不存在目录"):
            self._importer(str(tarball), archive_dir="other").import_package(package, allow_interactive=False)

    def test_cache_dir_and_filename_option(self, tmp_path: Path, package: Package) -> None:
        importer = self._importer("https://e.com/dl?id=1", cache_dir=tmp_path / "cache", filename="pkg.tar.gz")
        assert importer.cachefile(package) == tmp_path / "cache" / "archives" / "pkg.tar.gz"

    def test_disallowed_scheme(self, tmp_path: Path, package: Package) -> None:
        importer = self._importer("file:///etc/passwd")
        with pytest.raises(ConfigError, match="不允许的 URL 协议"):
            importer.import_package(package, allow_interactive=False)


# =========================================================================
# local / 注册表
# =========================================================================


class TestLocalImporter:
    def test_existing_directory(self, tmp_path: Path, package: Package) -> None:
        LocalImporter(VCSDefinition(type="local", url=str(tmp_path)), str(tmp_path)).import_package(
            package, allow_interactive=False,
        )

    def test_missing_directory(self, tmp_path: Path, package: Package) -> None:
        missing = str(tmp_path / "missing")
        with pytest.raises(ImportFailure, match="本地目录不存在"):
            LocalImporter(VCSDefinition(type="local", url=missing), missing).import_package(
                package, allow_interactive=False,
            )


class TestRegistry:
    def test_builtin_types(self, fake_executor) -> None:
        assert default_registry(fake_executor).known_types() == {"git", "archive", "local"}

    def test_none_type_has_no_importer(self, fake_executor, tmp_path: Path) -> None:
        assert default_registry(fake_executor).create(VCSDefinition(type="none"), tmp_path) is None

    def test_unknown_type(self, fake_executor, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="未知的版本控制类型: svn"):
            default_registry(fake_executor).create(VCSDefinition(type="svn", url="u"), tmp_path)

    def test_relative_url_resolved_against_root(self, fake_executor, tmp_path: Path) -> None:
        importer = default_registry(fake_executor, tmp_path / "cache").create(
            VCSDefinition(type="git", url="mirrors/pkg.git", options={"interactive": True}), tmp_path,
        )
        assert isinstance(importer, GitImporter)
        assert importer.url == str((tmp_path / "mirrors/pkg.git").resolve())
        assert importer.interactive
        assert importer.cache_dir == tmp_path / "cache"
        assert importer.executor is fake_executor
