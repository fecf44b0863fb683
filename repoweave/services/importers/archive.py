"""压缩包导入器（.tar / .tar.gz / .tgz / .tar.bz2 / .tar.xz）

选项:
  filename      下载后保存的文件名（默认取 URL 最后一段）
  archive_dir   压缩包内作为源码根目录的子目录
下载文件缓存在 <cache>/archives 下，已解压的目录通过标记文件记录来源 URL，
URL 未变化时不重复解压。
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ImportFailure
from repoweave.services.importers.base import BaseImporter
from repoweave.utils.net import validate_url_scheme

if TYPE_CHECKING:
    from repoweave.core.models import Package

logger = logging.getLogger(__name__)

STAMP_FILE = ".repoweave-archive"


class ArchiveImporter(BaseImporter):
    """下载 + 解压"""

    type_name = "archive"

    @property
    def filename(self) -> str:
        return str(self.options.get("filename") or self.url.rstrip("/").rsplit("/", 1)[-1])

    def cachefile(self, package: Package, cache_dir: Path | None = None) -> Path:
        cache_dir = cache_dir or self.cache_dir
        if cache_dir is not None:
            return cache_dir / "archives" / self.filename
        return Path(package.importdir).parent / ".archives" / self.filename

    def update_cache(
        self, package: Package, *, force: bool = False, cache_dir: Path | None = None,
    ) -> Path:
        """确保下载文件存在于缓存中，返回其路径

        cache_dir 给出时写入该缓存目录，而不是导入器自身的缓存目录。
        """
        target = self.cachefile(package, cache_dir)
        if target.is_file() and not force:
            return target
        target.parent.mkdir(parents=True, exist_ok=True)

        local = Path(self.url)
        if local.is_file():
            shutil.copyfile(local, target)
            return target

        validate_url_scheme(self.url, context=f"archive {package.name}")
        logger.info("下载 %s -> %s", self.url, target)
        tmp = target.with_name(target.name + ".part")
        try:
            with urllib.request.urlopen(self.url, timeout=60) as resp:  # nosec B310
                tmp.write_bytes(resp.read())
        except urllib.error.URLError as e:
            tmp.unlink(missing_ok=True)
            raise OSError(f"下载失败 {self.url}: {e}") from e
        tmp.replace(target)
        return target

    def _do_import(self, package: Package, *, allow_interactive: bool) -> None:
        importdir = Path(package.importdir)
        stamp = importdir / STAMP_FILE
        if stamp.is_file() and stamp.read_text(encoding="utf-8").strip() == self.url:
            logger.debug("%s 已是最新: %s", package.name, importdir)
            return

        archive = self.update_cache(package)
        importdir.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=importdir.parent) as tmp:
            try:
                with tarfile.open(archive) as tf:
                    tf.extractall(path=Path(tmp) / "content", filter="data")  # noqa: S202
            except tarfile.TarError as e:
                raise ImportFailure(package.name, f"无法解压 {archive}: {e}") from e

            root = Path(tmp) / "content"
            if self.options.get("archive_dir"):
                root = root / str(self.options["archive_dir"])
                if not root.is_dir():
                    raise ImportFailure(
                        package.name, f"压缩包中不存在目录 {self.options['archive_dir']}",
                    )
            if importdir.exists():
                shutil.rmtree(importdir)
            shutil.move(str(root), str(importdir))
        (importdir / STAMP_FILE).write_text(self.url + "\n", encoding="utf-8")
        logger.info("压缩包已解压: %s -> %s", package.name, importdir)
