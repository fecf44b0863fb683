"""Git 导入器

选项:
  branch / tag / commit   检出目标（优先级 commit > tag > branch）
  interactive             是否必须在主线程交互执行
缓存目录中存在同名镜像（<cache>/git/<包名>）时，clone 使用 --reference。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from repoweave.core.exceptions import ConfigError, ExecutionError, InteractionRequired
from repoweave.services.importers.base import BaseImporter

if TYPE_CHECKING:
    from repoweave.core.models import Package

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")
# git 在禁止终端提示时需要凭据会输出这些信息
_PROMPT_MARKERS = (
    "terminal prompts disabled",
    "could not read Username",
    "could not read Password",
    "Host key verification failed",
)
NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
}


class GitImporter(BaseImporter):
    """git clone / fetch + checkout"""

    type_name = "git"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        for key in ("branch", "tag", "commit"):
            ref = self.options.get(key)
            if ref and not _SAFE_REF_RE.match(str(ref)):
                raise ConfigError(f"git {key} 包含非法字符: {ref}")

    @property
    def target(self) -> str:
        """要检出的引用"""
        if self.options.get("commit"):
            return str(self.options["commit"])
        if self.options.get("tag"):
            return str(self.options["tag"])
        return f"origin/{self.branch}"

    @property
    def branch(self) -> str:
        return str(self.options.get("branch") or "master")

    def _git(self, args: list[str], *, cwd: str, allow_interactive: bool) -> str:
        env = None if allow_interactive else dict(NON_INTERACTIVE_ENV)
        r = self.executor.execute(
            ["git", *args], cwd=cwd, env=env, interactive=allow_interactive,
        )
        if r.success:
            return r.stdout
        if not allow_interactive and any(m in r.stderr for m in _PROMPT_MARKERS):
            raise InteractionRequired(f"git {args[0]} 需要交互: {self.url}")
        raise ExecutionError(f"git {args[0]} 失败 (rc={r.returncode}): {r.stderr.strip()[:300]}")

    def reference_dir(self, package: Package) -> Path | None:
        if self.cache_dir is None:
            return None
        mirror = self.cache_dir / "git" / package.name
        return mirror if mirror.is_dir() else None

    def _do_import(self, package: Package, *, allow_interactive: bool) -> None:
        importdir = Path(package.importdir)
        if (importdir / ".git").exists():
            self._update(importdir, allow_interactive)
        else:
            self._checkout(package, importdir, allow_interactive)
        logger.info("Git 就绪: %s -> %s (%s)", package.name, importdir, self.target)

    def _checkout(self, package: Package, importdir: Path, allow_interactive: bool) -> None:
        importdir.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        reference = self.reference_dir(package)
        if reference is not None:
            args += ["--reference", str(reference)]
        if not self.options.get("commit") and not self.options.get("tag"):
            args += ["--branch", self.branch]
        args += [self.url, str(importdir)]
        self._git(args, cwd=str(importdir.parent), allow_interactive=allow_interactive)
        if self.options.get("commit") or self.options.get("tag"):
            self._git(["checkout", "--detach", self.target],
                      cwd=str(importdir), allow_interactive=allow_interactive)

    def _update(self, importdir: Path, allow_interactive: bool) -> None:
        cwd = str(importdir)
        self._git(["fetch", "--tags", "origin"], cwd=cwd, allow_interactive=allow_interactive)
        if self.options.get("commit") or self.options.get("tag"):
            self._git(["checkout", "--detach", self.target],
                      cwd=cwd, allow_interactive=allow_interactive)
            return
        self._git(["checkout", self.branch], cwd=cwd, allow_interactive=allow_interactive)
        self._git(["merge", "--ff-only", self.target], cwd=cwd, allow_interactive=allow_interactive)
