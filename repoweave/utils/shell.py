"""子进程调用

通过 CommandExecutor 协议抽象子进程执行，导入器与缓存服务只依赖协议，
测试中注入假执行器即可，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from repoweave.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议

    interactive=True 时子进程继承终端（可提示输入凭据），不捕获输出。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        interactive: bool = False,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        interactive: bool = False,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else cmd
        full_env = {**os.environ, **env} if env else None
        if interactive:
            r = subprocess.run(
                args, cwd=cwd, env=full_env, check=False, timeout=timeout,
            )
            return CommandResult(returncode=r.returncode, stdout="", stderr="")
        r = subprocess.run(
            args, capture_output=True, text=True, stdin=subprocess.DEVNULL,
            cwd=cwd, env=full_env, check=False, timeout=timeout,
        )
        return CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)


# =========================================================================
# 便捷函数
# =========================================================================

def run_cmd(
    executor: CommandExecutor,
    cmd: str | list[str], *,
    cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    interactive: bool = False,
) -> CommandResult:
    """执行命令，失败抛 ExecutionError

    参数:
        executor: 命令执行器
        cmd: 命令字符串或参数列表（env 为追加到当前环境的变量）
        label: 日志标签
    """
    shown = cmd if isinstance(cmd, str) else shlex.join(cmd)
    logger.debug("  %s: %s (cwd=%s)", label, shown, cwd)
    r = executor.execute(cmd, cwd=cwd, env=env, interactive=interactive)
    if not r.success:
        raise ExecutionError(f"{label}失败 (rc={r.returncode}): {r.stderr.strip()[:500]}")
    return r
