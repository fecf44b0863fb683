"""统一异常体系

所有业务异常继承 RepoweaveError，CLI 层可据此输出友好提示。

分类:
- ConfigError / PackageNotFoundError: 配置错误，立即抛出，不重试
- ExcludedSelectionError: 显式选择的包落入排除范围
- InternalError: 一致性破坏（调用方的工作空间装配有误）
- InteractionRequired: 控制信号，非真正失败（导入需转入交互通道）
- ImportFailure / ImportFailedError: 导入或清单加载失败，按 keep_going 策略收集
"""

from __future__ import annotations


class RepoweaveError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(RepoweaveError):
    """配置文件缺失或内容无效（VCS 定义、常量、规则语法等）"""

    code = "CONFIG_ERROR"


class PackageNotFoundError(ConfigError):
    """指定的包或包集合不存在"""

    code = "PACKAGE_NOT_FOUND"


class ExcludedSelectionError(RepoweaveError):
    """选择项展开后的包全部被排除"""

    code = "EXCLUDED_SELECTION"

    def __init__(
        self, message: str, *,
        selection: str,
        package: str,
        chain: list[str] | None = None,
        reason: str = "",
    ) -> None:
        super().__init__(message)
        self.selection = selection
        self.package = package
        self.chain = chain or [package]
        self.reason = reason


class InternalError(RepoweaveError):
    """内部一致性错误，例如已注册的包没有所属来源"""

    code = "INTERNAL_ERROR"


class InteractionRequired(RepoweaveError):
    """导入需要用户交互（凭据/确认），应在主线程重试"""

    code = "INTERACTION_REQUIRED"


class ImportFailure(RepoweaveError):
    """单个包的导入或清单加载失败"""

    code = "IMPORT_FAILURE"

    def __init__(self, package_name: str, message: str) -> None:
        super().__init__(f"{package_name}: {message}")
        self.package_name = package_name


class ImportFailedError(RepoweaveError):
    """导入结束后仍存在失败（keep_going=False 时由顶层操作抛出）"""

    code = "IMPORT_FAILED"

    def __init__(self, failures: list[Exception]) -> None:
        lines = [str(e) or type(e).__name__ for e in failures]
        super().__init__(
            f"{len(failures)} 个包导入失败:\n  " + "\n  ".join(lines)
        )
        self.failures = failures


class ExecutionError(RepoweaveError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"
