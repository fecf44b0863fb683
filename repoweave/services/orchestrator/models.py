"""编排器运行期状态"""

from __future__ import annotations

from dataclasses import dataclass, field

from repoweave.core.models import ImportOptions, ImportResult, ImportState, Package


@dataclass
class ImportRun:
    """一次 import_selected_packages 调用的可变状态（只在主线程修改）"""

    options: ImportOptions
    processed: set[str] = field(default_factory=set)
    failures: list[Exception] = field(default_factory=list)
    states: dict[str, ImportState] = field(default_factory=dict)
    revdeps: dict[str, set[str]] = field(default_factory=dict)
    succeeded: set[str] = field(default_factory=set)
    installed_vcs: set[str] = field(default_factory=set)
    stopped: bool = False

    def seen(self, name: str) -> bool:
        return name in self.states

    def mark(self, name: str, state: ImportState) -> None:
        self.states[name] = state

    def to_result(self) -> ImportResult:
        return ImportResult(
            processed=set(self.processed),
            failures=list(self.failures),
            states=dict(self.states),
        )


@dataclass
class Wave:
    """一轮广度优先导入"""

    index: int
    to_import: list[Package] = field(default_factory=list)
    # 无导入器但已在磁盘上的包: 不导入，直接进入后处理
    passthrough: list[Package] = field(default_factory=list)
    interactive: list[Package] = field(default_factory=list)
    non_interactive: list[Package] = field(default_factory=list)

    def split_lanes(self) -> None:
        self.interactive = [p for p in self.to_import if p.interactive]
        self.non_interactive = [p for p in self.to_import if not p.interactive]
