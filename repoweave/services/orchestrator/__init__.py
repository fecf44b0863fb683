"""导入编排

- models.py: 运行期状态（ImportRun / Wave）
- orchestrator.py: 波次调度、双通道并发、失败策略与 finalize
"""

from repoweave.services.orchestrator.models import ImportRun, Wave
from repoweave.services.orchestrator.orchestrator import ImportOrchestrator

__all__ = [
    "ImportOrchestrator",
    "ImportRun",
    "Wave",
]
