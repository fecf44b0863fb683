"""日志配置

默认输出人类可读文本到 stderr；CI 中可切换为每行一个 JSON 对象。
环境变量 REPOWEAVE_LOG_LEVEL / REPOWEAVE_LOG_JSON 控制 CLI 的默认行为。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

LEVEL_ENV = "REPOWEAVE_LOG_LEVEL"
JSON_ENV = "REPOWEAVE_LOG_JSON"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    字段: timestamp, level, logger, message, thread, module, line，
    有异常时附加 exception。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            # 事件发生时间，而非格式化时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            # 导入在工作线程中进行，线程名有助于区分通道
            "thread": record.threadName,
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器（会先清理已有 handlers，避免重复输出）

    参数:
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        json_output: 是否使用 JSON 格式
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        fmt = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)


def setup_logging_from_env(default_level: str = "INFO") -> None:
    """按环境变量配置日志"""
    json_output = os.environ.get(JSON_ENV, "").lower() in ("1", "true", "yes")
    setup_logging(os.environ.get(LEVEL_ENV, default_level), json_output=json_output)


def reset_logging() -> None:
    """移除根日志器上的全部 handlers（测试中重新配置前调用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
