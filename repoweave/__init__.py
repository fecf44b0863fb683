"""repoweave - 多仓库工作空间同步引擎"""

__version__ = "0.4.0"
