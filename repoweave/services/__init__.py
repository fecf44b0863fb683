"""服务层: 导入器、编排器、缓存、系统包与工作空间上下文"""
