"""
数据库访问层工具模块

- 日志管理：setup_logging / get_logger / set_log_level
- 路径处理：PathHelper，跨平台配置目录定位
"""

from .logging_utils import (
    get_logger,
    set_log_level,
    setup_logging,
    setup_logging_from_config,
)
from .path_utils import PathHelper

__all__ = [
    # ==================== 日志管理模块 ====================
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "set_log_level",
    # ==================== 路径处理模块 ====================
    "PathHelper",
]
