"""
工具模块
提供日志等基础功能
"""

from .logger import (
    Logger,
    get_logger,
    set_global_debug,
)

__all__ = [
    'Logger',
    'get_logger',
    'set_global_debug',
]

# 版本信息
__version__ = '0.1.0'
