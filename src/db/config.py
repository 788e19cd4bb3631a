"""
存储层配置

包含数据库连接、日志、列表查询默认值等配置项。
"""

from typing import Optional
from pydantic_settings import BaseSettings


class StoreConfig(BaseSettings):
    """
    存储配置类

    可通过环境变量覆盖配置项（前缀 CHAINSTATE_）。
    """

    # 数据库配置
    DATABASE_URL: str = "sqlite+aiosqlite:///data/chainstate.db"
    DATABASE_ECHO: bool = False  # 打印 SQL（调试用）

    # 日志配置
    DEBUG: bool = False
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    # 列表查询
    DEFAULT_SORT_METHOD: str = "DESC"
    MAX_LIST_LIMIT: Optional[int] = None  # None 表示不限制

    class Config:
        env_prefix = "CHAINSTATE_"
        case_sensitive = False


# 全局配置实例
config = StoreConfig()
