"""
数据库层模块
提供配置、数据库连接管理和 ORM 模型定义
"""

from db.config import StoreConfig, config
from db.database import DatabaseManager, get_database_manager, close_database
from db.models import (
    Base,
    Account,
    AccountDelegate,
    AccountUnconfirmedDelegate,
    AccountMultisignature,
    AccountUnconfirmedMultisignature,
    Round,
    Block,
    ForkStat,
    DEPENDENCY_MODELS,
)

__all__ = [
    # Config
    "StoreConfig",
    "config",
    # Database Manager
    "DatabaseManager",
    "get_database_manager",
    "close_database",
    # ORM Models
    "Base",
    "Account",
    "AccountDelegate",
    "AccountUnconfirmedDelegate",
    "AccountMultisignature",
    "AccountUnconfirmedMultisignature",
    "Round",
    "Block",
    "ForkStat",
    "DEPENDENCY_MODELS",
]
