"""
数据访问层模块 (Repository Layer)

以列集合声明驱动语句构建，遵循 Repository 模式。
"""

from repositories.base import (
    BaseRepository,
    RepositoryError,
    ValidationError,
    UnknownFieldError,
    ColumnNotFoundError,
    InvalidArgumentError,
    InvalidKeyError,
    StoreError,
)
from repositories.columns import ColumnSpec, ColumnSet
from repositories.filters import FilterTranslator
from repositories.accounts_repo import AccountsRepository, ACCOUNT_COLUMNS
from repositories.delegates_repo import DelegatesRepository

__all__ = [
    "BaseRepository",
    "RepositoryError",
    "ValidationError",
    "UnknownFieldError",
    "ColumnNotFoundError",
    "InvalidArgumentError",
    "InvalidKeyError",
    "StoreError",
    "ColumnSpec",
    "ColumnSet",
    "FilterTranslator",
    "AccountsRepository",
    "ACCOUNT_COLUMNS",
    "DelegatesRepository",
]
