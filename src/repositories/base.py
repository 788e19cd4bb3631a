"""
Repository 基类

提供所有 Repository 的公共接口、语句执行辅助方法和异常定义。
语句统一通过 SQLAlchemy 表达式构建；仅 list() 的 extra_condition
作为调用方显式传入的原始谓词片段。
"""

from abc import ABC
from typing import TypeVar, Generic, Optional, List, Any, Dict, Type

from sqlalchemy import select, func
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.engine import Result
from sqlalchemy.sql import Executable

from db.models import Base
from utils.logger import get_logger

logger = get_logger("ChainState")


# 泛型类型变量
T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Repository 抽象基类

    职责：
    - 持有调用方提供的 Session（事务边界由 DatabaseManager.session() 决定）
    - 统一语句执行与存储层异常转换
    - 提供四种调用约定：无结果 / 单行 / 多行 / 标量

    使用方式：
        class AccountsRepository(BaseRepository[Account]):
            def __init__(self, session: AsyncSession):
                super().__init__(session, Account)
    """

    def __init__(self, session: AsyncSession, model_class: Type[T]):
        """
        初始化 Repository

        Args:
            session: SQLAlchemy 异步 Session
            model_class: ORM 模型类
        """
        self._session = session
        self._model_class = model_class

    @property
    def session(self) -> AsyncSession:
        """获取当前 Session"""
        return self._session

    @property
    def model_class(self) -> Type[T]:
        """获取模型类"""
        return self._model_class

    @property
    def db_table(self) -> str:
        """模型对应的表名"""
        return self._model_class.__tablename__

    async def count(self) -> int:
        """
        获取表中记录总数

        Returns:
            记录数量
        """
        return await self._scalar(select(func.count()).select_from(self._model_class))

    # ========================================
    # 语句执行
    # ========================================

    async def _execute(self, statement: Executable) -> Result:
        """
        执行语句，将驱动层异常转换为 StoreError

        Raises:
            StoreError: 存储层执行失败（约束冲突、语法错误等）
        """
        try:
            return await self._session.execute(statement)
        except DBAPIError as e:
            logger.error(f"{self.db_table}: statement failed: {e.orig}")
            raise StoreError(e) from e

    async def _none(self, statement: Executable) -> int:
        """执行不返回行的语句，返回受影响行数"""
        result = await self._execute(statement)
        return result.rowcount

    async def _one(self, statement: Executable) -> Dict[str, Any]:
        """执行必须恰好返回一行的语句"""
        result = await self._execute(statement)
        return dict(result.mappings().one())

    async def _any(self, statement: Executable) -> List[Dict[str, Any]]:
        """执行返回任意行数的语句"""
        result = await self._execute(statement)
        return [dict(row) for row in result.mappings().all()]

    async def _scalar(self, statement: Executable) -> Any:
        """执行返回单个标量的语句"""
        result = await self._execute(statement)
        return result.scalar_one()


# ============================================================
# 异常定义
# ============================================================

class RepositoryError(Exception):
    """Repository 层异常基类"""


class ValidationError(RepositoryError):
    """
    必填字段缺失
    """
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Property '{field}' doesn't exist.")


class UnknownFieldError(RepositoryError):
    """
    引用了列集合之外的字段（过滤、排序、增减操作）
    """
    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Unknown field provided: {field}")


class ColumnNotFoundError(UnknownFieldError):
    """
    排序字段不存在
    """
    def __init__(self, field: str):
        super().__init__(field, f'column "{field}" does not exist')


class InvalidArgumentError(RepositoryError):
    """
    调用参数不合法（冲突字段为空、依赖类型未知等）
    """


class InvalidKeyError(InvalidArgumentError):
    """
    主键参数为空
    """


class StoreError(RepositoryError):
    """
    存储层执行失败

    消息保持驱动原文，原始异常通过 orig 和 __cause__ 保留。
    """
    def __init__(self, error: DBAPIError):
        self.orig = error.orig
        super().__init__(str(error.orig))
