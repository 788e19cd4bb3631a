"""
数据库管理器
职责：
- 管理数据库连接（支持异步）
- 提供事务上下文管理器
- 初始化数据库 schema
- 配置 SQLite pragma（WAL、外键）
"""

from pathlib import Path
from typing import Optional, AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    AsyncEngine,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from db.config import config
from utils.logger import get_logger

logger = get_logger("ChainState")


class DatabaseManager:
    """
    数据库管理器

    使用方式：
        db_manager = DatabaseManager("sqlite+aiosqlite:///data/chainstate.db")
        await db_manager.initialize()

        async with db_manager.session() as session:
            accounts = AccountsRepository(session)
            ...

    session() 负责事务边界：正常退出时提交，异常时回滚并重新抛出。
    Repository 自身从不提交。
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: Optional[bool] = None,
    ):
        """
        初始化数据库管理器

        Args:
            database_url: 数据库连接 URL，默认取 config.DATABASE_URL
                         格式: sqlite+aiosqlite:///path/to/db.sqlite
            echo: 是否打印 SQL 语句，默认取 config.DATABASE_ECHO
        """
        self.database_url = database_url or config.DATABASE_URL
        self.echo = config.DATABASE_ECHO if echo is None else echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

        logger.info(f"DatabaseManager created with URL: {self._mask_url(self.database_url)}")

    def _mask_url(self, url: str) -> str:
        """隐藏 URL 中的密码"""
        return make_url(url).render_as_string(hide_password=True)

    def _is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    def _is_memory(self) -> bool:
        database = make_url(self.database_url).database
        return not database or database == ":memory:"

    async def initialize(self) -> None:
        """
        初始化数据库
        - 创建引擎和 session 工厂
        - 配置 SQLite pragma
        - 创建所有表
        """
        if self._initialized:
            logger.debug("Database already initialized")
            return

        engine_kwargs = {"echo": self.echo}

        if self._is_sqlite():
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self._is_memory():
                # 内存库 → 必须单连接
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(make_url(self.database_url).database).parent.mkdir(
                    parents=True, exist_ok=True
                )

        self._engine = create_async_engine(self.database_url, **engine_kwargs)

        if self._is_sqlite():
            await self._configure_sqlite()

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        await self._create_tables()

        self._initialized = True
        logger.info("Database initialized successfully")

    async def _configure_sqlite(self) -> None:
        """配置 SQLite：WAL 模式 + 外键约束"""
        async with self._engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA synchronous=NORMAL"))
            await conn.execute(text("PRAGMA foreign_keys=ON"))

        logger.info("SQLite pragmas configured")

    async def _create_tables(self) -> None:
        """创建所有数据库表"""
        from db.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database tables created")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        获取数据库 session 的上下文管理器

        Yields:
            AsyncSession: 数据库会话
        """
        if not self._initialized:
            await self.initialize()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """关闭数据库连接"""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._initialized = False
            logger.info("Database connection closed")

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._initialized


# ============================================================
# 全局管理器（脚本等简单场景使用）
# ============================================================

_default_manager: Optional[DatabaseManager] = None


async def get_database_manager(
    database_url: Optional[str] = None,
    echo: Optional[bool] = None,
) -> DatabaseManager:
    """
    获取（并初始化）全局数据库管理器实例

    Args:
        database_url: 数据库连接 URL
        echo: 是否打印 SQL

    Returns:
        DatabaseManager 实例
    """
    global _default_manager

    if _default_manager is None:
        _default_manager = DatabaseManager(database_url, echo)
        await _default_manager.initialize()

    return _default_manager


async def close_database() -> None:
    """关闭全局数据库连接"""
    global _default_manager

    if _default_manager:
        await _default_manager.close()
        _default_manager = None


# ============================================================
# 测试支持
# ============================================================

def create_test_database_manager() -> DatabaseManager:
    """创建用于测试的内存数据库管理器"""
    return DatabaseManager(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False,
    )
