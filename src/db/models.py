"""
SQLAlchemy ORM 模型定义

表结构：
- mem_accounts: 账户内存表（确认/未确认镜像字段）
- mem_accounts2*: 账户依赖表（投票、多重签名，及其未确认版本）
- mem_round: 轮次记账表
- blocks: 区块表（仅用于孤立账户检测）
- forks_stat: 分叉审计记录
"""

from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    SmallInteger,
    BigInteger,
    LargeBinary,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


class Base(DeclarativeBase):
    """SQLAlchemy 声明式基类"""
    pass


class Account(Base):
    """
    账户表

    以 address 为主键，address 与 virgin 创建后不可修改。
    u_* 字段为对应确认字段的未确认（影子）版本。
    布尔标志以小整数存储。
    """
    __tablename__ = "mem_accounts"

    # 主键：账户地址
    address: Mapped[str] = mapped_column(String(22), primary_key=True)

    # 公钥（二进制存储，对外以 hex 文本呈现）
    public_key: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    second_public_key: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    # 用户名
    username: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    u_username: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # 标志位
    is_delegate: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    u_is_delegate: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    second_signature: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    u_second_signature: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    nameexist: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    u_nameexist: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    virgin: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)

    # 余额与统计
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    u_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rate: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    vote: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fees: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rewards: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    produced_blocks: Mapped[int] = mapped_column(
        "producedblocks", BigInteger, nullable=False, default=0
    )
    missed_blocks: Mapped[int] = mapped_column(
        "missedblocks", BigInteger, nullable=False, default=0
    )

    # 多重签名参数
    multimin: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    u_multimin: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    multilifetime: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    u_multilifetime: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)

    # 最近一次修改该账户的区块（不设外键，允许出现孤立引用）
    block_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)

    __table_args__ = (
        Index("ix_mem_accounts_delegate_vote", "is_delegate", "vote"),
    )

    def __repr__(self) -> str:
        return f"<Account(address={self.address}, balance={self.balance})>"


class _DependencyMixin:
    """依赖表公共字段：复合主键 (account_id, dependent_id)"""

    account_id: Mapped[str] = mapped_column(
        String(22),
        ForeignKey("mem_accounts.address", ondelete="CASCADE"),
        primary_key=True,
    )
    dependent_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(account_id={self.account_id}, "
            f"dependent_id={self.dependent_id})>"
        )


class AccountDelegate(_DependencyMixin, Base):
    """已确认投票"""
    __tablename__ = "mem_accounts2delegates"


class AccountUnconfirmedDelegate(_DependencyMixin, Base):
    """未确认投票"""
    __tablename__ = "mem_accounts2u_delegates"


class AccountMultisignature(_DependencyMixin, Base):
    """已确认多重签名成员"""
    __tablename__ = "mem_accounts2multisignatures"


class AccountUnconfirmedMultisignature(_DependencyMixin, Base):
    """未确认多重签名成员"""
    __tablename__ = "mem_accounts2u_multisignatures"


class Round(Base):
    """
    轮次记账表

    每条记录表示某账户在某轮对某受托人的票权变动。
    """
    __tablename__ = "mem_round"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(22), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    delegate: Mapped[str] = mapped_column(String(64), nullable=False)
    round: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Round(round={self.round}, address={self.address})>"


class Block(Base):
    """区块表（精简版）"""
    __tablename__ = "blocks"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    height: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    previous_block: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Block(id={self.id}, height={self.height})>"


class ForkStat(Base):
    """
    分叉审计表

    只追加：通过 insert 写入，不提供更新和删除。
    """
    __tablename__ = "forks_stat"

    # 自增主键（记录本身允许重复）
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    delegate_public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    block_id: Mapped[str] = mapped_column(String(20), nullable=False)
    block_height: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_block: Mapped[str] = mapped_column(String(20), nullable=False)
    cause: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ForkStat(block_id={self.block_id}, cause={self.cause})>"


# 依赖类型 → 依赖表模型（白名单）
DEPENDENCY_MODELS = {
    "delegates": AccountDelegate,
    "u_delegates": AccountUnconfirmedDelegate,
    "multisignatures": AccountMultisignature,
    "u_multisignatures": AccountUnconfirmedMultisignature,
}
