"""
受托人 Repository

提供分叉审计记录（forks_stat）的写入与查询。分叉记录只追加，不更新、不删除。
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ForkStat
from repositories.base import BaseRepository, ValidationError
from repositories.columns import hex_to_bytes
from utils.logger import get_logger

logger = get_logger("ChainState")


# 分叉记录字段（全部必填）
FORK_FIELDS = (
    "delegate_public_key",
    "block_timestamp",
    "block_id",
    "block_height",
    "previous_block",
    "cause",
)


class DelegatesRepository(BaseRepository[ForkStat]):
    """受托人 Repository"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ForkStat)

    async def insert_fork(self, fork: Dict[str, Any]) -> None:
        """
        写入分叉记录

        Args:
            fork: 包含 FORK_FIELDS 全部字段；delegate_public_key 为 hex 文本

        Raises:
            ValidationError: 缺少任一字段
        """
        for name in FORK_FIELDS:
            if name not in fork:
                raise ValidationError(name)

        values = {name: fork[name] for name in FORK_FIELDS}
        values["delegate_public_key"] = hex_to_bytes(fork["delegate_public_key"])

        await self._none(insert(ForkStat.__table__).values(**values))
        logger.info(
            f"Fork recorded: block {fork['block_id']} at height {fork['block_height']} "
            f"(cause={fork['cause']})"
        )

    async def list_forks(
        self,
        delegate_public_key: Optional[str] = None,
        *,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        查询分叉记录，按区块高度倒序

        Args:
            delegate_public_key: 只返回该受托人的记录（hex 文本）
            limit: 返回数量上限
        """
        public_key = ForkStat.delegate_public_key
        query = select(
            case(
                (public_key.is_(None), None),
                else_=func.lower(func.hex(public_key)),
            ).label("delegate_public_key"),
            ForkStat.block_timestamp,
            ForkStat.block_id,
            ForkStat.block_height,
            ForkStat.previous_block,
            ForkStat.cause,
        ).order_by(ForkStat.block_height.desc(), ForkStat.id.desc())

        if delegate_public_key is not None:
            query = query.where(public_key == hex_to_bytes(delegate_public_key))
        if limit is not None:
            query = query.limit(limit)

        return await self._any(query)

    async def count_forks(self) -> int:
        """分叉记录总数"""
        return await self.count()
