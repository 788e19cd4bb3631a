"""
账户 Repository

基于列集合声明提供 mem_accounts 的读写：
- list: 字段投影、过滤、排序、分页
- insert / update / upsert / increment / decrement / remove
- 依赖表（投票、多重签名）维护
- 维护操作：孤立账户检测、未确认状态同步、内存表重置
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import (
    BigInteger,
    Boolean,
    and_,
    case,
    delete,
    func,
    insert,
    literal,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from db.config import config
from db.models import (
    Account,
    AccountDelegate,
    AccountUnconfirmedDelegate,
    AccountMultisignature,
    AccountUnconfirmedMultisignature,
    Block,
    Round,
    DEPENDENCY_MODELS,
)
from repositories.base import (
    BaseRepository,
    ColumnNotFoundError,
    InvalidArgumentError,
    InvalidKeyError,
    UnknownFieldError,
)
from repositories.columns import ColumnSet, ColumnSpec, hex_to_bytes
from repositories.filters import FilterTranslator
from utils.logger import get_logger

logger = get_logger("ChainState")


_accounts = Account.__table__


def _col(attr: str):
    """按 ORM 属性名取物理列（produced_blocks 等列名与属性名不同）"""
    return Account.__mapper__.columns[attr]


# ============================================================
# 读写转换
# ============================================================

def _flag(value: Any) -> int:
    return 1 if value else 0


def _decode_array(value: Optional[str]) -> Optional[List[str]]:
    # 无依赖记录时返回 None
    if value is None:
        return None
    items = json.loads(value)
    return items or None


def _hex_expression(attr: str):
    def build():
        column = _col(attr)
        return case((column.is_(None), None), else_=func.lower(func.hex(column)))
    return build


def _rank_expression():
    # 受托人按 vote DESC, public_key ASC 排名；非受托人为 NULL
    d = _accounts.alias("d")
    ranked = (
        select(
            func.row_number().over(
                order_by=(d.c.vote.desc(), d.c.public_key.asc())
            ).label("row_number"),
            d.c.address.label("address"),
        )
        .where(d.c.is_delegate == 1)
        .subquery("m")
    )
    return (
        select(ranked.c.row_number)
        .where(ranked.c.address == _accounts.c.address)
        .scalar_subquery()
    )


def _dependency_expression(model):
    def build():
        link = model.__table__
        return (
            select(func.json_group_array(link.c.dependent_id))
            .where(link.c.account_id == _accounts.c.address)
            .scalar_subquery()
        )
    return build


def _flag_spec(name: str, default: bool = False, **kwargs) -> ColumnSpec:
    return ColumnSpec(name, _col(name), cast=Boolean(), default=default, to_db=_flag, **kwargs)


def _amount_spec(name: str) -> ColumnSpec:
    return ColumnSpec(name, _col(name), default=0, numeric=True, to_db=int)


def _dependency_spec(name: str, model) -> ColumnSpec:
    return ColumnSpec(name, expression=_dependency_expression(model), from_db=_decode_array)


ACCOUNT_COLUMNS = ColumnSet(_accounts, [
    ColumnSpec(
        "address", _col("address"),
        required=True, immutable=True,
        expression=lambda: func.upper(_col("address")),
    ),
    ColumnSpec("public_key", _col("public_key"), to_db=hex_to_bytes,
               expression=_hex_expression("public_key")),
    ColumnSpec("second_public_key", _col("second_public_key"), to_db=hex_to_bytes,
               expression=_hex_expression("second_public_key")),
    ColumnSpec("username", _col("username")),
    ColumnSpec("u_username", _col("u_username")),
    _flag_spec("is_delegate"),
    _flag_spec("u_is_delegate"),
    _flag_spec("second_signature"),
    _flag_spec("u_second_signature"),
    _amount_spec("balance"),
    _amount_spec("u_balance"),
    _amount_spec("rate"),
    _amount_spec("vote"),
    _amount_spec("fees"),
    _amount_spec("rewards"),
    _amount_spec("produced_blocks"),
    _amount_spec("missed_blocks"),
    ColumnSpec("multimin", _col("multimin"), default=0, numeric=True, to_db=int),
    ColumnSpec("u_multimin", _col("u_multimin"), default=0, numeric=True, to_db=int),
    ColumnSpec("multilifetime", _col("multilifetime"), default=0, numeric=True, to_db=int),
    ColumnSpec("u_multilifetime", _col("u_multilifetime"), default=0, numeric=True, to_db=int),
    ColumnSpec("nameexist", _col("nameexist"), default=0, to_db=int),
    ColumnSpec("u_nameexist", _col("u_nameexist"), default=0, to_db=int),
    ColumnSpec("block_id", _col("block_id")),
    ColumnSpec("rank", cast=BigInteger(), expression=_rank_expression),
    _dependency_spec("delegates", AccountDelegate),
    _dependency_spec("u_delegates", AccountUnconfirmedDelegate),
    _dependency_spec("multisignatures", AccountMultisignature),
    _dependency_spec("u_multisignatures", AccountUnconfirmedMultisignature),
    _flag_spec("virgin", default=True, immutable=True),
])

# 未确认字段 → 确认字段
SHADOW_COLUMNS = {
    "u_is_delegate": "is_delegate",
    "u_second_signature": "second_signature",
    "u_username": "username",
    "u_balance": "balance",
    "u_multimin": "multimin",
    "u_multilifetime": "multilifetime",
    "u_nameexist": "nameexist",
}

# 未确认依赖表 → 确认依赖表
SHADOW_DEPENDENCIES = {
    "u_delegates": "delegates",
    "u_multisignatures": "multisignatures",
}

SORT_METHODS = ("ASC", "DESC")


def _multisig_filter(value: Any):
    column = _col("multimin")
    return column > 0 if value else column == 0


class AccountsRepository(BaseRepository[Account]):
    """
    账户 Repository

    所有写操作只接受列集合声明中的字段；
    读操作对未知投影字段静默忽略，对未知过滤/排序字段报错。
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Account)
        self.column_set = ACCOUNT_COLUMNS
        self._filters = FilterTranslator(
            ACCOUNT_COLUMNS, special={"multisig": _multisig_filter}
        )
        self._address = _col("address")

    # ========================================
    # 列集合信息
    # ========================================

    def get_db_fields(self) -> List[str]:
        """全部字段名（含计算字段）"""
        return self.column_set.field_names

    def get_immutable_fields(self) -> List[str]:
        """创建后不可修改的字段"""
        return self.column_set.immutable_fields

    async def count_mem_accounts(self) -> int:
        """账户总数"""
        return await self.count()

    # ========================================
    # 查询
    # ========================================

    async def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        fields: Optional[Iterable[str]] = None,
        *,
        sort_field: Union[str, Sequence[str], None] = None,
        sort_method: Union[str, Sequence[str], None] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        extra_condition: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        查询账户

        Args:
            filters: 过滤条件（见 FilterTranslator），额外支持 multisig
            fields: 返回字段，None 表示全部；未知字段静默忽略
            sort_field: 排序字段，单个或列表
            sort_method: ASC / DESC，单个或与 sort_field 等长的列表；默认 DESC
            limit: 返回数量上限，None 表示不限制
            offset: 跳过前 N 条
            extra_condition: 附加原始 SQL 谓词（AND 关系）

        Returns:
            账户 dict 列表

        Raises:
            UnknownFieldError: 过滤字段未知
            ColumnNotFoundError: 排序字段未知
            InvalidArgumentError: 排序方式、分页参数不合法
        """
        if fields is not None:
            fields = list(fields)
        clauses = self._filters.translate(filters)
        order_by = self._order_by(sort_field, sort_method)
        limit, offset = self._pagination(limit, offset)

        columns = self.column_set.select_expressions(fields)
        # 请求字段全部未知时，每条匹配记录返回空 dict
        empty_projection = not columns
        if empty_projection:
            columns = [self._address]

        query = select(*columns).select_from(_accounts).where(*clauses)
        if extra_condition:
            query = query.where(text(extra_condition))
        if order_by:
            query = query.order_by(*order_by)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        rows = await self._any(query)
        if empty_projection:
            return [{} for _ in rows]
        return [self.column_set.render_row(row) for row in rows]

    def _order_by(self, sort_field, sort_method) -> List[Any]:
        if sort_field is None:
            return []

        sort_fields = [sort_field] if isinstance(sort_field, str) else list(sort_field)
        if sort_method is None:
            methods = [config.DEFAULT_SORT_METHOD] * len(sort_fields)
        elif isinstance(sort_method, str):
            methods = [sort_method] * len(sort_fields)
        else:
            methods = list(sort_method)
            if len(methods) != len(sort_fields):
                raise InvalidArgumentError(
                    "sort_method must match sort_field in length"
                )

        order_by = []
        for name, method in zip(sort_fields, methods):
            spec = self.column_set.get(name)
            if spec is None:
                raise ColumnNotFoundError(name)
            method = method.upper()
            if method not in SORT_METHODS:
                raise InvalidArgumentError(f"Invalid sort method: {method}")
            expr = spec.read_expression()
            order_by.append(expr.asc() if method == "ASC" else expr.desc())
        return order_by

    def _pagination(self, limit, offset):
        for name, value in (("limit", limit), ("offset", offset)):
            if value is not None and (not isinstance(value, int) or value < 0):
                raise InvalidArgumentError(f"Invalid {name}: {value!r}")

        max_limit = config.MAX_LIST_LIMIT
        if max_limit is not None and (limit is None or limit > max_limit):
            limit = max_limit
        return limit, offset

    async def get_orphaned_mem_accounts(self) -> List[Dict[str, Any]]:
        """
        查询 block_id 指向不存在区块的账户

        Returns:
            [{"address", "block_id", "id"}]，id 为关联区块 ID（恒为 None）
        """
        blocks = Block.__table__
        block_id = _col("block_id")
        query = (
            select(
                self._address.label("address"),
                block_id.label("block_id"),
                blocks.c.id.label("id"),
            )
            .select_from(_accounts.outerjoin(blocks, blocks.c.id == block_id))
            .where(
                block_id.is_not(None),
                block_id != "0",
                blocks.c.id.is_(None),
            )
        )
        return await self._any(query)

    async def get_delegates(self) -> List[Dict[str, Any]]:
        """所有受托人账户的公钥"""
        query = (
            select(self.column_set.get("public_key").select_expression())
            .where(_col("is_delegate") == 1)
        )
        return await self._any(query)

    # ========================================
    # 写入
    # ========================================

    async def insert(self, record: Dict[str, Any]) -> None:
        """
        插入账户

        仅写入 insert 列集合中的字段，未提供的字段取声明的默认值，未知字段忽略。

        Raises:
            ValidationError: 缺少 address
        """
        values = self.column_set.prepare_insert(record)
        await self._none(insert(_accounts).values(values))
        logger.debug(f"Account inserted: {record['address']}")

    async def update(self, address: str, record: Dict[str, Any]) -> None:
        """
        更新账户

        仅写入 update 列集合中且 record 提供了的字段；不可变字段不会被写入。
        没有可写字段时不执行任何语句。

        Raises:
            InvalidKeyError: address 为空
        """
        if not address:
            raise InvalidKeyError("update called with invalid address argument")

        values = self.column_set.prepare_update(record or {})
        if not values:
            return None

        await self._none(
            update(_accounts).where(self._address == address).values(values)
        )
        logger.debug(f"Account updated: {address}")

    async def upsert(
        self,
        record: Dict[str, Any],
        conflict_fields: Union[str, Sequence[str]],
        update_record: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        插入或更新账户

        按 conflict_fields（大小写敏感、多个字段 AND 组合）匹配已有记录：
        匹配则以 update_record（缺省为 record）更新，否则插入 record。
        不可变字段在更新分支中始终保持原值。

        在同一事务内先执行带 RETURNING 的条件更新；只有未命中任何行时，
        才以 INSERT ... SELECT ... WHERE NOT EXISTS 做条件插入。
        因此 update_record 改写冲突字段时也不会重复插入。

        Raises:
            InvalidArgumentError: 冲突字段为空/未知/未提供值，或 record、update_record 含未知字段
            ValidationError: 插入所需的必填字段缺失
        """
        if not conflict_fields:
            raise InvalidArgumentError("upsert called with invalid conflict_fields argument")
        if isinstance(conflict_fields, str):
            conflict_fields = [conflict_fields]

        unknown = self.column_set.unknown_fields(record)
        if update_record is not None:
            unknown += self.column_set.unknown_fields(update_record)
        if unknown:
            raise InvalidArgumentError(
                f"Unknown field provided to upsert: {', '.join(unknown)}"
            )

        conditions = []
        for name in conflict_fields:
            spec = self.column_set.get(name)
            if spec is None or spec.computed:
                raise InvalidArgumentError(f"Invalid conflict field provided to upsert: {name}")
            if name not in record:
                raise InvalidArgumentError(f"Conflict field '{name}' missing from upsert data")
            value = spec.convert(record[name])
            conditions.append(spec.column.is_(None) if value is None else spec.column == value)
        condition = and_(*conditions)

        insert_values = self.column_set.prepare_insert(record)
        update_values = self.column_set.prepare_update(
            record if update_record is None else update_record
        )

        if update_values:
            updated = await self._any(
                update(_accounts)
                .where(condition)
                .values(update_values)
                .returning(self._address)
            )
            if updated:
                logger.debug(f"Account upserted on {conflict_fields}: updated")
                return None

        # 没有可写字段时冲突字段不会变化，NOT EXISTS 即可判断记录是否已存在
        existing = select(self._address).where(condition).correlate(None)
        guarded_insert = insert(_accounts).from_select(
            list(insert_values),
            select(*[
                literal(value, column.type) for column, value in insert_values.items()
            ]).where(~existing.exists()),
        )
        inserted = await self._none(guarded_insert)
        logger.debug(
            f"Account upserted on {conflict_fields}: "
            f"{'inserted' if inserted else 'unchanged'}"
        )

    async def increment(self, address: str, field: str, amount: int) -> None:
        """将数值字段增加 amount"""
        await self._change(address, field, amount, "increment")

    async def decrement(self, address: str, field: str, amount: int) -> None:
        """将数值字段减少 amount"""
        await self._change(address, field, -amount, "decrement")

    async def _change(self, address: str, field: str, delta: int, operation: str) -> None:
        if field not in self.column_set.numeric_fields:
            raise UnknownFieldError(
                field, f"Unknown field provided to {operation}: {field}"
            )
        if not address:
            raise InvalidKeyError(f"{operation} called with invalid address argument")

        column = self.column_set.get(field).column
        await self._none(
            update(_accounts)
            .where(self._address == address)
            .values({column: column + delta})
        )

    async def remove(self, address: str) -> int:
        """
        删除账户

        Returns:
            删除的行数；账户不存在时为 0
        """
        removed = await self._none(delete(_accounts).where(self._address == address))
        logger.debug(f"Account removed: {address} ({removed} row)")
        return removed

    async def convert_to_non_virgin(self, address: str) -> None:
        """将账户标记为非 virgin（virgin 唯一允许的修改途径）"""
        if not address:
            raise InvalidKeyError("convert_to_non_virgin called with invalid address argument")

        await self._none(
            update(_accounts).where(self._address == address).values({_col("virgin"): 0})
        )

    # ========================================
    # 依赖表
    # ========================================

    def _dependency_table(self, dependency: str, operation: str):
        model = DEPENDENCY_MODELS.get(dependency)
        if model is None:
            raise InvalidArgumentError(
                f"{operation} called with invalid argument dependency={dependency}"
            )
        return model.__table__

    async def insert_dependencies(self, address: str, dependent_id: str, dependency: str) -> None:
        """
        插入依赖记录

        Args:
            address: 所属账户地址
            dependent_id: 依赖方标识（受托人公钥等）
            dependency: delegates / u_delegates / multisignatures / u_multisignatures

        Raises:
            InvalidArgumentError: dependency 不在白名单中
        """
        table = self._dependency_table(dependency, "insert_dependencies")
        await self._none(
            insert(table).values(account_id=address, dependent_id=dependent_id)
        )
        logger.debug(f"Dependency {dependency} inserted: {address} -> {dependent_id}")

    async def remove_dependencies(self, address: str, dependent_id: str, dependency: str) -> int:
        """
        删除依赖记录

        Returns:
            删除的行数

        Raises:
            InvalidArgumentError: dependency 不在白名单中
        """
        table = self._dependency_table(dependency, "remove_dependencies")
        removed = await self._none(
            delete(table).where(
                table.c.account_id == address,
                table.c.dependent_id == dependent_id,
            )
        )
        logger.debug(f"Dependency {dependency} removed: {address} -> {dependent_id}")
        return removed

    # ========================================
    # 维护操作
    # ========================================

    async def update_mem_accounts(self) -> int:
        """
        将未确认状态同步到确认状态

        标量字段用单条 UPDATE，只触及存在差异的行；未确认依赖表
        （u_delegates / u_multisignatures）逐表镜像到对应的确认依赖表。
        重复执行结果不变。

        Returns:
            标量字段被同步的账户行数
        """
        pairs = [(_col(confirmed), _col(shadow)) for shadow, confirmed in SHADOW_COLUMNS.items()]
        synced = await self._none(
            update(_accounts)
            .where(or_(*[confirmed.is_distinct_from(shadow) for confirmed, shadow in pairs]))
            .values({confirmed: shadow for confirmed, shadow in pairs})
        )

        links = 0
        for shadow, confirmed in SHADOW_DEPENDENCIES.items():
            links += await self._mirror_dependencies(
                DEPENDENCY_MODELS[shadow].__table__,
                DEPENDENCY_MODELS[confirmed].__table__,
            )

        logger.info(
            f"Synchronized unconfirmed state for {synced} account(s), "
            f"{links} dependency row(s) changed"
        )
        return synced

    reconcile_shadow_state = update_mem_accounts

    async def _mirror_dependencies(self, shadow, confirmed) -> int:
        # 先删除未确认表中不存在的确认记录，再补齐缺失的记录
        in_shadow = (
            select(shadow.c.account_id)
            .where(
                shadow.c.account_id == confirmed.c.account_id,
                shadow.c.dependent_id == confirmed.c.dependent_id,
            )
            .correlate(confirmed)
        )
        removed = await self._none(delete(confirmed).where(~in_shadow.exists()))

        in_confirmed = (
            select(confirmed.c.account_id)
            .where(
                confirmed.c.account_id == shadow.c.account_id,
                confirmed.c.dependent_id == shadow.c.dependent_id,
            )
            .correlate(shadow)
        )
        added = await self._none(
            insert(confirmed).from_select(
                ["account_id", "dependent_id"],
                select(shadow.c.account_id, shadow.c.dependent_id).where(~in_confirmed.exists()),
            )
        )
        return removed + added

    async def reset_mem_tables(self) -> None:
        """清空账户表、轮次表及全部依赖表"""
        for model in DEPENDENCY_MODELS.values():
            await self._none(delete(model.__table__))
        await self._none(delete(Round.__table__))
        await self._none(delete(_accounts))
        logger.info("Memory tables reset")
