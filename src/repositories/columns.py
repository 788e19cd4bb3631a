"""
列集合声明

以数据而非分支描述一张表的 select / insert / update 投影：
每个字段一条 ColumnSpec（名称、物理列、类型转换、默认值、是否不可变……），
ColumnSet 据此生成语句所需的表达式与参数。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy import Column, Table, type_coerce
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import TypeEngine

from repositories.base import InvalidArgumentError, ValidationError


def hex_to_bytes(value: Union[str, bytes]) -> bytes:
    """hex 文本 → bytes；已是 bytes 时原样返回"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Invalid hex value: {value!r}") from e


@dataclass(frozen=True)
class ColumnSpec:
    """
    单个字段的声明

    Attributes:
        name: 对外字段名（记录 dict 的 key）
        column: 物理列；为 None 表示计算字段（只读）
        cast: 读取时的类型转换（type_coerce）
        default: 插入时缺省值
        immutable: 创建后不可修改
        required: 插入时必须提供
        numeric: 允许 increment / decrement
        to_db: 写入前的值转换
        from_db: 读取后的值转换（Python 侧）
        expression: 读取表达式构造器；默认直接读取物理列
    """
    name: str
    column: Optional[Column] = None
    cast: Optional[TypeEngine] = None
    default: Any = None
    immutable: bool = False
    required: bool = False
    numeric: bool = False
    to_db: Optional[Callable[[Any], Any]] = None
    from_db: Optional[Callable[[Any], Any]] = None
    expression: Optional[Callable[[], ColumnElement]] = None

    @property
    def computed(self) -> bool:
        return self.column is None

    def read_expression(self) -> ColumnElement:
        """未加 label 的读取表达式（供排序等复用）"""
        expr = self.expression() if self.expression is not None else self.column
        if self.cast is not None:
            expr = type_coerce(expr, self.cast)
        return expr

    def select_expression(self) -> ColumnElement:
        return self.read_expression().label(self.name)

    def convert(self, value: Any) -> Any:
        """Python 值 → 存储值"""
        if value is None or self.to_db is None:
            return value
        return self.to_db(value)


class ColumnSet:
    """
    一张表的列集合

    - select: 全部字段（含计算字段）
    - insert: 全部物理字段
    - update: insert 去掉不可变字段
    """

    def __init__(self, table: Table, specs: Iterable[ColumnSpec]):
        self.table = table
        self._specs: Dict[str, ColumnSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate column spec: {spec.name}")
            self._specs[spec.name] = spec

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, name: str) -> Optional[ColumnSpec]:
        return self._specs.get(name)

    # ========================================
    # 投影
    # ========================================

    @property
    def select(self) -> List[ColumnSpec]:
        return list(self._specs.values())

    @property
    def insert(self) -> List[ColumnSpec]:
        return [spec for spec in self._specs.values() if not spec.computed]

    @property
    def update(self) -> List[ColumnSpec]:
        return [spec for spec in self.insert if not spec.immutable]

    @property
    def field_names(self) -> List[str]:
        return list(self._specs)

    @property
    def immutable_fields(self) -> List[str]:
        return [spec.name for spec in self._specs.values() if spec.immutable]

    @property
    def numeric_fields(self) -> List[str]:
        return [spec.name for spec in self.update if spec.numeric]

    def unknown_fields(self, record: Dict[str, Any]) -> List[str]:
        """record 中不属于列集合的字段"""
        return [key for key in record if key not in self._specs]

    # ========================================
    # 读取
    # ========================================

    def select_expressions(self, fields: Optional[Iterable[str]] = None) -> List[ColumnElement]:
        """
        构造读取表达式列表

        Args:
            fields: 需要的字段；None 表示全部。未知字段静默忽略。
        """
        if fields is None:
            return [spec.select_expression() for spec in self._specs.values()]
        return [
            self._specs[name].select_expression()
            for name in fields
            if name in self._specs
        ]

    def render_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """对读取结果应用 from_db 转换"""
        for name, value in row.items():
            spec = self._specs.get(name)
            if spec is not None and spec.from_db is not None:
                row[name] = spec.from_db(value)
        return row

    # ========================================
    # 写入
    # ========================================

    def prepare_insert(self, record: Dict[str, Any]) -> Dict[Column, Any]:
        """
        生成插入参数

        缺失的必填字段抛出 ValidationError；未知字段忽略；
        缺失的可选字段取声明的默认值。
        """
        values = {}
        for spec in self.insert:
            if spec.name in record:
                values[spec.column] = spec.convert(record[spec.name])
            elif spec.required:
                raise ValidationError(spec.name)
            else:
                values[spec.column] = spec.convert(spec.default)
        return values

    def prepare_update(self, record: Dict[str, Any]) -> Dict[Column, Any]:
        """
        生成更新参数

        仅包含 update 集合中且 record 提供了的字段；
        不可变字段与未知字段忽略。
        """
        return {
            spec.column: spec.convert(record[spec.name])
            for spec in self.update
            if spec.name in record
        }
