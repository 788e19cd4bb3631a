"""
过滤条件转换

将 {字段: 值} 形式的过滤条件转换为 SQLAlchemy 谓词：
- 字面值      → 相等（None → IS NULL）
- list/tuple/set → IN
- 操作符 dict → {"$like": "%abc%"}、{"$gt": 10} 等
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.sql.elements import ColumnElement

from repositories.base import UnknownFieldError, InvalidArgumentError
from repositories.columns import ColumnSet, ColumnSpec


# 特殊过滤器：接收过滤值，返回谓词
SpecialFilter = Callable[[Any], ColumnElement]


def _values(spec: ColumnSpec, value: Any) -> List[Any]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidArgumentError(
            f"Filter operator for '{spec.name}' expects a list, got {type(value).__name__}"
        )
    return [spec.convert(v) for v in value]


_OPERATORS: Dict[str, Callable[[ColumnSpec, Any], ColumnElement]] = {
    "$like": lambda spec, v: spec.column.like(v),
    "$ilike": lambda spec, v: spec.column.ilike(v),
    "$in": lambda spec, v: spec.column.in_(_values(spec, v)),
    "$ne": lambda spec, v: spec.column.is_not(None) if v is None else spec.column != spec.convert(v),
    "$gt": lambda spec, v: spec.column > spec.convert(v),
    "$gte": lambda spec, v: spec.column >= spec.convert(v),
    "$lt": lambda spec, v: spec.column < spec.convert(v),
    "$lte": lambda spec, v: spec.column <= spec.convert(v),
}


class FilterTranslator:
    """
    过滤条件转换器

    只允许按物理列过滤；计算字段、未知字段一律拒绝。
    """

    def __init__(
        self,
        column_set: ColumnSet,
        special: Optional[Mapping[str, SpecialFilter]] = None,
    ):
        self._column_set = column_set
        self._special = dict(special or {})

    @property
    def filterable_fields(self) -> List[str]:
        fields = [spec.name for spec in self._column_set.insert]
        return fields + [name for name in self._special if name not in fields]

    def translate(self, filters: Optional[Mapping[str, Any]]) -> List[ColumnElement]:
        """
        转换过滤条件

        Args:
            filters: 过滤条件，多个条件之间为 AND 关系

        Returns:
            谓词列表

        Raises:
            UnknownFieldError: 过滤字段不在列集合中
            InvalidArgumentError: 操作符未知或操作数类型不对
        """
        if not filters:
            return []

        clauses = []
        for name, value in filters.items():
            if name in self._special:
                clauses.append(self._special[name](value))
                continue

            spec = self._column_set.get(name)
            if spec is None or spec.computed:
                raise UnknownFieldError(
                    name, f"Unknown filter field provided to list: {name}"
                )
            clauses.extend(self._translate_field(spec, value))
        return clauses

    def _translate_field(self, spec: ColumnSpec, value: Any) -> List[ColumnElement]:
        if isinstance(value, Mapping):
            if not value:
                raise InvalidArgumentError(f"Empty operator object for filter '{spec.name}'")
            clauses = []
            for op, operand in value.items():
                builder = _OPERATORS.get(op)
                if builder is None:
                    raise InvalidArgumentError(
                        f"Unknown filter operator '{op}' for field '{spec.name}'"
                    )
                clauses.append(builder(spec, operand))
            return clauses

        if isinstance(value, (list, tuple, set, frozenset)):
            return [spec.column.in_(_values(spec, value))]

        if value is None:
            return [spec.column.is_(None)]

        return [spec.column == spec.convert(value)]
