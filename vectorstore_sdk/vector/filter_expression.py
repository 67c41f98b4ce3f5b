# vectorstore_sdk/vector/filter_expression.py
# SPDX-License-Identifier: Apache-2.0
"""
Metadata filter tree → Milvus boolean expression.

Leaves render as `key operator literal`, groups as one parenthesized AND/OR
join. Grouping is carried only by parentheses, so a nested tree compiles with
exactly the structure it was written with:

    MetadataFilterGroup(
        condition=FilterCondition.AND,
        filters=[
            MetadataFilter("fileName", FilterOperator.EQUAL, "test.txt"),
            MetadataFilter("size", FilterOperator.GREATER_THAN, 10),
        ],
    )

    →  (  fileName == "test.txt"   AND  size > 10 )

Empty groups compile to "" and disappear from their parent, so "no filter"
can be nested anywhere without producing malformed syntax. Operators are not
validated here; the backend rejects what it does not understand.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Any, List, Optional

from vectorstore_sdk.vector.vector_base import (
    FilterCondition,
    FilterNode,
    FilterOperator,
    MetadataFilter,
    MetadataFilterGroup,
)


def canonical_timestamp(value: date) -> str:
    """Canonical string form of a timestamp (ISO 8601), as stored on write."""
    return value.isoformat()


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def serialize_value(value: Any) -> str:
    """
    Render one filter value as a Milvus literal.

    - str: double-quoted, with backslashes and double quotes escaped
    - datetime/date: canonical timestamp string, quoted
    - bool: true / false
    - int/float: bare number; NaN and infinities raise ValueError
    - list/tuple: `[a, b, c]`, elements rendered recursively
    - anything else: `str(value)`
    """
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, date):
        return _quote(canonical_timestamp(value))
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite number {value!r} has no filter literal")
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(serialize_value(v) for v in value) + "]"
    return str(value)


def _operator_symbol(operator: Any) -> str:
    if isinstance(operator, FilterOperator):
        return operator.value
    return str(operator)


def _condition_keyword(condition: Any) -> str:
    if isinstance(condition, FilterCondition):
        return condition.value.upper()
    return str(condition).strip().upper()


def _compile_leaf(leaf: MetadataFilter) -> str:
    return f" {leaf.key} {_operator_symbol(leaf.operator)} {serialize_value(leaf.value)} "


def _compile_group(group: MetadataFilterGroup) -> str:
    parts: List[str] = [p for p in (compile_filter(child) for child in group.filters or ()) if p]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    joiner = f"  {_condition_keyword(group.condition)} "
    return "( " + joiner.join(parts) + ")"


def compile_filter(node: Optional[FilterNode]) -> str:
    """
    Compile a filter tree into one expression string.

    Returns "" for None and for groups with no non-empty children; callers
    must treat "" as "no filter".
    """
    if node is None:
        return ""
    if isinstance(node, MetadataFilterGroup):
        return _compile_group(node)
    if isinstance(node, MetadataFilter):
        return _compile_leaf(node)
    raise TypeError(f"unsupported filter node: {type(node).__name__}")


__all__ = [
    "canonical_timestamp",
    "serialize_value",
    "compile_filter",
]
