"""Rule evaluation for audience segments.

A condition compares one customer field against a literal:

- ``total_spent`` compares numerically, a missing value counts as 0;
- ``last_order_date`` compares as timestamps, a missing date counts as the epoch;
- every other field compares as a case-insensitive string and only supports
  ``eq``/``neq``.

Unreadable operands make the condition false rather than raising, so a bad rule
narrows an audience instead of failing a send.
"""

import operator
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from app.core.errors import ValidationError
from app.core.money import to_decimal_or_none
from app.core.time_utils import parse_timestamp

NUMERIC_FIELDS = frozenset({"total_spent"})
DATE_FIELDS = frozenset({"last_order_date"})
SUPPORTED_FIELDS = frozenset({"total_spent", "email", "last_order_date"})
LOGIC_VALUES = frozenset({"AND", "OR"})

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ORDERED_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "eq": operator.eq,
    "neq": operator.ne,
}
_EQUALITY_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Condition":
        return cls(
            field=str(raw.get("field", "")),
            op=str(raw.get("op", raw.get("operator", ""))),
            value=raw.get("value"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "op": self.op, "value": self.value}


def _field_value(customer: Any, field: str) -> Any:
    if isinstance(customer, Mapping):
        return customer.get(field)
    return getattr(customer, field, None)


def _compare_numbers(left_raw: Any, op: str, right_raw: Any) -> bool:
    right = to_decimal_or_none(right_raw)
    if right is None:
        return False
    left = to_decimal_or_none(left_raw) if left_raw is not None else Decimal(0)
    if left is None:
        left = Decimal(0)
    compare = _ORDERED_OPERATORS.get(op)
    return bool(compare and compare(left, right))


def _compare_dates(left_raw: Any, op: str, right_raw: Any) -> bool:
    right = parse_timestamp(right_raw)
    if right is None:
        return False
    left = parse_timestamp(left_raw) if left_raw else None
    if left is None:
        left = EPOCH
    compare = _ORDERED_OPERATORS.get(op)
    return bool(compare and compare(left, right))


def _compare_strings(left_raw: Any, op: str, right_raw: Any) -> bool:
    compare = _EQUALITY_OPERATORS.get(op)
    if compare is None:
        return False
    left = str(left_raw if left_raw is not None else "").lower()
    right = str(right_raw if right_raw is not None else "").lower()
    return compare(left, right)


def match(customer: Any, condition: Condition) -> bool:
    """Evaluate one condition against a customer row or mapping."""
    left = _field_value(customer, condition.field)
    if condition.field in DATE_FIELDS:
        return _compare_dates(left, condition.op, condition.value)
    if condition.field in NUMERIC_FIELDS:
        return _compare_numbers(left, condition.op, condition.value)
    return _compare_strings(left, condition.op, condition.value)


def evaluate(customer: Any, conditions: Sequence[Condition], logic: str) -> bool:
    """Combine conditions with AND/OR.

    Every condition is evaluated so results stay observable per condition. An
    empty rule set is a caller error: it would otherwise select everyone.
    """
    if not conditions:
        raise ValidationError("At least one condition is required")
    normalized_logic = (logic or "AND").upper()
    if normalized_logic not in LOGIC_VALUES:
        raise ValidationError(f"Unsupported logic '{logic}'. Allowed: AND, OR")
    results = [match(customer, condition) for condition in conditions]
    if normalized_logic == "AND":
        return all(results)
    return any(results)


def conditions_from_json(raw_conditions: Iterable[Mapping[str, Any]] | None) -> list[Condition]:
    return [Condition.from_dict(raw) for raw in (raw_conditions or [])]
