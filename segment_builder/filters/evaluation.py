"""
In-memory evaluation of a filter tree against visitor records.

Used by tests and by callers that need to check a handful of records locally.
It is not a query planner: the analytics backend stays the source of truth
for real visitor counts.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from segment_builder.domain.enums import Connector, FilterOperator
from segment_builder.filters.nodes import Condition, FilterTree, Group, is_group
from segment_builder.filters.operators import NEGATIVE_OPERATORS, parse_operator

Visitor = Mapping[str, Any]

_MISSING = object()


def evaluate(tree: FilterTree, visitor: Visitor) -> bool:
    """True when ``visitor`` satisfies ``tree``; an empty tree matches everyone."""
    return _match_group(tree.root, visitor)


def filter_visitors(tree: FilterTree, visitors: Iterable[Visitor]) -> Iterator[Visitor]:
    """Lazily yield the visitors matching ``tree``."""
    return (visitor for visitor in visitors if evaluate(tree, visitor))


def _match_group(group: Group, visitor: Visitor) -> bool:
    if not group.children:
        return True
    results = (
        _match_group(child, visitor) if is_group(child) else _match_condition(child, visitor)
        for child in group.children
    )
    if group.connector is Connector.OR:
        return any(results)
    return all(results)


def _match_condition(condition: Condition, visitor: Visitor) -> bool:
    operator = parse_operator(condition.operator)
    if operator is None:
        raise ValueError(f"Cannot evaluate condition {condition.id}: no valid operator")

    actual = visitor.get(condition.dimension, _MISSING)
    if actual is _MISSING or actual is None:
        matched = operator in NEGATIVE_OPERATORS
    else:
        matched = _compare(operator, actual, condition.value)

    return not matched if condition.negated else matched


def _compare(operator: FilterOperator, actual: Any, expected: Any) -> bool:
    actual_text = str(actual)
    options = expected if isinstance(expected, tuple) else (expected,)

    if operator is FilterOperator.EQUALS:
        return actual_text == str(expected)
    if operator is FilterOperator.DOES_NOT_EQUAL:
        return actual_text != str(expected)
    if operator is FilterOperator.CONTAINS:
        return str(expected).lower() in actual_text.lower()
    if operator is FilterOperator.DOES_NOT_CONTAIN:
        return str(expected).lower() not in actual_text.lower()
    if operator is FilterOperator.IS_ONE_OF:
        return actual_text in {str(o) for o in options}
    if operator is FilterOperator.IS_NOT_ONE_OF:
        return actual_text not in {str(o) for o in options}
    if operator is FilterOperator.IS_SET:
        return actual_text != ""
    return actual_text == ""
