"""
Operator vocabulary for filter conditions.

Holds the fixed tables the rest of the engine reads:
- internal operator -> wire operator (total: every internal operator has one)
- negated counterparts
- which operators take no value and which take a list
- default human-readable labels

The tables are wrapped in an ``OperatorVocabulary`` so callers can inject
their own labels without touching module state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from segment_builder.domain.enums import FilterOperator, WireOperator

_OP = FilterOperator
_WIRE = WireOperator

INTERNAL_TO_WIRE: Mapping[FilterOperator, WireOperator] = MappingProxyType(
    {
        _OP.EQUALS: _WIRE.IS,
        _OP.DOES_NOT_EQUAL: _WIRE.IS_NOT,
        _OP.IS_ONE_OF: _WIRE.IS,
        _OP.IS_NOT_ONE_OF: _WIRE.IS_NOT,
        _OP.CONTAINS: _WIRE.CONTAINS,
        _OP.DOES_NOT_CONTAIN: _WIRE.CONTAINS_NOT,
        _OP.IS_SET: _WIRE.IS_SET,
        _OP.IS_NOT_SET: _WIRE.IS_NOT_SET,
    }
)

# Wire -> (single-value operator, multi-value operator or None)
WIRE_TO_INTERNAL: Mapping[WireOperator, tuple[FilterOperator, FilterOperator | None]] = (
    MappingProxyType(
        {
            _WIRE.IS: (_OP.EQUALS, _OP.IS_ONE_OF),
            _WIRE.IS_NOT: (_OP.DOES_NOT_EQUAL, _OP.IS_NOT_ONE_OF),
            _WIRE.CONTAINS: (_OP.CONTAINS, None),
            _WIRE.CONTAINS_NOT: (_OP.DOES_NOT_CONTAIN, None),
            _WIRE.IS_SET: (_OP.IS_SET, None),
            _WIRE.IS_NOT_SET: (_OP.IS_NOT_SET, None),
        }
    )
)

NEGATIONS: Mapping[FilterOperator, FilterOperator] = MappingProxyType(
    {
        _OP.EQUALS: _OP.DOES_NOT_EQUAL,
        _OP.DOES_NOT_EQUAL: _OP.EQUALS,
        _OP.CONTAINS: _OP.DOES_NOT_CONTAIN,
        _OP.DOES_NOT_CONTAIN: _OP.CONTAINS,
        _OP.IS_ONE_OF: _OP.IS_NOT_ONE_OF,
        _OP.IS_NOT_ONE_OF: _OP.IS_ONE_OF,
        _OP.IS_SET: _OP.IS_NOT_SET,
        _OP.IS_NOT_SET: _OP.IS_SET,
    }
)

NO_VALUE_OPERATORS = frozenset({_OP.IS_SET, _OP.IS_NOT_SET})
LIST_OPERATORS = frozenset({_OP.IS_ONE_OF, _OP.IS_NOT_ONE_OF})

# Operators that hold for a visitor lacking the attribute entirely
NEGATIVE_OPERATORS = frozenset(
    {_OP.DOES_NOT_EQUAL, _OP.DOES_NOT_CONTAIN, _OP.IS_NOT_ONE_OF, _OP.IS_NOT_SET}
)

DEFAULT_LABELS: Mapping[FilterOperator, str] = MappingProxyType(
    {
        _OP.EQUALS: "=",
        _OP.DOES_NOT_EQUAL: "!=",
        _OP.CONTAINS: "contains",
        _OP.DOES_NOT_CONTAIN: "does not contain",
        _OP.IS_ONE_OF: "is one of",
        _OP.IS_NOT_ONE_OF: "is not one of",
        _OP.IS_SET: "is set",
        _OP.IS_NOT_SET: "is not set",
    }
)


def parse_operator(value: str | FilterOperator) -> FilterOperator | None:
    """Return the ``FilterOperator`` for ``value``, or None if unknown/empty."""
    if isinstance(value, FilterOperator):
        return value
    try:
        return FilterOperator(value)
    except ValueError:
        return None


def parse_wire_operator(value: object) -> WireOperator | None:
    """Return the ``WireOperator`` for ``value``, or None if unrecognized."""
    if isinstance(value, WireOperator):
        return value
    if not isinstance(value, str):
        return None
    try:
        return WireOperator(value)
    except ValueError:
        return None


def effective_operator(operator: FilterOperator, negated: bool) -> FilterOperator:
    """Fold a ``negated`` flag into the operator it is equivalent to."""
    return NEGATIONS[operator] if negated else operator


def takes_value(operator: FilterOperator) -> bool:
    return operator not in NO_VALUE_OPERATORS


def takes_list(operator: FilterOperator) -> bool:
    return operator in LIST_OPERATORS


@dataclass(frozen=True)
class OperatorVocabulary:
    """
    Label table used when rendering conditions for humans.

    Args:
        labels: Mapping of operator (enum member or its string value) -> label.
                Operators missing from the mapping fall back to the defaults.
    """

    labels: Mapping[FilterOperator | str, str] = field(default_factory=dict)

    def label(self, operator: FilterOperator | str) -> str:
        parsed = parse_operator(operator)
        if parsed is None:
            return str(operator)
        for key, text in self.labels.items():
            if parse_operator(key) is parsed:
                return text
        return DEFAULT_LABELS[parsed]

    def to_wire(self, operator: FilterOperator, negated: bool = False) -> WireOperator:
        return INTERNAL_TO_WIRE[effective_operator(operator, negated)]
