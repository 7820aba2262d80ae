"""
Filter expression engine for audience segments.

This package holds the recursive AND/OR filter tree and everything that
operates on it. It has no I/O and no framework dependencies.

Key Components:
- nodes: Condition/Group/FilterTree model and constructors
- mutations: ID-addressed copy-on-write edits and tree queries
- validator: Size, depth and completeness checks collected in one pass
- serializer: Tree <-> wire format (flat triples or nested groups)
- summary: One-line human-readable rendering
- evaluation: Matching visitor records against a tree

Design Principles:
- Immutability: Every edit returns a new tree; untouched subtrees are shared
- Injection: Dimension catalog, labels and limits are parameters, not globals
- One policy: One depth convention, one limit set, one wire encoding per shape
"""

from segment_builder.filters.evaluation import evaluate, filter_visitors
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.mutations import (
    MutationResult,
    add_condition,
    add_nested_group,
    clear_all,
    count_conditions,
    delete_condition,
    delete_nested_group,
    group_conditions,
    move_item,
    ungroup,
    update_condition,
    update_connector,
)
from segment_builder.filters.nodes import (
    Condition,
    FilterTree,
    Group,
    create_condition,
    create_group,
    create_tree,
    generate_id,
)
from segment_builder.filters.serializer import from_wire_format, to_wire_format
from segment_builder.filters.summary import summarize
from segment_builder.filters.validator import ValidationResult, validate

__all__ = [
    "Condition",
    "FilterLimits",
    "FilterTree",
    "Group",
    "MutationResult",
    "ValidationResult",
    "add_condition",
    "add_nested_group",
    "clear_all",
    "count_conditions",
    "create_condition",
    "create_group",
    "create_tree",
    "delete_condition",
    "delete_nested_group",
    "evaluate",
    "filter_visitors",
    "from_wire_format",
    "generate_id",
    "group_conditions",
    "move_item",
    "summarize",
    "to_wire_format",
    "ungroup",
    "update_condition",
    "update_connector",
    "validate",
]
