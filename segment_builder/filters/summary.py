"""Human-readable one-line rendering of a filter tree."""

from __future__ import annotations

from collections.abc import Mapping

from segment_builder.domain.enums import FilterOperator
from segment_builder.filters.nodes import Condition, FilterTree, Group, is_group
from segment_builder.filters.operators import (
    OperatorVocabulary,
    effective_operator,
    parse_operator,
    takes_value,
)

EMPTY_SUMMARY = "No filters applied"


def summarize(
    tree: FilterTree,
    labels: Mapping[FilterOperator | str, str] | OperatorVocabulary | None = None,
) -> str:
    """
    Render ``tree`` as text, e.g. ``country = US OR (browser = Chrome AND os = iOS)``.

    Args:
        tree: Tree to render
        labels: Operator label overrides, or a ready ``OperatorVocabulary``

    Returns:
        The summary, or ``"No filters applied"`` for an empty tree
    """
    if isinstance(labels, OperatorVocabulary):
        vocabulary = labels
    else:
        vocabulary = OperatorVocabulary(labels or {})

    text = _render_group(tree.root, vocabulary)
    return text or EMPTY_SUMMARY


def _render_group(group: Group, vocabulary: OperatorVocabulary) -> str:
    parts = []
    for child in group.children:
        if is_group(child):
            inner = _render_group(child, vocabulary)
            if inner:
                parts.append(f"({inner})")
        else:
            parts.append(render_condition(child, vocabulary))
    return f" {group.connector.value} ".join(parts)


def render_condition(condition: Condition, vocabulary: OperatorVocabulary | None = None) -> str:
    vocabulary = vocabulary or OperatorVocabulary()
    operator = parse_operator(condition.operator)
    if operator is None:
        # Incomplete conditions still render so the user can see them
        return " ".join(p for p in (condition.dimension, condition.operator) if p).strip()

    operator = effective_operator(operator, condition.negated)
    head = f"{condition.dimension} {vocabulary.label(operator)}"
    if not takes_value(operator):
        return head

    value = condition.value
    rendered = ", ".join(value) if isinstance(value, tuple) else str(value)
    return f"{head} {rendered}"
