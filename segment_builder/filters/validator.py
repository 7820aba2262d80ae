"""
Filter Tree Validation.

Checks that a filter tree is usable for apply/save/preview:
- At least one condition, and no more than the configured maximum
- Group nesting within the configured depth
- Every condition complete: dimension known, operator allowed for it,
  value present unless the operator takes none

Unlike a gatekeeper that raises on the first problem, the validator walks the
tree once and collects every violation, so a single call surfaces everything
the user has to fix. Findings are returned as data; nothing is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from segment_builder.filters.dimensions import DimensionCatalog
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.nodes import Condition, FilterTree, Group, is_group
from segment_builder.filters.operators import parse_operator, takes_list, takes_value

logger = logging.getLogger(__name__)

# Lenient mode is announced at WARNING once per process, then at DEBUG
_lenient_warned = False


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``validate``; ``errors`` keeps traversal order."""

    valid: bool
    errors: tuple[str, ...] = field(default_factory=tuple)
    condition_count: int = 0
    depth: int = 1


@dataclass
class _Walk:
    catalog: DimensionCatalog | None
    errors: list[str] = field(default_factory=list)
    condition_count: int = 0
    depth: int = 1


def validate(
    tree: FilterTree,
    catalog: DimensionCatalog | None = None,
    limits: FilterLimits | None = None,
) -> ValidationResult:
    """
    Validate a filter tree in a single depth-first pass.

    Args:
        tree: The tree to check
        catalog: Injected dimension metadata. Without one, dimensions are not
                 checked and operators are only checked against the global
                 operator vocabulary (lenient mode).
        limits: Condition/depth limits (defaults: 20 conditions, 3 levels)

    Returns:
        ValidationResult with ``valid`` and the ordered list of messages

    Example:
        >>> from segment_builder.filters.nodes import create_tree
        >>> validate(create_tree()).errors
        ('Filter must have at least one condition.',)
    """
    limits = limits or FilterLimits()
    if catalog is None:
        _log_lenient_mode()

    state = _Walk(catalog=catalog)
    _visit_group(tree.root, 1, state)

    # Tree-level rules go first, per-condition findings follow in tree order
    errors: list[str] = []
    if state.condition_count == 0:
        errors.append("Filter must have at least one condition.")
    if state.condition_count > limits.max_conditions:
        errors.append(f"Filter cannot have more than {limits.max_conditions} conditions.")
    if state.depth > limits.max_depth:
        errors.append(f"Filter cannot nest more than {limits.max_depth} levels.")
    errors.extend(state.errors)

    return ValidationResult(
        valid=not errors,
        errors=tuple(errors),
        condition_count=state.condition_count,
        depth=state.depth,
    )


def _log_lenient_mode() -> None:
    global _lenient_warned
    level = logging.DEBUG if _lenient_warned else logging.WARNING
    _lenient_warned = True
    logger.log(level, "Validating without a dimension catalog - dimensions are not checked")


def _visit_group(group: Group, depth: int, state: _Walk) -> None:
    state.depth = max(state.depth, depth)
    for child in group.children:
        if is_group(child):
            _visit_group(child, depth + 1, state)
        else:
            state.condition_count += 1
            _check_condition(child, state.condition_count, state)


def _check_condition(condition: Condition, position: int, state: _Walk) -> None:
    """Append one message per incomplete field of ``condition``."""
    prefix = f"Condition {position}"
    catalog = state.catalog

    dimension = condition.dimension
    if not dimension:
        state.errors.append(f"{prefix} is missing a dimension.")
    elif catalog is not None and dimension not in catalog:
        state.errors.append(f"{prefix} has an unknown dimension '{dimension}'.")
        # Operator legality cannot be judged against an unknown dimension
        dimension = ""

    if not condition.operator:
        state.errors.append(f"{prefix} is missing an operator.")
        return

    operator = parse_operator(condition.operator)
    illegal = dimension and catalog is not None and not catalog.allows(dimension, operator)
    if operator is None or illegal:
        target = f" for dimension '{dimension}'" if dimension else ""
        state.errors.append(
            f"{prefix} has an unsupported operator '{condition.operator}'{target}."
        )
        return

    if not takes_value(operator) or not _is_blank(condition.value):
        return

    if takes_list(operator):
        state.errors.append(f"{prefix} requires at least one value.")
    else:
        state.errors.append(f"{prefix} is missing a value.")


def _is_blank(value: object) -> bool:
    if isinstance(value, tuple):
        return not any(str(v).strip() for v in value)
    if isinstance(value, str):
        return not value.strip()
    return value is None
