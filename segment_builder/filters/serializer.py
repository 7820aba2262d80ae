"""
Filter tree <-> wire format conversion.

Two wire shapes are exchanged with the analytics backend and stored in saved
segments:

- flat: ``[[operator, dimension, [values...]], ...]`` - an implicit AND of
  conditions. Only AND-only trees without nested groups are written this way.
- nested: ``{"operator": "and"|"or", "children": [...]}`` where a condition is
  ``{"dimension", "operator", "value"}``. Every other tree is written this way;
  OR and nesting are never flattened away.

The reader is lenient about shape (it also accepts legacy ``filter_type`` keys,
triples inside nested children and group objects inside a flat list) but
strict about content: any entry it cannot interpret rejects the whole parse
with a ``WireFormatError`` whose ``details["path"]`` points at the entry.

Known limitation: ``equals "US"`` and ``is_one_of ["US"]`` share the wire form
``["is", "country", ["US"]]``; both read back as ``equals``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Union

from segment_builder.core.errors import ValidationError, WireFormatError
from segment_builder.domain.enums import Connector, NodeKind, WireOperator
from segment_builder.filters.canonicalizer import fingerprint
from segment_builder.filters.nodes import (
    ROOT_ID,
    TREE_VERSION,
    Condition,
    FilterTree,
    Group,
    Node,
    generate_id,
    is_group,
)
from segment_builder.filters.operators import (
    INTERNAL_TO_WIRE,
    WIRE_TO_INTERNAL,
    effective_operator,
    parse_operator,
    parse_wire_operator,
    takes_value,
)

logger = logging.getLogger(__name__)

WireTriple = list[Any]
WireFilter = Union[list[Any], dict[str, Any]]

_NO_VALUE_WIRE = frozenset({WireOperator.IS_SET, WireOperator.IS_NOT_SET})

# Hard ceiling on group nesting accepted from untrusted input, well above any
# configured FilterLimits.max_depth
MAX_WIRE_DEPTH = 32


# ============================================================================
# Tree -> wire
# ============================================================================


def is_flat_compatible(tree: FilterTree) -> bool:
    """True for AND-only trees whose root holds conditions only."""
    return tree.root.connector is Connector.AND and not any(
        is_group(child) for child in tree.root.children
    )


def to_wire_format(tree: FilterTree) -> WireFilter:
    """
    Convert a tree to wire format.

    Raises:
        ValidationError: If a condition has no recognizable operator

    Example:
        >>> from segment_builder.filters.nodes import create_tree
        >>> to_wire_format(create_tree())
        []
    """
    if is_flat_compatible(tree):
        return [
            _condition_to_triple(child, f"$[{i}]") for i, child in enumerate(tree.root.children)
        ]
    return _group_to_wire(tree.root, "$")


def _wire_parts(condition: Condition, path: str) -> tuple[str, list[Any]]:
    operator = parse_operator(condition.operator)
    if operator is None:
        raise ValidationError(
            f"Condition at {path} has no valid operator",
            details={"path": path, "condition_id": condition.id, "operator": condition.operator},
        )

    operator = effective_operator(operator, condition.negated)
    if not takes_value(operator):
        values: list[Any] = []
    elif isinstance(condition.value, tuple):
        values = list(condition.value)
    else:
        values = [condition.value]
    return INTERNAL_TO_WIRE[operator].value, values


def _condition_to_triple(condition: Condition, path: str) -> WireTriple:
    wire_op, values = _wire_parts(condition, path)
    return [wire_op, condition.dimension, values]


def _group_to_wire(group: Group, path: str) -> dict[str, Any]:
    children = []
    for i, child in enumerate(group.children):
        child_path = f"{path}.children[{i}]"
        if is_group(child):
            children.append(_group_to_wire(child, child_path))
        else:
            wire_op, values = _wire_parts(child, child_path)
            children.append({"dimension": child.dimension, "operator": wire_op, "value": values})
    return {"operator": group.connector.value.lower(), "children": children}


def wire_fingerprint(tree: FilterTree) -> str:
    """Stable digest of the tree's wire form (IDs do not participate)."""
    return fingerprint(to_wire_format(tree))


def count_wire_conditions(wire: WireFilter) -> int:
    """Count the conditions in either wire shape."""
    if isinstance(wire, dict):
        if "children" not in wire:
            return 1
        return sum(count_wire_conditions(child) for child in wire["children"])
    if isinstance(wire, list) and not _looks_like_triple(wire):
        return sum(count_wire_conditions(entry) for entry in wire)
    return 1


# ============================================================================
# Wire -> tree
# ============================================================================


def from_wire_format(wire: WireFilter | str) -> FilterTree:
    """
    Rebuild a tree from either wire shape (or a JSON string of one).

    Every node receives a fresh ID. Flat triples become the children of the
    root AND group; a nested object becomes the root itself.

    Raises:
        WireFormatError: If any part of the input cannot be interpreted
    """
    if isinstance(wire, str):
        try:
            wire = json.loads(wire)
        except (json.JSONDecodeError, RecursionError) as e:
            raise WireFormatError(
                "Filter is not valid JSON", details={"path": "$", "error": str(e)}
            ) from e

    if isinstance(wire, list):
        children = tuple(_parse_child(entry, f"$[{i}]", 1) for i, entry in enumerate(wire))
        root = Group(id=ROOT_ID, connector=Connector.AND, children=children)
    elif isinstance(wire, dict):
        root = _parse_group(wire, "$", 1, group_id=ROOT_ID)
    else:
        raise WireFormatError(
            "Filter must be a list of conditions or a group object",
            details={"path": "$", "type": type(wire).__name__},
        )

    tree = FilterTree(root=root)
    logger.debug("Parsed wire filter into %d top-level children", len(root.children))
    return tree


def _looks_like_triple(entry: list[Any]) -> bool:
    return len(entry) == 3 and isinstance(entry[0], str) and isinstance(entry[2], list)


def _check_depth(depth: int, path: str) -> None:
    if depth > MAX_WIRE_DEPTH:
        raise WireFormatError(
            f"Filter nests deeper than {MAX_WIRE_DEPTH} levels at {path}",
            details={"path": path, "max_depth": MAX_WIRE_DEPTH},
        )


def _parse_child(entry: Any, path: str, parent_depth: int) -> Node:
    if isinstance(entry, (list, tuple)):
        return _parse_triple(list(entry), path)
    if isinstance(entry, dict):
        if "children" in entry:
            return _parse_group(entry, path, parent_depth + 1)
        if "dimension" in entry:
            return _parse_condition_object(entry, path)
        raise WireFormatError(
            f"Object at {path} is neither a group nor a condition",
            details={"path": path, "keys": sorted(entry.keys())},
        )
    raise WireFormatError(
        f"Unexpected {type(entry).__name__} at {path}",
        details={"path": path, "type": type(entry).__name__},
    )


def _parse_group(
    data: dict[str, Any], path: str, depth: int, group_id: str | None = None
) -> Group:
    _check_depth(depth, path)
    raw_connector = data.get("operator", data.get("filter_type"))
    if not isinstance(raw_connector, str) or raw_connector.lower() not in ("and", "or"):
        raise WireFormatError(
            f"Group at {path} must have operator 'and' or 'or'",
            details={"path": path, "operator": raw_connector},
        )

    children = data.get("children")
    if not isinstance(children, list):
        raise WireFormatError(
            f"'children' must be a list at {path}",
            details={"path": path, "type": type(children).__name__},
        )

    return Group(
        id=group_id or generate_id(),
        connector=Connector(raw_connector.upper()),
        children=tuple(
            _parse_child(child, f"{path}.children[{i}]", depth)
            for i, child in enumerate(children)
        ),
    )


def _parse_triple(entry: list[Any], path: str) -> Condition:
    if len(entry) != 3:
        raise WireFormatError(
            f"Condition at {path} must have exactly 3 elements",
            details={"path": path, "length": len(entry)},
        )
    operator, dimension, clauses = entry
    return _build_condition(operator, dimension, clauses, path)


def _parse_condition_object(data: dict[str, Any], path: str) -> Condition:
    clauses = data.get("value", [])
    if not isinstance(clauses, list):
        clauses = [clauses]
    return _build_condition(data.get("operator"), data.get("dimension"), clauses, path)


def _build_condition(raw_operator: Any, dimension: Any, clauses: Any, path: str) -> Condition:
    wire_op = parse_wire_operator(raw_operator)
    if wire_op is None:
        raise WireFormatError(
            f"Unknown operator '{raw_operator}' at {path}",
            details={"path": path, "operator": raw_operator},
        )
    if not isinstance(dimension, str) or not dimension:
        raise WireFormatError(
            f"Condition at {path} must name a dimension",
            details={"path": path, "dimension": dimension},
        )
    if not isinstance(clauses, list):
        raise WireFormatError(
            f"Values at {path} must be a list",
            details={"path": path, "type": type(clauses).__name__},
        )
    for clause in clauses:
        if isinstance(clause, bool) or not isinstance(clause, (str, int, float)):
            raise WireFormatError(
                f"Values at {path} must be strings or numbers",
                details={"path": path, "value": clause},
            )

    single, multi = WIRE_TO_INTERNAL[wire_op]
    if wire_op in _NO_VALUE_WIRE:
        return Condition(id=generate_id(), dimension=dimension, operator=single.value)

    if len(clauses) == 1:
        return Condition(
            id=generate_id(), dimension=dimension, operator=single.value, value=clauses[0]
        )
    if multi is not None and clauses:
        return Condition(
            id=generate_id(), dimension=dimension, operator=multi.value, value=tuple(clauses)
        )

    raise WireFormatError(
        f"Operator '{wire_op.value}' at {path} takes "
        + ("exactly one value" if multi is None else "at least one value"),
        details={"path": path, "operator": wire_op.value, "count": len(clauses)},
    )


# ============================================================================
# Document form (lossless, with IDs)
# ============================================================================


def tree_to_dict(tree: FilterTree) -> dict[str, Any]:
    """Lossless JSON-compatible document of ``tree`` including node IDs."""
    return {"version": tree.version, "root": _node_to_dict(tree.root)}


def _node_to_dict(node: Node) -> dict[str, Any]:
    if is_group(node):
        return {
            "type": NodeKind.GROUP.value,
            "id": node.id,
            "connector": node.connector.value,
            "children": [_node_to_dict(child) for child in node.children],
        }
    value = list(node.value) if isinstance(node.value, tuple) else node.value
    return {
        "type": NodeKind.CONDITION.value,
        "id": node.id,
        "dimension": node.dimension,
        "operator": node.operator,
        "value": value,
        "negated": node.negated,
    }


def tree_from_dict(data: dict[str, Any]) -> FilterTree:
    """
    Rebuild a tree from ``tree_to_dict`` output.

    Missing IDs are generated; the root always gets the well-known root ID.

    Raises:
        WireFormatError: If the document is malformed or repeats an ID
    """
    if not isinstance(data, dict) or not isinstance(data.get("root"), dict):
        raise WireFormatError("Tree document must contain a 'root' object", details={"path": "$"})

    version = data.get("version", TREE_VERSION)
    if version != TREE_VERSION:
        raise WireFormatError(
            f"Unsupported tree version {version}", details={"path": "$.version", "version": version}
        )

    seen: set[str] = set()
    root = _node_from_dict(data["root"], "$.root", seen, 1, force_id=ROOT_ID)
    if not is_group(root):
        raise WireFormatError("Tree root must be a group", details={"path": "$.root"})
    return FilterTree(root=root, version=version)


def _node_from_dict(
    data: Any, path: str, seen: set[str], depth: int, force_id: str | None = None
) -> Node:
    if not isinstance(data, dict):
        raise WireFormatError(f"Node at {path} must be an object", details={"path": path})

    node_id = force_id or data.get("id") or generate_id()
    if node_id in seen:
        raise WireFormatError(f"Duplicate node id '{node_id}' at {path}", details={"path": path})
    seen.add(node_id)

    node_type = data.get("type")
    if node_type == NodeKind.GROUP.value:
        _check_depth(depth, path)
        children = data.get("children", [])
        if not isinstance(children, list):
            raise WireFormatError(f"'children' must be a list at {path}", details={"path": path})
        try:
            connector = Connector(str(data.get("connector", "AND")).upper())
        except ValueError as e:
            raise WireFormatError(
                f"Invalid connector at {path}",
                details={"path": path, "connector": data.get("connector")},
            ) from e
        return Group(
            id=node_id,
            connector=connector,
            children=tuple(
                _node_from_dict(child, f"{path}.children[{i}]", seen, depth + 1)
                for i, child in enumerate(children)
            ),
        )

    if node_type == NodeKind.CONDITION.value:
        negated = data.get("negated", False)
        if not isinstance(negated, bool):
            raise WireFormatError(
                f"'negated' must be a boolean at {path}",
                details={"path": path, "negated": negated},
            )
        return Condition(
            id=node_id,
            dimension=str(data.get("dimension") or ""),
            operator=str(data.get("operator") or ""),
            value=data.get("value", ""),
            negated=negated,
        )

    raise WireFormatError(
        f"Node at {path} must have type 'group' or 'condition'",
        details={"path": path, "type": node_type},
    )
