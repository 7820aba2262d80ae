"""
Filter tree data model.

A filter tree is a recursive tagged union of two immutable node types:

- ``Condition``: leaf comparing one dimension to a value via one operator
- ``Group``: internal node combining ordered children with AND/OR

Nodes are frozen dataclasses. Every edit produces new node objects (see
``segment_builder.filters.mutations``); untouched subtrees are shared between
the old and the new tree.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Union

from segment_builder.domain.enums import Connector, NodeKind

ROOT_ID = "root"
TREE_VERSION = 1

Value = Union[str, int, float, tuple[str, ...]]


def generate_id() -> str:
    """Generate a fresh, globally unique node ID."""
    return f"node-{uuid.uuid4().hex}"


def _freeze_value(value: object) -> Value:
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    if value is None:
        return ""
    return value  # type: ignore[return-value]


@dataclass(frozen=True)
class Condition:
    """Leaf node: ``dimension operator value``."""

    kind: ClassVar[NodeKind] = NodeKind.CONDITION

    id: str
    dimension: str = ""
    operator: str = ""
    value: Value = ""
    negated: bool = False

    def __post_init__(self) -> None:
        # List values are stored as tuples so nodes stay hashable and immutable
        object.__setattr__(self, "value", _freeze_value(self.value))
        if isinstance(self.operator, Enum):
            object.__setattr__(self, "operator", self.operator.value)


@dataclass(frozen=True)
class Group:
    """Internal node: ordered children joined by ``connector``."""

    kind: ClassVar[NodeKind] = NodeKind.GROUP

    id: str
    connector: Connector = Connector.AND
    children: tuple[Node, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "connector", parse_connector(self.connector))
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))


Node = Union[Condition, Group]


@dataclass(frozen=True)
class FilterTree:
    """Versioned wrapper around the root group."""

    root: Group
    version: int = TREE_VERSION

    @property
    def is_empty(self) -> bool:
        return not self.root.children


def parse_connector(value: Connector | str) -> Connector:
    """
    Coerce ``value`` to a ``Connector``.

    Raises:
        ValueError: If ``value`` is neither AND nor OR (any case)
    """
    if isinstance(value, Connector):
        return value
    if isinstance(value, str):
        try:
            return Connector(value.upper())
        except ValueError:
            pass
    raise ValueError(f"Connector must be AND or OR, got {value!r}")


def is_group(node: Node) -> bool:
    return node.kind is NodeKind.GROUP


def is_condition(node: Node) -> bool:
    return node.kind is NodeKind.CONDITION


# ============================================================================
# Constructors
# ============================================================================


def create_condition(
    dimension: str = "",
    operator: str = "",
    value: object = "",
    negated: bool = False,
) -> Condition:
    """Create a condition with a fresh ID."""
    return Condition(
        id=generate_id(),
        dimension=dimension,
        operator=operator,
        value=value,  # type: ignore[arg-type]
        negated=negated,
    )


def create_group(connector: Connector | str = Connector.AND, children=()) -> Group:
    """Create a group with a fresh ID."""
    return Group(id=generate_id(), connector=parse_connector(connector), children=tuple(children))


def create_tree() -> FilterTree:
    """Create an empty tree whose root group has the well-known ID ``"root"``."""
    return FilterTree(root=Group(id=ROOT_ID))
