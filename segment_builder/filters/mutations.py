"""
ID-addressed, copy-on-write edits of a filter tree.

Every operation takes the current ``FilterTree`` and returns a new one. Nodes
on the path from the edited node up to the root are rebuilt; every other
subtree is shared with the input tree. Operations addressed to an unknown ID
return the input tree object itself, so callers can detect no-ops with ``is``.

Operations that can break a structural limit (``add_nested_group``,
``move_item``, ``group_conditions``) return a ``MutationResult`` carrying the
new tree or, on rejection, the unchanged tree plus an error message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Any

from segment_builder.domain.enums import Connector, EmptyGroupPolicy
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.nodes import (
    Condition,
    FilterTree,
    Group,
    Node,
    create_condition,
    create_group,
    create_tree,
    generate_id,
    is_condition,
    is_group,
    parse_connector,
)

logger = logging.getLogger(__name__)

_CONDITION_FIELDS = frozenset({"dimension", "operator", "value", "negated"})


@dataclass(frozen=True)
class MutationResult:
    """Outcome of an edit that may be rejected by a structural limit."""

    tree: FilterTree
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ============================================================================
# Queries
# ============================================================================


def walk(tree: FilterTree) -> Iterator[tuple[Node, Group | None, int]]:
    """
    Depth-first, pre-order walk yielding ``(node, parent, depth)``.

    ``depth`` is the group depth: the root is 1, a nested group is its
    parent's depth + 1, and a condition carries its parent group's depth.
    """
    yield tree.root, None, 1
    yield from _walk_group(tree.root, 1)


def _walk_group(group: Group, depth: int) -> Iterator[tuple[Node, Group | None, int]]:
    for child in group.children:
        if is_group(child):
            yield child, group, depth + 1
            yield from _walk_group(child, depth + 1)
        else:
            yield child, group, depth


def find_node(tree: FilterTree, node_id: str) -> Node | None:
    for node, _parent, _depth in walk(tree):
        if node.id == node_id:
            return node
    return None


def find_parent(tree: FilterTree, node_id: str) -> Group | None:
    for node, parent, _depth in walk(tree):
        if node.id == node_id:
            return parent
    return None


def group_depth(tree: FilterTree, group_id: str) -> int | None:
    """Depth of the group ``group_id`` (root = 1), or None if absent."""
    for node, _parent, depth in walk(tree):
        if node.id == group_id and is_group(node):
            return depth
    return None


def subtree_height(group: Group) -> int:
    """Number of group levels in ``group``'s subtree, counting itself."""
    nested = [subtree_height(child) for child in group.children if is_group(child)]
    return 1 + max(nested, default=0)


def max_depth(tree: FilterTree) -> int:
    return subtree_height(tree.root)


def iter_conditions(tree_or_group: FilterTree | Group) -> Iterator[Condition]:
    """Yield every condition in depth-first child order."""
    group = tree_or_group.root if isinstance(tree_or_group, FilterTree) else tree_or_group
    for child in group.children:
        if is_group(child):
            yield from iter_conditions(child)
        else:
            yield child


def count_conditions(tree_or_group: FilterTree | Group) -> int:
    return sum(1 for _ in iter_conditions(tree_or_group))


def has_or_logic(tree: FilterTree) -> bool:
    return any(
        is_group(node) and node.connector is Connector.OR for node, _p, _d in walk(tree)
    )


def has_nested_groups(tree: FilterTree) -> bool:
    return any(is_group(child) for child in tree.root.children)


def _contains_id(group: Group, node_id: str) -> bool:
    for child in group.children:
        if child.id == node_id:
            return True
        if is_group(child) and _contains_id(child, node_id):
            return True
    return False


def _path_to(group: Group, node_id: str) -> list[Group] | None:
    """Groups from ``group`` down to the parent of ``node_id``."""
    for child in group.children:
        if child.id == node_id:
            return [group]
        if is_group(child):
            below = _path_to(child, node_id)
            if below is not None:
                return [group, *below]
    return None


# ============================================================================
# Copy-on-write core
# ============================================================================

Rewrite = Callable[[Node], Iterable[Node]]


def _rewrite(group: Group, node_id: str, fn: Rewrite) -> Group | None:
    """
    Replace the node ``node_id`` below ``group`` by ``fn(node)``.

    ``fn`` returns zero (delete), one (replace) or several (splice) nodes.
    Returns the rebuilt ``group``, or None if ``node_id`` is not in its subtree.
    """
    for i, child in enumerate(group.children):
        if child.id == node_id:
            replacement = tuple(fn(child))
        elif is_group(child):
            rebuilt = _rewrite(child, node_id, fn)
            if rebuilt is None:
                continue
            replacement = (rebuilt,)
        else:
            continue
        return replace(group, children=group.children[:i] + replacement + group.children[i + 1 :])
    return None


def _apply(tree: FilterTree, node_id: str, fn: Rewrite) -> FilterTree:
    if tree.root.id == node_id:
        (new_root,) = fn(tree.root)
        return replace(tree, root=new_root)

    new_root = _rewrite(tree.root, node_id, fn)
    if new_root is None:
        return tree
    return replace(tree, root=new_root)


def _append(child: Node) -> Rewrite:
    return lambda group: (replace(group, children=(*group.children, child)),)


def _find_group(tree: FilterTree, group_id: str) -> Group | None:
    node = find_node(tree, group_id)
    if node is None or not is_group(node):
        logger.debug("No group with id %s", group_id)
        return None
    return node


def _with_fresh_ids(node: Node) -> Node:
    """Copy of ``node`` (and its subtree) under new IDs, so inserts never duplicate an ID."""
    if is_group(node):
        return replace(
            node, id=generate_id(), children=tuple(_with_fresh_ids(c) for c in node.children)
        )
    return replace(node, id=generate_id())


def _depth_error(max_levels: int) -> str:
    return f"Maximum nesting depth of {max_levels} levels exceeded."


# ============================================================================
# Operations
# ============================================================================


def add_condition(
    tree: FilterTree,
    group_id: str,
    partial: Condition | Mapping[str, Any] | None = None,
) -> FilterTree:
    """
    Append a condition (defaults merged with ``partial``) to a group.

    A ready ``Condition`` is inserted as a copy under a fresh ID.
    """
    if _find_group(tree, group_id) is None:
        return tree

    if isinstance(partial, Condition):
        condition = _with_fresh_ids(partial)
    else:
        overrides = {k: v for k, v in (partial or {}).items() if k in _CONDITION_FIELDS}
        condition = create_condition(**overrides)

    return _apply(tree, group_id, _append(condition))


def update_condition(
    tree: FilterTree, condition_id: str, updates: Mapping[str, Any]
) -> FilterTree:
    """
    Shallow-merge ``updates`` into a condition.

    The ``id`` key is ignored; any key that is not a condition field raises
    ``ValueError``.
    """
    node = find_node(tree, condition_id)
    if node is None or not is_condition(node):
        return tree

    changes = {k: v for k, v in updates.items() if k != "id"}
    unknown = set(changes) - _CONDITION_FIELDS
    if unknown:
        raise ValueError(f"Unknown condition fields: {sorted(unknown)}")

    return _apply(tree, condition_id, lambda c: (replace(c, **changes),))


def delete_condition(
    tree: FilterTree,
    condition_id: str,
    policy: EmptyGroupPolicy = EmptyGroupPolicy.RETAIN,
) -> FilterTree:
    """
    Remove a condition from its parent.

    With ``EmptyGroupPolicy.PRUNE`` a nested group left without children is
    removed as well, repeating upwards; the root is always kept.
    """
    node = find_node(tree, condition_id)
    if node is None or not is_condition(node):
        return tree

    target_id = condition_id
    if EmptyGroupPolicy(policy) is EmptyGroupPolicy.PRUNE:
        path = _path_to(tree.root, condition_id) or []
        # path[0] is the root; walk up while the group would become empty
        for group in reversed(path[1:]):
            if len(group.children) != 1:
                break
            target_id = group.id

    return _apply(tree, target_id, lambda _node: ())


def add_nested_group(
    tree: FilterTree,
    parent_group_id: str,
    new_group: Group | None = None,
    limits: FilterLimits | None = None,
) -> MutationResult:
    """
    Append a nested group under ``parent_group_id``.

    Rejected when the inserted group's deepest level would exceed
    ``limits.max_depth``. A supplied ``new_group`` is inserted with fresh IDs
    throughout its subtree.
    """
    limits = limits or FilterLimits()
    parent_depth = group_depth(tree, parent_group_id)
    if parent_depth is None:
        return MutationResult(tree)

    group = _with_fresh_ids(new_group) if new_group is not None else create_group()
    if parent_depth + subtree_height(group) > limits.max_depth:
        logger.info(
            "Rejected nested group under %s: depth limit %d", parent_group_id, limits.max_depth
        )
        return MutationResult(tree, _depth_error(limits.max_depth))

    return MutationResult(_apply(tree, parent_group_id, _append(group)))


def delete_nested_group(tree: FilterTree, group_id: str) -> FilterTree:
    """Remove a nested group and its subtree; the root cannot be deleted."""
    if group_id == tree.root.id or _find_group(tree, group_id) is None:
        return tree
    return _apply(tree, group_id, lambda _node: ())


def update_connector(tree: FilterTree, group_id: str, connector: Connector | str) -> FilterTree:
    """Set a group's connector; its children are untouched."""
    connector = parse_connector(connector)
    if _find_group(tree, group_id) is None:
        return tree
    return _apply(tree, group_id, lambda g: (replace(g, connector=connector),))


def move_item(
    tree: FilterTree,
    item_id: str,
    new_index: int,
    target_group_id: str | None = None,
    limits: FilterLimits | None = None,
) -> MutationResult:
    """
    Move a condition or group to ``new_index`` of ``target_group_id``.

    Without a target the item is reordered inside its current parent. The
    index is interpreted after the item has been taken out and is clamped to
    the destination's bounds. The condition count is unchanged by a move, so
    only the depth limit can reject it.
    """
    limits = limits or FilterLimits()
    if item_id == tree.root.id:
        return MutationResult(tree, "The root group cannot be moved.")

    item = find_node(tree, item_id)
    source = find_parent(tree, item_id)
    if item is None or source is None:
        return MutationResult(tree)

    target_id = target_group_id or source.id
    target_depth = group_depth(tree, target_id)
    if target_depth is None:
        return MutationResult(tree)

    if is_group(item):
        if target_id == item.id or _contains_id(item, target_id):
            return MutationResult(tree, "A group cannot be moved into itself.")
        if target_depth + subtree_height(item) > limits.max_depth:
            return MutationResult(tree, _depth_error(limits.max_depth))

    def insert(group: Node) -> tuple[Node]:
        index = min(max(new_index, 0), len(group.children))
        children = group.children[:index] + (item,) + group.children[index:]
        return (replace(group, children=children),)

    detached = _apply(tree, item_id, lambda _node: ())
    return MutationResult(_apply(detached, target_id, insert))


def group_conditions(
    tree: FilterTree,
    item_ids: Iterable[str],
    connector: Connector | str = Connector.AND,
    limits: FilterLimits | None = None,
) -> MutationResult:
    """
    Wrap sibling items into a new nested group.

    The new group takes the position of the first selected item and keeps the
    items in their current order. Items that do not share one parent make
    this a no-op.
    """
    limits = limits or FilterLimits()
    wanted = set(item_ids)
    if not wanted or tree.root.id in wanted:
        return MutationResult(tree)

    parent = find_parent(tree, next(iter(wanted)))
    if parent is None:
        return MutationResult(tree)
    selected = [child for child in parent.children if child.id in wanted]
    if len(selected) != len(wanted):
        return MutationResult(tree)

    wrapper = create_group(connector, selected)
    if group_depth(tree, parent.id) + subtree_height(wrapper) > limits.max_depth:
        return MutationResult(tree, _depth_error(limits.max_depth))

    def wrap(group: Node) -> tuple[Node]:
        children: list[Node] = []
        for child in group.children:
            if child.id not in wanted:
                children.append(child)
            elif child is selected[0]:
                children.append(wrapper)
        return (replace(group, children=tuple(children)),)

    return MutationResult(_apply(tree, parent.id, wrap))


def ungroup(tree: FilterTree, group_id: str) -> FilterTree:
    """Splice a nested group's children into its parent at the group's position."""
    if group_id == tree.root.id or _find_group(tree, group_id) is None:
        return tree
    return _apply(tree, group_id, lambda g: g.children)


def clear_all() -> FilterTree:
    """Discard everything and start from an empty tree."""
    return create_tree()
