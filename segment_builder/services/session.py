"""
Filter editing session.

Owns the current tree for one editor and packages the edit loop: apply a
mutation, mark the session dirty, re-validate. Callers read ``is_valid`` to
enable apply/save/preview and ``last_error`` to show a rejected edit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from segment_builder.core.errors import ValidationError
from segment_builder.domain.enums import Connector, EmptyGroupPolicy
from segment_builder.filters import mutations
from segment_builder.filters.dimensions import DimensionCatalog
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.mutations import MutationResult
from segment_builder.filters.nodes import Condition, FilterTree, Group, create_tree
from segment_builder.filters.serializer import WireFilter, from_wire_format, to_wire_format
from segment_builder.filters.summary import summarize
from segment_builder.filters.validator import ValidationResult, validate
from segment_builder.services.segments import tree_from_segment

if TYPE_CHECKING:
    from segment_builder.core.config import Settings

logger = logging.getLogger(__name__)


class FilterSession:
    """Mutable holder of an immutable filter tree."""

    def __init__(
        self,
        catalog: DimensionCatalog | None = None,
        limits: FilterLimits | None = None,
        empty_group_policy: EmptyGroupPolicy = EmptyGroupPolicy.RETAIN,
        tree: FilterTree | None = None,
    ):
        self.catalog = catalog
        self.limits = limits or FilterLimits()
        self.empty_group_policy = EmptyGroupPolicy(empty_group_policy)
        self.is_dirty = False
        self.last_error: str | None = None
        self._set_tree(tree or create_tree())

    @classmethod
    def from_settings(
        cls, config: Settings, catalog: DimensionCatalog | None = None
    ) -> FilterSession:
        """Session using the configured limits and empty-group policy."""
        return cls(
            catalog=catalog,
            limits=config.filter_limits,
            empty_group_policy=config.filter_empty_group_policy,
        )

    @property
    def tree(self) -> FilterTree:
        return self._tree

    @property
    def validation(self) -> ValidationResult:
        return self._validation

    @property
    def is_valid(self) -> bool:
        return self._validation.valid

    @property
    def summary(self) -> str:
        return summarize(self._tree)

    def _set_tree(self, tree: FilterTree) -> None:
        self._tree = tree
        self._validation = validate(tree, self.catalog, self.limits)

    def _commit(self, tree: FilterTree) -> FilterTree:
        self.last_error = None
        if tree is not self._tree:
            self.is_dirty = True
            self._set_tree(tree)
        return self._tree

    def _commit_result(self, result: MutationResult) -> MutationResult:
        self._commit(result.tree)
        self.last_error = result.error
        if result.error:
            logger.info("Filter edit rejected: %s", result.error)
        return result

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_condition(
        self, group_id: str, partial: Condition | Mapping[str, Any] | None = None
    ) -> FilterTree:
        return self._commit(mutations.add_condition(self._tree, group_id, partial))

    def update_condition(self, condition_id: str, updates: Mapping[str, Any]) -> FilterTree:
        return self._commit(mutations.update_condition(self._tree, condition_id, updates))

    def delete_condition(self, condition_id: str) -> FilterTree:
        return self._commit(
            mutations.delete_condition(self._tree, condition_id, self.empty_group_policy)
        )

    def add_nested_group(
        self, parent_group_id: str, new_group: Group | None = None
    ) -> MutationResult:
        return self._commit_result(
            mutations.add_nested_group(self._tree, parent_group_id, new_group, self.limits)
        )

    def delete_nested_group(self, group_id: str) -> FilterTree:
        return self._commit(mutations.delete_nested_group(self._tree, group_id))

    def update_connector(self, group_id: str, connector: Connector | str) -> FilterTree:
        return self._commit(mutations.update_connector(self._tree, group_id, connector))

    def move_item(
        self, item_id: str, new_index: int, target_group_id: str | None = None
    ) -> MutationResult:
        return self._commit_result(
            mutations.move_item(self._tree, item_id, new_index, target_group_id, self.limits)
        )

    def group_conditions(
        self, item_ids: Iterable[str], connector: Connector | str = Connector.AND
    ) -> MutationResult:
        return self._commit_result(
            mutations.group_conditions(self._tree, item_ids, connector, self.limits)
        )

    def ungroup(self, group_id: str) -> FilterTree:
        return self._commit(mutations.ungroup(self._tree, group_id))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear_all(self) -> FilterTree:
        self._set_tree(mutations.clear_all())
        self.is_dirty = False
        self.last_error = None
        return self._tree

    def load_wire(self, wire: WireFilter | str) -> FilterTree:
        """Replace the tree with one parsed from wire format (raises WireFormatError)."""
        self._set_tree(from_wire_format(wire))
        self.is_dirty = False
        self.last_error = None
        return self._tree

    def load_segment(self, saved: Mapping[str, Any]) -> FilterTree:
        """Replace the tree with the filter of a saved segment record."""
        self._set_tree(tree_from_segment(saved))
        self.is_dirty = False
        self.last_error = None
        return self._tree

    def mark_saved(self) -> None:
        self.is_dirty = False

    def to_wire(self) -> WireFilter:
        """
        Serialize the current tree for apply/save.

        Raises:
            ValidationError: If the tree is not valid
        """
        if not self._validation.valid:
            raise ValidationError(
                "Filter is not valid",
                details={"errors": list(self._validation.errors)},
            )
        return to_wire_format(self._tree)
