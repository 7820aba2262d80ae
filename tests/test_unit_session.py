"""
Unit tests for FilterSession.

Tests cover:
- Dirty tracking across edits, loads and saves
- Re-validation after every edit
- Limit errors surfaced through last_error
- Serialization guarded by validity
"""

import pytest

from segment_builder.core.config import Settings
from segment_builder.core.errors import ValidationError, WireFormatError
from segment_builder.domain.enums import EmptyGroupPolicy
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.nodes import ROOT_ID
from segment_builder.services.session import FilterSession


@pytest.fixture
def session(catalog):
    return FilterSession(catalog=catalog)


class TestEditing:
    @pytest.mark.anyio
    async def test_new_session_is_clean_and_invalid(self, session):
        assert not session.is_dirty
        assert not session.is_valid
        assert session.validation.errors == ("Filter must have at least one condition.",)
        assert session.summary == "No filters applied"

    @pytest.mark.anyio
    async def test_edits_mark_dirty_and_revalidate(self, session):
        session.add_condition(ROOT_ID, {"dimension": "country", "operator": "equals"})
        assert session.is_dirty
        assert session.validation.errors == ("Condition 1 is missing a value.",)

        condition_id = session.tree.root.children[0].id
        session.update_condition(condition_id, {"value": "US"})
        assert session.is_valid
        assert session.summary == "country = US"

    @pytest.mark.anyio
    async def test_noop_edit_keeps_clean(self, session):
        tree = session.tree
        assert session.update_condition("missing", {"value": "x"}) is tree
        assert not session.is_dirty

    @pytest.mark.anyio
    async def test_limit_error_is_recorded(self, catalog):
        session = FilterSession(catalog=catalog, limits=FilterLimits(max_depth=1))
        result = session.add_nested_group(ROOT_ID)
        assert not result.ok
        assert session.last_error == "Maximum nesting depth of 1 levels exceeded."
        assert not session.is_dirty

        session.add_condition(ROOT_ID, {"dimension": "country", "operator": "is_set"})
        assert session.last_error is None

    @pytest.mark.anyio
    async def test_group_move_and_ungroup(self, session):
        for dimension in ("country", "browser"):
            session.add_condition(ROOT_ID, {"dimension": dimension, "operator": "is_set"})
        first, second = (child.id for child in session.tree.root.children)

        assert session.group_conditions([first, second], "OR").ok
        group_id = session.tree.root.children[0].id
        session.update_connector(group_id, "AND")
        assert session.move_item(second, 0, ROOT_ID).ok
        assert [c.id for c in session.tree.root.children] == [second, group_id]

        session.ungroup(group_id)
        assert [c.id for c in session.tree.root.children] == [second, first]

    @pytest.mark.anyio
    async def test_delete_uses_configured_policy(self, catalog):
        session = FilterSession(catalog=catalog, empty_group_policy=EmptyGroupPolicy.PRUNE)
        session.add_nested_group(ROOT_ID)
        group_id = session.tree.root.children[0].id
        session.add_condition(group_id, {"dimension": "os", "operator": "is_set"})
        condition_id = session.tree.root.children[0].children[0].id

        session.delete_condition(condition_id)
        assert session.tree.is_empty

    @pytest.mark.anyio
    async def test_delete_nested_group(self, session):
        session.add_nested_group(ROOT_ID)
        session.delete_nested_group(session.tree.root.children[0].id)
        assert session.tree.is_empty


class TestLifecycle:
    @pytest.mark.anyio
    async def test_load_wire_resets_dirty(self, session):
        session.add_condition(ROOT_ID)
        session.load_wire([["is", "country", ["US"]]])
        assert not session.is_dirty
        assert session.is_valid

    @pytest.mark.anyio
    async def test_load_wire_rejects_malformed(self, session):
        with pytest.raises(WireFormatError):
            session.load_wire([["is", "country"]])
        assert session.tree.is_empty

    @pytest.mark.anyio
    async def test_load_segment(self, session):
        session.load_segment(
            {"name": "US", "segment_data": {"filters": [["is", "country", ["US"]]], "labels": {}}}
        )
        assert session.summary == "country = US"
        assert not session.is_dirty

    @pytest.mark.anyio
    async def test_mark_saved_and_clear_all(self, session):
        session.add_condition(ROOT_ID, {"dimension": "country", "operator": "is_set"})
        session.mark_saved()
        assert not session.is_dirty

        session.clear_all()
        assert session.tree.is_empty
        assert not session.is_dirty

    @pytest.mark.anyio
    async def test_to_wire_requires_valid_tree(self, session):
        with pytest.raises(ValidationError) as exc_info:
            session.to_wire()
        assert exc_info.value.details["errors"] == ["Filter must have at least one condition."]

        session.load_wire([["is", "country", ["US"]], ["is", "browser", ["Chrome"]]])
        assert session.to_wire() == [["is", "country", ["US"]], ["is", "browser", ["Chrome"]]]

    @pytest.mark.anyio
    async def test_from_settings(self, catalog):
        config = Settings(filter_max_depth=2, filter_empty_group_policy="prune")
        session = FilterSession.from_settings(config, catalog)
        assert session.limits == FilterLimits(max_conditions=20, max_depth=2)
        assert session.empty_group_policy is EmptyGroupPolicy.PRUNE
