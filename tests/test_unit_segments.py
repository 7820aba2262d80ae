import pytest

from segment_builder.core.errors import ValidationError, WireFormatError
from segment_builder.filters.mutations import add_condition
from segment_builder.filters.nodes import ROOT_ID, create_tree
from segment_builder.services.segments import (
    build_segment_payload,
    segment_name_placeholder,
    tree_from_segment,
)


class TestBuildSegmentPayload:
    @pytest.mark.anyio
    async def test_payload_shape(self, us_chrome_tree, catalog):
        payload = build_segment_payload(
            us_chrome_tree, "  US Chrome  ", "site", {"country": "Country"}, catalog
        )
        assert payload == {
            "name": "US Chrome",
            "type": "site",
            "segment_data": {
                "filters": [["is", "country", ["US"]], ["is", "browser", ["Chrome"]]],
                "labels": {"country": "Country"},
            },
        }

    @pytest.mark.anyio
    async def test_defaults_to_personal(self, us_chrome_tree):
        payload = build_segment_payload(us_chrome_tree, "Mine")
        assert payload["type"] == "personal"
        assert payload["segment_data"]["labels"] == {}

    @pytest.mark.anyio
    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 256])
    async def test_rejects_bad_names(self, us_chrome_tree, name):
        with pytest.raises(ValidationError):
            build_segment_payload(us_chrome_tree, name)

    @pytest.mark.anyio
    async def test_rejects_unknown_type(self, us_chrome_tree):
        with pytest.raises(ValidationError) as exc_info:
            build_segment_payload(us_chrome_tree, "Shared", "public")
        assert exc_info.value.details == {"type": "public"}

    @pytest.mark.anyio
    async def test_rejects_invalid_tree(self, catalog):
        tree = add_condition(create_tree(), ROOT_ID, {"dimension": "country", "operator": "equals"})
        with pytest.raises(ValidationError) as exc_info:
            build_segment_payload(tree, "Broken", catalog=catalog)
        assert exc_info.value.details["errors"] == ["Condition 1 is missing a value."]


class TestTreeFromSegment:
    @pytest.mark.anyio
    async def test_full_record_and_bare_data(self, us_chrome_tree):
        payload = build_segment_payload(us_chrome_tree, "US Chrome")
        for saved in (payload, payload["segment_data"]):
            tree = tree_from_segment(saved)
            assert [c.value for c in tree.root.children] == ["US", "Chrome"]

    @pytest.mark.anyio
    @pytest.mark.parametrize("saved", [{}, {"segment_data": {}}, {"segment_data": "filters"}])
    async def test_missing_filters(self, saved):
        with pytest.raises(WireFormatError) as exc_info:
            tree_from_segment(saved)
        assert exc_info.value.details["path"] == "$.segment_data.filters"

    @pytest.mark.anyio
    async def test_malformed_filters(self):
        with pytest.raises(WireFormatError):
            tree_from_segment({"segment_data": {"filters": [["is"]]}})


class TestNamePlaceholder:
    @pytest.mark.anyio
    async def test_joins_conditions(self, nested_tree):
        assert segment_name_placeholder(nested_tree) == (
            "country = US and browser = Chrome and os = iOS"
        )

    @pytest.mark.anyio
    async def test_empty_tree(self):
        assert segment_name_placeholder(create_tree()) == ""

    @pytest.mark.anyio
    async def test_stops_after_soft_limit(self):
        tree = create_tree()
        for _ in range(10):
            tree = add_condition(
                tree, ROOT_ID, {"dimension": "page", "operator": "contains", "value": "x" * 40}
            )
        name = segment_name_placeholder(tree)
        # 54 characters per condition: the third would start past the soft limit
        assert name.count(" and ") == 1
        assert len(name) <= 255
