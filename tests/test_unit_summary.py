import pytest

from segment_builder.filters.mutations import (
    add_condition,
    add_nested_group,
    update_condition,
    update_connector,
)
from segment_builder.filters.nodes import ROOT_ID, create_tree
from segment_builder.filters.operators import OperatorVocabulary
from segment_builder.filters.summary import EMPTY_SUMMARY, render_condition, summarize


def _single(**fields):
    return add_condition(create_tree(), ROOT_ID, fields)


@pytest.mark.anyio
async def test_empty_tree():
    assert summarize(create_tree()) == EMPTY_SUMMARY == "No filters applied"


@pytest.mark.anyio
async def test_and_then_or(us_chrome_tree):
    assert summarize(us_chrome_tree) == "country = US AND browser = Chrome"
    tree = update_connector(us_chrome_tree, ROOT_ID, "OR")
    assert summarize(tree) == "country = US OR browser = Chrome"


@pytest.mark.anyio
async def test_nested_groups_are_parenthesized(nested_tree):
    assert summarize(nested_tree) == "country = US AND (browser = Chrome OR os = iOS)"


@pytest.mark.anyio
async def test_empty_nested_group_is_skipped(us_chrome_tree):
    tree = add_nested_group(us_chrome_tree, ROOT_ID).tree
    assert summarize(tree) == "country = US AND browser = Chrome"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"operator": "does_not_equal", "value": "US"}, "country != US"),
        ({"operator": "is_one_of", "value": ["US", "CA"]}, "country is one of US, CA"),
        ({"operator": "is_not_one_of", "value": ["US"]}, "country is not one of US"),
        ({"operator": "contains", "value": "U"}, "country contains U"),
        ({"operator": "does_not_contain", "value": "U"}, "country does not contain U"),
        ({"operator": "is_set"}, "country is set"),
        ({"operator": "is_not_set"}, "country is not set"),
        ({"operator": "equals", "value": "US", "negated": True}, "country != US"),
        ({"operator": "is_set", "negated": True}, "country is not set"),
    ],
)
async def test_condition_rendering(fields, expected):
    assert summarize(_single(dimension="country", **fields)) == expected


@pytest.mark.anyio
async def test_injected_labels(us_chrome_tree):
    assert summarize(us_chrome_tree, {"equals": "is"}) == "country is US AND browser is Chrome"
    vocabulary = OperatorVocabulary({"equals": "=="})
    assert summarize(us_chrome_tree, vocabulary) == "country == US AND browser == Chrome"


@pytest.mark.anyio
async def test_incomplete_condition_still_renders(us_chrome_tree):
    tree = update_condition(us_chrome_tree, us_chrome_tree.root.children[1].id, {"operator": ""})
    assert summarize(tree) == "country = US AND browser"
    assert render_condition(_single().root.children[0]) == ""
