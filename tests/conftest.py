"""
Pytest configuration and shared fixtures.

Provides:
- The anyio backend (asyncio only)
- A small dimension catalog for validation tests
- Tree builders for the common "country = US AND browser = Chrome" shape
- A FastAPI TestClient with injectable dependencies
"""

from __future__ import annotations

import os
import sys
from collections.abc import Generator
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# NOTE: Tests do NOT auto-discover or default-load any .env files.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("OBSERVABILITY_STRUCTURED_LOGS", "false")

import pytest  # noqa: E402 (import after env setup)
from fastapi.testclient import TestClient  # noqa: E402 (import after env setup)

from segment_builder.core.dependencies import get_dimension_catalog  # noqa: E402
from segment_builder.filters.dimensions import DimensionCatalog  # noqa: E402
from segment_builder.filters.mutations import (  # noqa: E402
    add_condition,
    add_nested_group,
    update_connector,
)
from segment_builder.filters.nodes import ROOT_ID, FilterTree, create_tree  # noqa: E402
from segment_builder.main import create_app  # noqa: E402

CATALOG_ENTRIES = [
    {
        "key": "country",
        "label": "Country",
        "group": "location",
        "allowed_operators": [
            "equals",
            "does_not_equal",
            "is_one_of",
            "is_not_one_of",
            "is_set",
            "is_not_set",
        ],
    },
    {
        "key": "browser",
        "label": "Browser",
        "group": "technology",
        "allowed_operators": [
            "equals",
            "does_not_equal",
            "contains",
            "does_not_contain",
            "is_one_of",
            "is_not_one_of",
            "is_set",
            "is_not_set",
        ],
    },
    {
        "key": "os",
        "label": "Operating System",
        "group": "technology",
        "allowed_operators": ["equals", "does_not_equal", "is_one_of"],
    },
    {
        "key": "device",
        "label": "Device Type",
        "group": "technology",
        "allowed_operators": ["equals", "is_one_of"],
    },
    {
        "key": "page",
        "label": "Page",
        "group": "behavior",
        "allowed_operators": ["equals", "contains", "does_not_contain"],
    },
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def catalog() -> DimensionCatalog:
    return DimensionCatalog.from_dicts(CATALOG_ENTRIES)


def build_us_chrome() -> FilterTree:
    """AND(country equals US, browser equals Chrome)."""
    tree = create_tree()
    tree = add_condition(
        tree, ROOT_ID, {"dimension": "country", "operator": "equals", "value": "US"}
    )
    return add_condition(
        tree, ROOT_ID, {"dimension": "browser", "operator": "equals", "value": "Chrome"}
    )


def build_nested() -> FilterTree:
    """country = US AND (browser = Chrome OR os = iOS)."""
    tree = add_condition(
        create_tree(), ROOT_ID, {"dimension": "country", "operator": "equals", "value": "US"}
    )
    tree = add_nested_group(tree, ROOT_ID).tree
    group_id = tree.root.children[-1].id
    tree = add_condition(
        tree, group_id, {"dimension": "browser", "operator": "equals", "value": "Chrome"}
    )
    tree = add_condition(tree, group_id, {"dimension": "os", "operator": "equals", "value": "iOS"})
    return update_connector(tree, group_id, "OR")


@pytest.fixture
def us_chrome_tree() -> FilterTree:
    return build_us_chrome()


@pytest.fixture
def nested_tree() -> FilterTree:
    return build_nested()


@pytest.fixture
def client(catalog: DimensionCatalog) -> Generator[TestClient, None, None]:
    """TestClient whose routes use the small test catalog."""
    app = create_app()
    app.dependency_overrides[get_dimension_catalog] = lambda: catalog
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
