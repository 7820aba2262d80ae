"""
Saved-segment payloads.

The save/load boundary with the segment store: build the body a store expects
from a valid tree, and hydrate a tree from a stored segment record. No network
I/O happens here; the caller owns transport.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from segment_builder.core.errors import ValidationError, WireFormatError
from segment_builder.domain.enums import SegmentType
from segment_builder.filters.dimensions import DimensionCatalog
from segment_builder.filters.limits import FilterLimits
from segment_builder.filters.mutations import iter_conditions
from segment_builder.filters.nodes import FilterTree
from segment_builder.filters.serializer import from_wire_format, to_wire_format
from segment_builder.filters.summary import render_condition
from segment_builder.filters.validator import validate

logger = logging.getLogger(__name__)

MAX_SEGMENT_NAME_LENGTH = 255
# Placeholder names stop growing once they pass this many characters
_PLACEHOLDER_SOFT_LIMIT = 100


def build_segment_payload(
    tree: FilterTree,
    name: str,
    visibility: SegmentType | str = SegmentType.PERSONAL,
    labels: Mapping[str, str] | None = None,
    catalog: DimensionCatalog | None = None,
    limits: FilterLimits | None = None,
) -> dict[str, Any]:
    """
    Build the body for saving ``tree`` as a segment.

    Returns:
        ``{"name", "type", "segment_data": {"filters", "labels"}}``

    Raises:
        ValidationError: If the name is blank/too long, the visibility is
                         unknown, or the tree does not validate
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Segment name is required")
    if len(name) > MAX_SEGMENT_NAME_LENGTH:
        raise ValidationError(
            f"Segment name cannot be longer than {MAX_SEGMENT_NAME_LENGTH} characters",
            details={"length": len(name)},
        )

    try:
        segment_type = SegmentType(visibility)
    except ValueError as e:
        raise ValidationError(
            f"Segment type must be one of {[t.value for t in SegmentType]}",
            details={"type": visibility},
        ) from e

    result = validate(tree, catalog, limits)
    if not result.valid:
        raise ValidationError("Filter is not valid", details={"errors": list(result.errors)})

    payload = {
        "name": name,
        "type": segment_type.value,
        "segment_data": {"filters": to_wire_format(tree), "labels": dict(labels or {})},
    }
    logger.info(
        "Built %s segment payload with %d conditions", segment_type.value, result.condition_count
    )
    return payload


def tree_from_segment(saved: Mapping[str, Any]) -> FilterTree:
    """
    Hydrate a tree from a saved segment record.

    Accepts either a full record (``{"segment_data": {"filters": ...}}``) or
    the bare ``segment_data`` mapping.

    Raises:
        WireFormatError: If the record has no filters or they are malformed
    """
    data = saved.get("segment_data", saved)
    if not isinstance(data, Mapping) or "filters" not in data:
        raise WireFormatError(
            "Segment has no filters", details={"path": "$.segment_data.filters"}
        )
    return from_wire_format(data["filters"])


def segment_name_placeholder(tree: FilterTree) -> str:
    """Suggested segment name built from the conditions, e.g. ``country = US and os = iOS``."""
    name = ""
    for condition in iter_conditions(tree):
        if len(name) > _PLACEHOLDER_SOFT_LIMIT:
            break
        text = render_condition(condition)
        name = f"{name} and {text}" if name else text
    return name[:MAX_SEGMENT_NAME_LENGTH]
