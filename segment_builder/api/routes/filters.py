"""
FastAPI routes exposing the filter engine.

Every endpoint is stateless: the caller sends a filter (wire format or tree
document) and receives the engine's answer. Segments are never stored here.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from segment_builder.api.schemas.filter import (
    DimensionResponse,
    FilterRequest,
    FilterResponse,
    PreviewRequestBody,
    PreviewResponse,
    SegmentPayloadRequest,
    SegmentPayloadResponse,
    SerializeRequest,
    SummaryResponse,
    TreeDocument,
    ValidationResponse,
)
from segment_builder.core.dependencies import Catalog, Counter, Limits
from segment_builder.core.errors import WireFormatError
from segment_builder.core.observability import metrics
from segment_builder.filters.nodes import FilterTree
from segment_builder.filters.serializer import (
    from_wire_format,
    to_wire_format,
    tree_from_dict,
    tree_to_dict,
    wire_fingerprint,
)
from segment_builder.filters.summary import summarize
from segment_builder.filters.validator import ValidationResult, validate
from segment_builder.services.preview import build_preview_request
from segment_builder.services.segments import build_segment_payload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Filters"])


def _parse(wire: Any) -> FilterTree:
    try:
        return from_wire_format(wire)
    except WireFormatError:
        metrics.filter_wire_rejections_total.inc()
        raise


def _validate(tree: FilterTree, catalog: Catalog, limits: Limits) -> ValidationResult:
    result = validate(tree, catalog, limits)
    metrics.record_validation(result.valid, result.condition_count)
    return result


def _reject_invalid(result: ValidationResult) -> None:
    if not result.valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Filter is not valid", "errors": list(result.errors)},
        )


# ============================================================================
# Dimensions
# ============================================================================


@router.get("/dimensions", response_model=list[DimensionResponse])
def list_dimensions(catalog: Catalog) -> list[dict[str, Any]]:
    """List the dimensions a filter may use, with their allowed operators."""
    return catalog.as_dicts()


@router.get("/dimensions/{key}", response_model=DimensionResponse)
def get_dimension(key: str, catalog: Catalog) -> dict[str, Any]:
    return catalog.require(key).as_dict()


# ============================================================================
# Filters
# ============================================================================


@router.post("/filters/validate", response_model=ValidationResponse)
def validate_filter(body: FilterRequest, catalog: Catalog, limits: Limits) -> dict[str, Any]:
    """
    Validate a wire-format filter.

    Validation failures are reported in the body with 200; only input that
    cannot be parsed at all is rejected (422).
    """
    tree = _parse(body.filter)
    result = _validate(tree, catalog, limits)
    return {
        "valid": result.valid,
        "errors": list(result.errors),
        "condition_count": result.condition_count,
        "depth": result.depth,
        "summary": summarize(tree),
    }


@router.post("/filters/parse", response_model=TreeDocument)
def parse_filter(body: FilterRequest) -> dict[str, Any]:
    """Convert a wire-format filter into a tree document with fresh node IDs."""
    return tree_to_dict(_parse(body.filter))


@router.post("/filters/serialize", response_model=FilterResponse)
def serialize_filter(body: SerializeRequest) -> dict[str, Any]:
    """Convert a tree document back into wire format."""
    tree = tree_from_dict(body.tree.model_dump())
    return {"filter": to_wire_format(tree), "fingerprint": wire_fingerprint(tree)}


@router.post("/filters/summary", response_model=SummaryResponse)
def summarize_filter(body: FilterRequest) -> dict[str, str]:
    return {"summary": summarize(_parse(body.filter))}


@router.post("/filters/preview", response_model=PreviewResponse)
async def preview_filter(
    body: PreviewRequestBody, catalog: Catalog, limits: Limits, counter: Counter
) -> dict[str, Any]:
    """Count the visitors matching a filter through the configured counter."""
    tree = _parse(body.filter)
    _reject_invalid(_validate(tree, catalog, limits))

    request = build_preview_request(tree, body.date_range, catalog, limits)
    matching_count = await counter.count(request)
    return {"matching_count": matching_count, "fingerprint": request.fingerprint}


# ============================================================================
# Segments
# ============================================================================


@router.post("/segments/payload", response_model=SegmentPayloadResponse)
def segment_payload(
    body: SegmentPayloadRequest, catalog: Catalog, limits: Limits
) -> dict[str, Any]:
    """Build the body for saving a filter as a segment (nothing is stored)."""
    tree = _parse(body.filter)
    _reject_invalid(_validate(tree, catalog, limits))

    return build_segment_payload(
        tree, body.name, body.type, labels=body.labels, catalog=catalog, limits=limits
    )
