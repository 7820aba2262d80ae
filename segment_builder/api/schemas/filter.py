"""
Pydantic schemas for the filter and segment endpoints.

Filters travel in wire format (flat list, nested object, or a JSON string of
either); the engine's serializer does the structural checks, so the schemas
only pin down the outer shape.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from segment_builder.domain.enums import FilterOperator, SegmentType, ValueType

WireFilterField = list[Any] | dict[str, Any] | str

_FLAT_EXAMPLE = [["is", "country", ["US"]], ["is", "browser", ["Chrome"]]]


# ============================================================================
# Dimension Schemas
# ============================================================================


class DimensionResponse(BaseModel):
    key: str
    label: str
    group: str
    allowed_operators: list[FilterOperator]
    value_type: ValueType


# ============================================================================
# Filter Schemas
# ============================================================================


class FilterRequest(BaseModel):
    """A filter in wire format."""

    filter: WireFilterField = Field(
        ...,
        description="Flat [[op, dimension, values], ...] list or nested {operator, children} object",
        examples=[_FLAT_EXAMPLE],
    )


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    condition_count: int
    depth: int
    summary: str


class TreeDocument(BaseModel):
    """Lossless tree document including node IDs."""

    version: int = 1
    root: dict[str, Any]

    @field_validator("root")
    @classmethod
    def validate_root_is_group(cls, v: dict[str, Any]) -> dict[str, Any]:
        if v.get("type") != "group":
            raise ValueError("root must be a group node")
        return v


class SerializeRequest(BaseModel):
    tree: TreeDocument


class FilterResponse(BaseModel):
    filter: list[Any] | dict[str, Any]
    fingerprint: str


class SummaryResponse(BaseModel):
    summary: str


# ============================================================================
# Segment Schemas
# ============================================================================


class SegmentPayloadRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["US Chrome visitors"])
    type: SegmentType = Field(default=SegmentType.PERSONAL)
    filter: WireFilterField = Field(..., examples=[_FLAT_EXAMPLE])
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class SegmentData(BaseModel):
    filters: list[Any] | dict[str, Any]
    labels: dict[str, str]


class SegmentPayloadResponse(BaseModel):
    name: str
    type: SegmentType
    segment_data: SegmentData


# ============================================================================
# Preview Schemas
# ============================================================================


class PreviewRequestBody(FilterRequest):
    date_range: dict[str, Any] | str | None = Field(
        default=None, examples=[{"period": "30d"}]
    )


class PreviewResponse(BaseModel):
    matching_count: int
    fingerprint: str
