"""
Pydantic schemas for API request/response validation.
"""

# Re-export schemas for convenient imports.
from .filter import FilterRequest as FilterRequest
from .filter import PreviewRequestBody as PreviewRequestBody
from .filter import SegmentPayloadRequest as SegmentPayloadRequest
from .filter import TreeDocument as TreeDocument
from .filter import ValidationResponse as ValidationResponse
