"""
Services package for the Segment Builder.

Stateful and boundary-facing logic built on the filter engine: the editing
session, the debounced visitor-count preview and saved-segment payloads.
"""

from segment_builder.services.preview import HttpVisitorCounter, PreviewScheduler
from segment_builder.services.segments import build_segment_payload, tree_from_segment
from segment_builder.services.session import FilterSession

__all__ = [
    "FilterSession",
    "HttpVisitorCounter",
    "PreviewScheduler",
    "build_segment_payload",
    "tree_from_segment",
]
