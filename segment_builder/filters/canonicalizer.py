"""
JSON Canonicalization for filter fingerprints.

The same filter must always produce byte-for-byte identical JSON so that:
- Preview responses can be matched to the filter they were requested for
- Saved segments can be compared for real semantic changes
"""

import hashlib
import json
from typing import Any


def canonicalize_json(obj: Any) -> Any:
    """
    Produce a deterministic representation of a JSON-compatible object.

    - Dictionary keys are sorted alphabetically at every level
    - Tuples become lists
    - List order is preserved (child order is meaningful in a filter)

    Example:
        >>> canonicalize_json({"operator": "and", "children": [("is", "country", ["US"])]})
        {'children': [['is', 'country', ['US']]], 'operator': 'and'}
    """
    if isinstance(obj, dict):
        return {k: canonicalize_json(v) for k, v in sorted(obj.items())}

    elif isinstance(obj, (list, tuple)):
        return [canonicalize_json(item) for item in obj]

    else:
        # Primitives (str, int, float, bool, None) pass through unchanged
        return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Serialize to compact canonical JSON.

    Example:
        >>> to_canonical_json_string({"operator": "or", "children": []})
        '{"children":[],"operator":"or"}'
    """
    canonical = canonicalize_json(obj)

    # separators=(',', ':') removes spaces after commas and colons
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of ``obj``."""
    return hashlib.sha256(to_canonical_json_string(obj).encode("utf-8")).hexdigest()
