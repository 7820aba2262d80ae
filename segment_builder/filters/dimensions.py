"""
Dimension metadata catalog.

The embedding application supplies the list of dimensions a user may filter
on, together with the operators each one supports. The engine never imports a
catalog of its own: validators and renderers receive a ``DimensionCatalog``
as an argument.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from segment_builder.core.errors import NotFoundError, ValidationError
from segment_builder.domain.enums import FilterOperator, ValueType
from segment_builder.filters.operators import parse_operator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dimension:
    """A filterable visit/event attribute."""

    key: str
    label: str
    group: str = "visit"
    allowed_operators: tuple[FilterOperator, ...] = field(default_factory=tuple)
    value_type: ValueType = ValueType.STRING

    def allows(self, operator: FilterOperator | str) -> bool:
        parsed = parse_operator(operator)
        return parsed is not None and parsed in self.allowed_operators

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "group": self.group,
            "allowed_operators": [op.value for op in self.allowed_operators],
            "value_type": self.value_type.value,
        }


class DimensionCatalog:
    """
    Read-only lookup of dimensions by key, in declaration order.

    Example:
        >>> catalog = DimensionCatalog.from_dicts([
        ...     {"key": "country", "label": "Country", "group": "location",
        ...      "allowed_operators": ["equals", "is_one_of"]},
        ... ])
        >>> catalog.allows("country", "equals")
        True
    """

    def __init__(self, dimensions: Iterable[Dimension]):
        self._dimensions: dict[str, Dimension] = {}
        for dimension in dimensions:
            if dimension.key in self._dimensions:
                raise ValidationError(
                    f"Duplicate dimension key '{dimension.key}'",
                    details={"key": dimension.key},
                )
            self._dimensions[dimension.key] = dimension

    @classmethod
    def from_dicts(cls, entries: Iterable[Mapping[str, Any]]) -> DimensionCatalog:
        """
        Build a catalog from plain dictionaries.

        Each entry needs ``key`` and ``label``; ``group``, ``allowed_operators``
        and ``value_type`` are optional.

        Raises:
            ValidationError: If an entry is malformed or names an unknown operator
        """
        dimensions = []
        for i, entry in enumerate(entries):
            key = entry.get("key")
            label = entry.get("label")
            if not isinstance(key, str) or not key:
                raise ValidationError(
                    f"Dimension at index {i} is missing 'key'", details={"index": i}
                )
            if not isinstance(label, str) or not label:
                raise ValidationError(
                    f"Dimension '{key}' is missing 'label'", details={"key": key}
                )

            operators = []
            for raw in entry.get("allowed_operators", []):
                parsed = parse_operator(raw)
                if parsed is None:
                    raise ValidationError(
                        f"Dimension '{key}' lists unknown operator '{raw}'",
                        details={"key": key, "operator": raw},
                    )
                operators.append(parsed)

            try:
                value_type = ValueType(entry.get("value_type", ValueType.STRING.value))
            except ValueError as e:
                raise ValidationError(
                    f"Dimension '{key}' has unknown value_type",
                    details={"key": key, "value_type": entry.get("value_type")},
                ) from e

            dimensions.append(
                Dimension(
                    key=key,
                    label=label,
                    group=entry.get("group", "visit"),
                    allowed_operators=tuple(operators),
                    value_type=value_type,
                )
            )
        return cls(dimensions)

    def __contains__(self, key: object) -> bool:
        return key in self._dimensions

    def __iter__(self) -> Iterator[Dimension]:
        return iter(self._dimensions.values())

    def __len__(self) -> int:
        return len(self._dimensions)

    def get(self, key: str) -> Dimension | None:
        return self._dimensions.get(key)

    def require(self, key: str) -> Dimension:
        dimension = self._dimensions.get(key)
        if dimension is None:
            raise NotFoundError(f"Unknown dimension '{key}'", details={"key": key})
        return dimension

    def keys(self) -> list[str]:
        return list(self._dimensions)

    def allows(self, key: str, operator: FilterOperator | str) -> bool:
        dimension = self._dimensions.get(key)
        return dimension is not None and dimension.allows(operator)

    def label_for(self, key: str) -> str:
        dimension = self._dimensions.get(key)
        return dimension.label if dimension else key

    def as_dicts(self) -> list[dict[str, Any]]:
        return [d.as_dict() for d in self._dimensions.values()]


def load_dimension_catalog(path: str | Path) -> DimensionCatalog:
    """
    Load a catalog from a JSON file containing a list of dimension objects.

    Raises:
        ValidationError: If the file is not a JSON list or an entry is malformed
    """
    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)

    if not isinstance(data, list):
        raise ValidationError(
            "Dimension catalog must be a JSON list",
            details={"path": str(path), "type": type(data).__name__},
        )

    catalog = DimensionCatalog.from_dicts(data)
    logger.info("Loaded %d dimensions from %s", len(catalog), path)
    return catalog
