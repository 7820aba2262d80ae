"""Structural limits applied to filter trees."""

from dataclasses import dataclass

DEFAULT_MAX_CONDITIONS = 20
DEFAULT_MAX_DEPTH = 3


@dataclass(frozen=True)
class FilterLimits:
    """
    Size and nesting limits for one embedding context.

    Depth convention: the root group is depth 1 and every nested group adds
    one level, so ``max_depth=3`` allows root -> group -> group.
    """

    max_conditions: int = DEFAULT_MAX_CONDITIONS
    max_depth: int = DEFAULT_MAX_DEPTH

    def __post_init__(self) -> None:
        if self.max_conditions < 1:
            raise ValueError("max_conditions must be at least 1")
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
