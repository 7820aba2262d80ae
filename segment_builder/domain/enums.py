"""
Domain enums for the segment filter engine.

These enums provide type-safe representations of the vocabularies shared by
the engine, the wire format and the HTTP API.
"""

from enum import Enum


class NodeKind(str, Enum):
    """Discriminator for filter tree nodes."""

    CONDITION = "condition"
    GROUP = "group"


class Connector(str, Enum):
    """Boolean combinator attached to a group."""

    AND = "AND"
    OR = "OR"


class FilterOperator(str, Enum):
    """
    Internal operator vocabulary used by conditions.
    Translated to the wire vocabulary by the serializer.
    """

    EQUALS = "equals"
    DOES_NOT_EQUAL = "does_not_equal"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "does_not_contain"
    IS_ONE_OF = "is_one_of"
    IS_NOT_ONE_OF = "is_not_one_of"
    IS_SET = "is_set"
    IS_NOT_SET = "is_not_set"


class WireOperator(str, Enum):
    """Operator vocabulary of the analytics backend and saved segments."""

    IS = "is"
    IS_NOT = "is_not"
    CONTAINS = "contains"
    CONTAINS_NOT = "contains_not"
    IS_SET = "is_set"
    IS_NOT_SET = "is_not_set"


class ValueType(str, Enum):
    """Value type of a dimension."""

    STRING = "string"
    NUMBER = "number"


class SegmentType(str, Enum):
    """Visibility scope of a saved segment."""

    PERSONAL = "personal"
    SITE = "site"


class EmptyGroupPolicy(str, Enum):
    """
    What happens to a nested group whose last child was deleted.

    RETAIN keeps the empty group for the user to fill or remove.
    PRUNE removes it, cascading upwards (the root is never removed).
    """

    RETAIN = "retain"
    PRUNE = "prune"


class PreviewStatus(str, Enum):
    """Lifecycle of a visitor-count preview."""

    IDLE = "idle"
    PENDING = "pending"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    INVALID = "invalid"
