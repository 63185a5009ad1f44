"""Structural field constraints and cross-field dependencies."""

from dataclasses import dataclass
from enum import Enum

from .validation_rule import Severity


class ConstraintKind(Enum):
    """Kinds of single-field constraint derived from schema metadata."""

    REQUIRED = "required"
    UNIQUE = "unique"
    FORMAT = "format"
    RANGE = "range"


@dataclass(frozen=True)
class FieldConstraint:
    """
    A structural requirement on one field.

    ``expression`` is a human-readable summary (``NOT_BLANK``, ``EMAIL``,
    ``RANGE[0, 100]``); the typed attributes carry the machine-checkable bounds.
    """

    field: str
    kind: ConstraintKind
    expression: str
    severity: Severity = Severity.ERROR
    min_value: float | None = None
    max_value: float | None = None
    max_length: int | None = None
    pattern: str | None = None
    allowed_values: tuple[str, ...] = ()
    source_rule_id: str | None = None


class DependencyKind(Enum):
    """How a target field depends on a source field."""

    REQUIRED_IF = "required_if"
    CONDITIONAL = "conditional"


class DependencyOperator(Enum):
    """Boolean operator joining a multi-field dependency."""

    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class FieldDependency:
    """
    A cross-field requirement.

    For REQUIRED_IF the target must be non-blank whenever ``condition`` (itself a
    formula expression) evaluates true. For CONDITIONAL the pair is checked with
    ``operator``: AND flags records where both fields are blank, OR flags records
    where either is blank.
    """

    source_field: str
    target_field: str
    kind: DependencyKind
    condition: str
    operator: DependencyOperator | None = None
    source_rule_id: str | None = None
