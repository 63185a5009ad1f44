"""Validation rule entity and its classification enums."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class Severity(Enum):
    """Severity of a violation or constraint."""

    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().lower() == "warning":
            return cls.WARNING
        return cls.ERROR


class Complexity(Enum):
    """Structural complexity class of a rule formula."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"

    @property
    def score(self) -> int:
        return {"simple": 1, "moderate": 2, "complex": 3}[self.value]


class RiskLevel(Enum):
    """Heuristic risk that a rule is hard to satisfy with generated data."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def score(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class RulePattern(Enum):
    """Structural pattern tags; a rule may carry several."""

    REQUIRED_FIELD_CHECK = "REQUIRED_FIELD_CHECK"
    CONDITIONAL_REQUIREMENT = "CONDITIONAL_REQUIREMENT"
    DATE_VALIDATION = "DATE_VALIDATION"
    CROSS_OBJECT_VALIDATION = "CROSS_OBJECT_VALIDATION"
    PICKLIST_VALIDATION = "PICKLIST_VALIDATION"
    RANGE_VALIDATION = "RANGE_VALIDATION"
    FORMAT_VALIDATION = "FORMAT_VALIDATION"
    SYSTEM_CONTEXT = "SYSTEM_CONTEXT"
    UNSUPPORTED_FUNCTION = "UNSUPPORTED_FUNCTION"


@dataclass(frozen=True)
class ValidationRule:
    """
    A business rule expressed as a boolean formula.

    The formula describes the *violation*: a record breaks the rule when the
    formula evaluates true. Analysis fields are empty until the rule has been
    run through the rule parser; ``with_analysis`` returns an analysed copy.
    """

    id: str
    formula: str
    active: bool = True
    severity: Severity = Severity.ERROR
    error_message: str = ""
    error_display_field: str | None = None
    name: str | None = None
    fields: tuple[str, ...] = ()
    complexity: Complexity | None = None
    risk_level: RiskLevel | None = None
    patterns: frozenset[RulePattern] = field(default_factory=frozenset)

    @property
    def is_analyzed(self) -> bool:
        return self.complexity is not None

    def with_analysis(
        self,
        fields: tuple[str, ...] | list[str],
        complexity: Complexity,
        risk_level: RiskLevel,
        patterns: frozenset[RulePattern] | set[RulePattern],
    ) -> "ValidationRule":
        return replace(
            self,
            fields=tuple(fields),
            complexity=complexity,
            risk_level=risk_level,
            patterns=frozenset(patterns),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValidationRule":
        """Create a rule from the provider's mapping form."""
        formula = data.get("formula", data.get("errorConditionFormula", ""))
        rule_id = data.get("id") or data.get("fullName") or data.get("name")
        if not rule_id:
            raise ValueError("Validation rule requires an id")

        return cls(
            id=str(rule_id),
            formula=str(formula or ""),
            active=bool(data.get("active", True)),
            severity=Severity.parse(data.get("severity")),
            error_message=str(data.get("errorMessage", data.get("error_message", "")) or ""),
            error_display_field=data.get("errorDisplayField", data.get("error_display_field")),
            name=data.get("fullName", data.get("name")),
        )
