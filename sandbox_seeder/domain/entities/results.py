"""
Validation and synthesis result types.

Every operation in the core answers with one of these structured results
rather than raising, so callers can decide what to do with partial success.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .validation_rule import Severity


class ViolationKind(Enum):
    """What produced a violation."""

    REQUIRED = "required"
    UNIQUE = "unique"
    FORMAT = "format"
    RANGE = "range"
    RULE = "rule"
    DEPENDENCY = "dependency"
    ADVISOR = "advisor"


class WarningType(Enum):
    """Category of a non-blocking warning."""

    DATA_QUALITY = "data_quality"
    POTENTIAL_ISSUE = "potential_issue"
    PERFORMANCE = "performance"
    UNSUPPORTED_FORMULA = "unsupported_formula"
    COVERAGE = "coverage"


class WarningSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def risk_weight(self) -> float:
        return {"low": 0.5, "medium": 1.0, "high": 2.0}[self.value]


@dataclass(frozen=True)
class ValidationViolation:
    """A rule, constraint or dependency broken by a record."""

    field: str
    message: str
    kind: ViolationKind
    severity: Severity = Severity.ERROR
    rule_id: str | None = None
    fields: tuple[str, ...] = ()

    @property
    def implicated_fields(self) -> tuple[str, ...]:
        """All fields the violation touches, primary field first."""
        if not self.fields:
            return (self.field,)
        return (self.field, *(name for name in self.fields if name != self.field))

    def __str__(self) -> str:
        source = f" [{self.rule_id}]" if self.rule_id else ""
        return f"{self.field}: {self.message}{source}"


@dataclass(frozen=True)
class ValidationWarning:
    field: str | None
    message: str
    warning_type: WarningType
    severity: WarningSeverity = WarningSeverity.LOW
    details: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class SuggestedFix:
    """A mechanical repair for one field, with a confidence in [0, 1]."""

    field: str
    current_value: Any
    suggested_value: Any
    reason: str
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1]: {self.confidence}")


@dataclass
class RecordValidationResult:
    """Outcome of validating a single record."""

    record_index: int
    is_valid: bool
    violations: list[ValidationViolation] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    risk_score: float = 0.0
    suggested_fixes: list[SuggestedFix] = field(default_factory=list)
    ai_analysis_used: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class EnginePerformance:
    """Timing and counters for one validate_data call."""

    total_time_ms: float = 0.0
    local_validation_time_ms: float = 0.0
    ai_analysis_time_ms: float | None = None
    rules_evaluated: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


@dataclass
class ValidationEngineResult:
    """Aggregate outcome of validating a batch of records."""

    is_valid: bool
    total_records: int
    valid_records: int
    invalid_records: int
    results: list[RecordValidationResult]
    overall_risk_score: float
    engine_performance: EnginePerformance
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SolvedRecord:
    """
    Best candidate produced by the constraint solver.

    ``record`` always holds a usable record; ``unresolved_violations`` lists
    whatever the bounded search could not fix.
    """

    object_name: str
    record: dict[str, Any]
    unresolved_violations: list[ValidationViolation] = field(default_factory=list)
    attempts: int = 1

    @property
    def is_compliant(self) -> bool:
        return not any(item.severity is Severity.ERROR for item in self.unresolved_violations)

    def raise_if_unresolved(self) -> None:
        """Escalate a non-compliant record as ConstraintUnsatisfiable."""
        if not self.is_compliant:
            from ..exceptions import ConstraintUnsatisfiable

            raise ConstraintUnsatisfiable(self.object_name, self.unresolved_violations, self.attempts)
