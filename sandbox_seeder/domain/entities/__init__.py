"""Domain entities."""

from .analysis import ParsedFormula, RuleSetAnalysis
from .constraints import (
    ConstraintKind,
    DependencyKind,
    DependencyOperator,
    FieldConstraint,
    FieldDependency,
)
from .context import ValidationContext
from .results import (
    EnginePerformance,
    RecordValidationResult,
    SolvedRecord,
    SuggestedFix,
    ValidationEngineResult,
    ValidationViolation,
    ValidationWarning,
    ViolationKind,
    WarningSeverity,
    WarningType,
)
from .schema import FieldMetadata, FieldType, ObjectSchema, PicklistValue
from .validation_rule import Complexity, RiskLevel, RulePattern, Severity, ValidationRule

__all__ = [
    "Complexity",
    "ConstraintKind",
    "DependencyKind",
    "DependencyOperator",
    "EnginePerformance",
    "FieldConstraint",
    "FieldDependency",
    "FieldMetadata",
    "FieldType",
    "ObjectSchema",
    "ParsedFormula",
    "PicklistValue",
    "RecordValidationResult",
    "RiskLevel",
    "RuleSetAnalysis",
    "RulePattern",
    "Severity",
    "SolvedRecord",
    "SuggestedFix",
    "ValidationContext",
    "ValidationEngineResult",
    "ValidationRule",
    "ValidationViolation",
    "ValidationWarning",
    "ViolationKind",
    "WarningSeverity",
    "WarningType",
]
