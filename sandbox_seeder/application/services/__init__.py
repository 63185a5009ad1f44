"""Application services."""

from .pre_validator import (
    GenerationPatternAssessment,
    PreValidationOptions,
    PreValidationPerformance,
    PreValidationResult,
    PreValidationStatus,
    PreValidationViolation,
    PreValidator,
)
from .validation_engine import (
    FieldRecommendation,
    GenerationPatternResult,
    RiskAssessment,
    RuleAnalysisReport,
    ValidationEngine,
    ValidationLevel,
    ValidationRequest,
)

__all__ = [
    "FieldRecommendation",
    "GenerationPatternAssessment",
    "GenerationPatternResult",
    "PreValidationOptions",
    "PreValidationPerformance",
    "PreValidationResult",
    "PreValidationStatus",
    "PreValidationViolation",
    "PreValidator",
    "RiskAssessment",
    "RuleAnalysisReport",
    "ValidationEngine",
    "ValidationLevel",
    "ValidationRequest",
]
