"""Results of static rule analysis."""

from dataclasses import dataclass, field

from .constraints import FieldDependency
from .validation_rule import Complexity, RiskLevel, RulePattern


@dataclass(frozen=True)
class ParsedFormula:
    """
    Static analysis of one rule formula.

    Attributes:
        formula: Source text that was analysed
        fields: Distinct field references in order of first appearance
        complexity: Complexity class
        risk_level: Risk classification
        patterns: Structural pattern tags
        functions: Distinct function names used (upper case)
        operators: Distinct operators used
        unsupported_functions: Functions the evaluator cannot execute
        dependencies: Cross-field dependencies implied by the formula
        parse_error: Parser message when the formula could not be parsed
    """

    formula: str
    fields: tuple[str, ...] = ()
    complexity: Complexity = Complexity.SIMPLE
    risk_level: RiskLevel = RiskLevel.LOW
    patterns: frozenset[RulePattern] = frozenset()
    functions: tuple[str, ...] = ()
    operators: tuple[str, ...] = ()
    unsupported_functions: tuple[str, ...] = ()
    dependencies: tuple[FieldDependency, ...] = ()
    parse_error: str | None = None

    @property
    def is_parsed(self) -> bool:
        return self.parse_error is None

    @property
    def is_cross_object(self) -> bool:
        return RulePattern.CROSS_OBJECT_VALIDATION in self.patterns


@dataclass
class RuleSetAnalysis:
    """Aggregate analysis of an object's validation rules."""

    object_name: str
    total_rules: int = 0
    active_rules: int = 0
    all_fields: list[str] = field(default_factory=list)
    all_dependencies: list[FieldDependency] = field(default_factory=list)
    overall_complexity: Complexity = Complexity.SIMPLE
    overall_risk: RiskLevel = RiskLevel.LOW
    patterns: dict[RulePattern, int] = field(default_factory=dict)
    parsed_rules: dict[str, ParsedFormula] = field(default_factory=dict)

    @property
    def high_risk_rule_ids(self) -> list[str]:
        return [
            rule_id
            for rule_id, parsed in self.parsed_rules.items()
            if parsed.risk_level is RiskLevel.HIGH
        ]
