"""
Evaluator coverage over an object's active rules.

A rule is covered when the Formula Evaluator can execute it locally. Rules
that are not covered are grouped by the reason they fall outside the
supported function set.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from sandbox_seeder.domain.entities.validation_rule import ValidationRule

from .formula import FormulaEvaluator
from .rule_parser import SYSTEM_CONTEXT_FUNCTIONS

SYSTEM_CONTEXT_REASON = "system_context_functions"
ADVANCED_TEXT_REASON = "advanced_text_functions"
LOOKUP_REASON = "lookup_functions"
COMPLEX_FORMULA_REASON = "complex_formula"

_SYSTEM_CONTEXT_CALL = re.compile(
    r"\b(?:" + "|".join(sorted(SYSTEM_CONTEXT_FUNCTIONS)) + r")\s*\(", re.IGNORECASE
)
_ADVANCED_TEXT_CALL = re.compile(r"\b(?:REGEX|FIND)\s*\(", re.IGNORECASE)
_LOOKUP_CALL = re.compile(r"\b(?:VLOOKUP|LOOKUP)\s*\(", re.IGNORECASE)


@dataclass
class ValidationCoverage:
    total: int = 0
    supported: int = 0
    unsupported: int = 0
    coverage: float = 0.0
    unsupported_reasons: dict[str, int] = field(default_factory=dict)
    unsupported_rule_ids: list[str] = field(default_factory=list)


def unsupported_reason(formula: str) -> str:
    """Category explaining why a formula cannot be evaluated locally."""
    if "$" in formula or _SYSTEM_CONTEXT_CALL.search(formula):
        return SYSTEM_CONTEXT_REASON
    if _ADVANCED_TEXT_CALL.search(formula):
        return ADVANCED_TEXT_REASON
    if _LOOKUP_CALL.search(formula):
        return LOOKUP_REASON
    return COMPLEX_FORMULA_REASON


def partition_rules(
    rules: Sequence[ValidationRule], evaluator: FormulaEvaluator
) -> tuple[list[ValidationRule], list[ValidationRule]]:
    """Split rules into (supported, unsupported) by evaluator support."""
    supported: list[ValidationRule] = []
    unsupported: list[ValidationRule] = []
    for rule in rules:
        (supported if evaluator.can_evaluate(rule.formula) else unsupported).append(rule)
    return supported, unsupported


def compute_coverage(rules: Sequence[ValidationRule], evaluator: FormulaEvaluator) -> ValidationCoverage:
    """
    Coverage report over the active rules.

    Args:
        rules: Rules to inspect; inactive ones are ignored
        evaluator: Evaluator whose support is measured

    Returns:
        ValidationCoverage with ``coverage`` as a percentage (0 when no rules)
    """
    active = [rule for rule in rules if rule.active]
    supported, unsupported = partition_rules(active, evaluator)

    reasons: dict[str, int] = {}
    for rule in unsupported:
        reason = unsupported_reason(rule.formula)
        reasons[reason] = reasons.get(reason, 0) + 1

    return ValidationCoverage(
        total=len(active),
        supported=len(supported),
        unsupported=len(unsupported),
        coverage=len(supported) / len(active) * 100 if active else 0.0,
        unsupported_reasons=reasons,
        unsupported_rule_ids=[rule.id for rule in unsupported],
    )
