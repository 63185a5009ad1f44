"""
Record checks shared by the constraint solver and the validation engine.

A record is checked against structural constraints, active rule formulas and
cross-field dependencies. Findings that merely restate a violated rule (a
rule-sourced constraint or a dependency derived from that same rule) are folded
into the rule's own violation so every broken rule is reported once.
"""

import logging
import re
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

from sandbox_seeder.domain.entities.constraints import (
    ConstraintKind,
    DependencyKind,
    DependencyOperator,
    FieldConstraint,
    FieldDependency,
)
from sandbox_seeder.domain.entities.results import ValidationViolation, ViolationKind
from sandbox_seeder.domain.entities.schema import FieldMetadata
from sandbox_seeder.domain.entities.validation_rule import Severity, ValidationRule

from .formula import FormulaEvaluator, is_blank, resolve_path
from .formula.evaluator import truthy
from .rule_parser import ValidationRuleParser, blank_checked_fields

logger = logging.getLogger(__name__)


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


class RecordChecker:
    """Finds violations in a single record, or duplicate values across a batch."""

    def __init__(
        self,
        evaluator: FormulaEvaluator | None = None,
        rule_parser: ValidationRuleParser | None = None,
    ) -> None:
        self.evaluator = evaluator or FormulaEvaluator()
        self.rule_parser = rule_parser or ValidationRuleParser()
        self._patterns: dict[str, re.Pattern[str]] = {}

    def check(
        self,
        record: Mapping[str, Any],
        *,
        field_metadata: Sequence[FieldMetadata] = (),
        rules: Sequence[ValidationRule] = (),
        constraints: Sequence[FieldConstraint] = (),
        dependencies: Sequence[FieldDependency] = (),
        include_dependencies: bool = True,
    ) -> list[ValidationViolation]:
        """
        Run every check against one record.

        Args:
            record: Field name to value mapping
            field_metadata: Metadata used to coerce values during evaluation
            rules: Rules to evaluate (inactive ones are skipped)
            constraints: Structural constraints
            dependencies: Cross-field dependencies
            include_dependencies: Skip dependency checks when False

        Returns:
            Violations, constraint findings first, then rules, then dependencies
        """
        rule_violations = self.check_rules(record, rules, field_metadata)
        broken_rules = {item.rule_id for item in rule_violations}

        violations = [
            item for item in self.check_constraints(record, constraints) if item.rule_id not in broken_rules
        ]
        violations.extend(rule_violations)
        if include_dependencies:
            violations.extend(
                item
                for item in self.check_dependencies(record, dependencies, field_metadata)
                if item.rule_id is None or item.rule_id not in broken_rules
            )
        return violations

    def check_constraints(
        self, record: Mapping[str, Any], constraints: Sequence[FieldConstraint]
    ) -> list[ValidationViolation]:
        violations: list[ValidationViolation] = []
        for constraint in constraints:
            value = resolve_path(record, constraint.field)
            violation = self._check_constraint(constraint, value)
            if violation is not None:
                violations.append(violation)
        return violations

    def _check_constraint(self, constraint: FieldConstraint, value: Any) -> ValidationViolation | None:
        def violation(message: str, kind: ViolationKind) -> ValidationViolation:
            return ValidationViolation(
                field=constraint.field,
                message=message,
                kind=kind,
                severity=constraint.severity,
                rule_id=constraint.source_rule_id,
            )

        if constraint.kind is ConstraintKind.REQUIRED:
            if is_blank(value):
                return violation(f"Required field {constraint.field} is missing", ViolationKind.REQUIRED)
            return None

        if is_blank(value) or constraint.kind is ConstraintKind.UNIQUE:
            return None

        if constraint.kind is ConstraintKind.FORMAT:
            text = str(value)
            if constraint.pattern and not self._compiled(constraint.pattern).match(text):
                return violation(
                    f"Invalid format for {constraint.field}: expected {constraint.expression}",
                    ViolationKind.FORMAT,
                )
            if constraint.max_length and len(text) > constraint.max_length:
                return violation(
                    f"{constraint.field} exceeds maximum length of {constraint.max_length}",
                    ViolationKind.FORMAT,
                )
            if constraint.allowed_values:
                chosen = [item.strip() for item in text.split(";")]
                invalid = [item for item in chosen if item not in constraint.allowed_values]
                if invalid:
                    return violation(
                        f"{constraint.field} has values outside the picklist: {', '.join(invalid)}",
                        ViolationKind.FORMAT,
                    )
            return None

        if constraint.kind is ConstraintKind.RANGE:
            number = _number(value)
            if number is None:
                return violation(f"{constraint.field} must be numeric", ViolationKind.RANGE)
            too_low = constraint.min_value is not None and number < constraint.min_value
            too_high = constraint.max_value is not None and number > constraint.max_value
            if too_low or too_high:
                return violation(
                    f"{constraint.field} value {value} is outside {constraint.expression}",
                    ViolationKind.RANGE,
                )
        return None

    def check_rules(
        self,
        record: Mapping[str, Any],
        rules: Sequence[ValidationRule],
        field_metadata: Sequence[FieldMetadata] = (),
    ) -> list[ValidationViolation]:
        violations: list[ValidationViolation] = []
        for rule in rules:
            if not rule.active:
                continue
            if not self.evaluator.is_violated(rule.formula, record, field_metadata):
                continue

            fields = rule.fields or self.rule_parser.parse_validation_rule_formula(rule.formula).fields
            primary = rule.error_display_field or self.primary_field(rule, fields, record)
            violations.append(
                ValidationViolation(
                    field=primary,
                    message=rule.error_message or f"Validation rule {rule.id} failed",
                    kind=ViolationKind.RULE,
                    severity=rule.severity,
                    rule_id=rule.id,
                    fields=tuple(fields),
                )
            )
        return violations

    def check_dependencies(
        self,
        record: Mapping[str, Any],
        dependencies: Sequence[FieldDependency],
        field_metadata: Sequence[FieldMetadata] = (),
    ) -> list[ValidationViolation]:
        violations: list[ValidationViolation] = []
        for dependency in dependencies:
            target_blank = is_blank(resolve_path(record, dependency.target_field))

            if dependency.kind is DependencyKind.REQUIRED_IF:
                if target_blank and truthy(self.evaluator.evaluate(dependency.condition, record, field_metadata)):
                    violations.append(
                        ValidationViolation(
                            field=dependency.target_field,
                            message=(
                                f"{dependency.target_field} is required when {dependency.condition}"
                            ),
                            kind=ViolationKind.DEPENDENCY,
                            rule_id=dependency.source_rule_id,
                            fields=(dependency.target_field, dependency.source_field),
                        )
                    )
                continue

            source_blank = is_blank(resolve_path(record, dependency.source_field))
            if dependency.operator is DependencyOperator.OR:
                broken = source_blank or target_blank
                message = f"Both {dependency.source_field} and {dependency.target_field} are required"
            else:
                broken = source_blank and target_blank
                message = f"One of {dependency.source_field} or {dependency.target_field} is required"
            if broken:
                violations.append(
                    ValidationViolation(
                        field=dependency.target_field,
                        message=message,
                        kind=ViolationKind.DEPENDENCY,
                        severity=Severity.WARNING,
                        rule_id=dependency.source_rule_id,
                        fields=(dependency.target_field, dependency.source_field),
                    )
                )
        return violations

    def find_duplicates(
        self, records: Sequence[Mapping[str, Any]], constraints: Sequence[FieldConstraint]
    ) -> dict[int, list[ValidationViolation]]:
        """
        Flag repeated values of unique fields across a batch.

        The first occurrence is accepted; later ones are reported by record index.
        """
        duplicates: dict[int, list[ValidationViolation]] = defaultdict(list)
        for constraint in constraints:
            if constraint.kind is not ConstraintKind.UNIQUE:
                continue
            first_seen: dict[str, int] = {}
            for index, record in enumerate(records):
                value = resolve_path(record, constraint.field)
                if is_blank(value):
                    continue
                key = str(value).strip().lower()
                if key in first_seen:
                    duplicates[index].append(
                        ValidationViolation(
                            field=constraint.field,
                            message=(
                                f"Duplicate value for unique field {constraint.field} "
                                f"(first seen in record {first_seen[key]})"
                            ),
                            kind=ViolationKind.UNIQUE,
                            severity=constraint.severity,
                        )
                    )
                else:
                    first_seen[key] = index
        return dict(duplicates)

    @staticmethod
    def primary_field(rule: ValidationRule, fields: Sequence[str], record: Mapping[str, Any]) -> str:
        """The first blank-checked field that is actually blank, else the first referenced field."""
        for name in blank_checked_fields(rule.formula):
            if is_blank(resolve_path(record, name)):
                return name
        return fields[0] if fields else rule.id

    def _compiled(self, pattern: str) -> re.Pattern[str]:
        compiled = self._patterns.get(pattern)
        if compiled is None:
            compiled = self._patterns[pattern] = re.compile(pattern)
        return compiled

