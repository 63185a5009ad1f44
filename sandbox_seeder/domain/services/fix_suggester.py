"""
Mechanical repair suggestions for violations.

Each suggestion carries a confidence so callers can apply only the fixes they
trust (see ``PreValidator.apply_suggestions``). Suggestions are deterministic:
the same violation on the same record always yields the same fix.
"""

import random
import re
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from sandbox_seeder.domain.entities.constraints import ConstraintKind, FieldConstraint
from sandbox_seeder.domain.entities.results import SuggestedFix, ValidationViolation, ViolationKind
from sandbox_seeder.domain.entities.schema import FieldMetadata, FieldType
from sandbox_seeder.domain.entities.validation_rule import ValidationRule
from sandbox_seeder.domain.exceptions import ParseError

from .field_generators import FieldValueGenerator
from .formula import BinaryOp, FieldRef, FunctionCall, Literal, Node, walk
from .formula.parser import parse_formula
from .rule_parser import ORDERING_OPERATORS, blank_check_target, is_numeric_literal

BLANK_CHECK_CONFIDENCE = 0.9
REQUIRED_FIELD_CONFIDENCE = 0.8
EMAIL_FORMAT_CONFIDENCE = 0.9
LENGTH_CONFIDENCE = 0.8
PICKLIST_CONFIDENCE = 0.7
RANGE_CONFIDENCE = 0.8

_SLUG = re.compile(r"[^a-z0-9.]+")


def _number(node: Node) -> float:
    if isinstance(node, Literal):
        return float(node.value)
    return -_number(node.operand)  # type: ignore[attr-defined]


def _holds(op: str, left: float, right: float) -> bool:
    return {"<": left < right, "<=": left <= right, ">": left > right, ">=": left >= right}[op]


def _boundary(op: str, bound: float) -> float:
    """A value on the valid side of a violated ``field op bound`` comparison."""
    if op == "<":
        return bound
    if op == "<=":
        return bound + 1
    if op == ">":
        return bound
    return bound - 1


def repair_email(value: Any) -> str:
    text = str(value or "").strip().lower()
    if "@" not in text:
        local = _SLUG.sub(".", text).strip(".") or "user"
        return f"{local}@example.com"
    local, domain = text.split("@", 1)
    local = _SLUG.sub(".", local).strip(".") or "user"
    domain = _SLUG.sub("", domain.replace(" ", "")) or "example.com"
    if "." not in domain:
        domain = f"{domain}.com"
    return f"{local}@{domain}"


class FixSuggester:
    """Builds SuggestedFix entries for violations found by the record checker."""

    def __init__(self, today: date | None = None) -> None:
        self._fallbacks = FieldValueGenerator(rng=random.Random(0), today=today)

    def default_value(self, metadata: FieldMetadata | None, field_name: str) -> Any:
        if metadata is None:
            return f"Sample {field_name}"
        return self._fallbacks.generate_required_fallback(metadata)

    def suggest(
        self,
        violation: ValidationViolation,
        record: Mapping[str, Any],
        fields: Sequence[FieldMetadata] = (),
        constraints: Sequence[FieldConstraint] = (),
        rules: Sequence[ValidationRule] = (),
    ) -> list[SuggestedFix]:
        """
        Suggest fixes for one violation.

        Args:
            violation: Violation to repair
            record: The violating record
            fields: Field metadata for type-aware defaults
            constraints: Constraints, consulted for bounds and allowed values
            rules: Rules, consulted to repair rule violations

        Returns:
            Zero or more suggested fixes
        """
        metadata = {item.name.lower(): item for item in fields}
        current = record.get(violation.field)
        field_meta = metadata.get(violation.field.lower())

        if violation.kind in (ViolationKind.REQUIRED, ViolationKind.DEPENDENCY):
            return [
                SuggestedFix(
                    violation.field,
                    current,
                    self.default_value(field_meta, violation.field),
                    f"Provide a value for required field {violation.field}",
                    REQUIRED_FIELD_CONFIDENCE,
                )
            ]

        if violation.kind in (ViolationKind.FORMAT, ViolationKind.RANGE):
            matching = [item for item in constraints if item.field.lower() == violation.field.lower()]
            return self._constraint_fix(violation, current, field_meta, matching)

        if violation.kind is ViolationKind.RULE:
            rule = next((item for item in rules if item.id == violation.rule_id), None)
            if rule is not None:
                return self._rule_fixes(rule, record, metadata)
        return []

    def _constraint_fix(
        self,
        violation: ValidationViolation,
        current: Any,
        metadata: FieldMetadata | None,
        constraints: list[FieldConstraint],
    ) -> list[SuggestedFix]:
        for constraint in constraints:
            if constraint.kind is ConstraintKind.FORMAT and constraint.expression == "EMAIL":
                repaired = repair_email(current)
                if constraint.max_length and len(repaired) > constraint.max_length:
                    repaired = repaired[-constraint.max_length :]
                return [
                    SuggestedFix(violation.field, current, repaired, "Fix email format", EMAIL_FORMAT_CONFIDENCE)
                ]
            if constraint.kind is ConstraintKind.FORMAT and constraint.allowed_values:
                return [
                    SuggestedFix(
                        violation.field,
                        current,
                        constraint.allowed_values[0],
                        "Use an active picklist value",
                        PICKLIST_CONFIDENCE,
                    )
                ]
            if constraint.kind is ConstraintKind.FORMAT and constraint.max_length and current is not None:
                text = str(current)
                if len(text) > constraint.max_length:
                    return [
                        SuggestedFix(
                            violation.field,
                            current,
                            text[: constraint.max_length],
                            f"Truncate to {constraint.max_length} characters",
                            LENGTH_CONFIDENCE,
                        )
                    ]
            if constraint.kind is ConstraintKind.RANGE:
                clamped = self._clamp(current, constraint, metadata)
                if clamped is not None:
                    return [
                        SuggestedFix(
                            violation.field,
                            current,
                            clamped,
                            f"Bring value within {constraint.expression}",
                            RANGE_CONFIDENCE,
                        )
                    ]
        return []

    @staticmethod
    def _clamp(current: Any, constraint: FieldConstraint, metadata: FieldMetadata | None) -> float | None:
        try:
            number = float(current)
        except (TypeError, ValueError):
            return constraint.min_value if constraint.min_value is not None else constraint.max_value
        if constraint.min_value is not None and number < constraint.min_value:
            number = constraint.min_value
        if constraint.max_value is not None and number > constraint.max_value:
            number = constraint.max_value
        if metadata is not None and metadata.type is FieldType.INT:
            return int(number)
        return number

    def _rule_fixes(
        self, rule: ValidationRule, record: Mapping[str, Any], metadata: dict[str, FieldMetadata]
    ) -> list[SuggestedFix]:
        try:
            root = parse_formula(rule.formula)
        except ParseError:
            return []

        fixes: dict[str, SuggestedFix] = {}

        def offer(fix: SuggestedFix) -> None:
            if fix.field not in fixes:
                fixes[fix.field] = fix

        for node in walk(root):
            target = blank_check_target(node)
            if target:
                value = record.get(target)
                if value is None or (isinstance(value, str) and not value.strip()):
                    offer(
                        SuggestedFix(
                            target,
                            value,
                            self.default_value(metadata.get(target.lower()), target),
                            f"Field {target} must not be blank",
                            BLANK_CHECK_CONFIDENCE,
                        )
                    )
                continue

            if isinstance(node, FunctionCall) and node.name == "ISPICKVAL" and len(node.args) == 2:
                ref, literal = node.args
                field_meta = metadata.get(ref.path.lower()) if isinstance(ref, FieldRef) else None
                if field_meta is not None and isinstance(literal, Literal):
                    current = record.get(field_meta.name)
                    options = [item for item in field_meta.active_picklist_values if item != current]
                    if options:
                        offer(
                            SuggestedFix(
                                field_meta.name,
                                current,
                                options[0],
                                f"Choose a different value than {current!r}",
                                PICKLIST_CONFIDENCE,
                            )
                        )
                continue

            if not isinstance(node, BinaryOp) or node.op not in ORDERING_OPERATORS:
                continue

            if (
                isinstance(node.left, FunctionCall)
                and node.left.name == "LEN"
                and len(node.left.args) == 1
                and isinstance(node.left.args[0], FieldRef)
                and is_numeric_literal(node.right)
            ):
                name = node.left.args[0].path
                text = str(record.get(name) or "")
                if not _holds(node.op, len(text), _number(node.right)):
                    continue
                length = int(_boundary(node.op, _number(node.right)))
                suggested = text[:length] if len(text) > length else text.ljust(max(length, 0), "x")
                offer(SuggestedFix(name, record.get(name), suggested, "Adjust text length", LENGTH_CONFIDENCE))
            elif isinstance(node.left, FieldRef) and is_numeric_literal(node.right):
                name = node.left.path
                try:
                    current = float(record.get(name))
                except (TypeError, ValueError):
                    continue
                if not _holds(node.op, current, _number(node.right)):
                    continue
                offer(
                    SuggestedFix(
                        name,
                        record.get(name),
                        _boundary(node.op, _number(node.right)),
                        f"Move {name} out of the {node.op} {node.right.to_formula()} range",
                        RANGE_CONFIDENCE,
                    )
                )
        return list(fixes.values())
