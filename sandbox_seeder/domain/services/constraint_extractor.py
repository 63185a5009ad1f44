"""
Constraint Extractor - derives field constraints and dependencies.

Pure and deterministic: given an object's schema and its active rules it
returns the same FieldConstraint and FieldDependency lists every time.
Schema flags give required and unique constraints, field types give format and
range constraints, and simple rule shapes add rule-sourced constraints.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sandbox_seeder.domain.entities.constraints import ConstraintKind, FieldConstraint, FieldDependency
from sandbox_seeder.domain.entities.schema import FieldMetadata, FieldType, ObjectSchema
from sandbox_seeder.domain.entities.validation_rule import ValidationRule
from sandbox_seeder.domain.exceptions import ParseError

from .formula import BinaryOp, FieldRef, Node, UnaryOp
from .formula.parser import parse_formula
from .rule_parser import ORDERING_OPERATORS, ValidationRuleParser, blank_check_target, is_numeric_literal

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
URL_PATTERN = r"^https?://[^\s/$.?#].[^\s]*$"
PHONE_PATTERN = r"^[+()\d][\d\s().+-]{6,}$"

DEFAULT_EMAIL_LENGTH = 80
INT_MIN = -2_147_483_648
INT_MAX = 2_147_483_647
PERCENT_MIN = -100.0
PERCENT_MAX = 100.0

_FORMAT_PATTERNS = {
    FieldType.EMAIL: ("EMAIL", EMAIL_PATTERN),
    FieldType.URL: ("URL", URL_PATTERN),
    FieldType.PHONE: ("PHONE", PHONE_PATTERN),
}

_MIRRORED = {"<": ">", "<=": ">=", ">": "<", ">=": "<="}


@dataclass
class ExtractionResult:
    constraints: list[FieldConstraint] = field(default_factory=list)
    dependencies: list[FieldDependency] = field(default_factory=list)

    def for_field(self, name: str) -> list[FieldConstraint]:
        return [item for item in self.constraints if item.field.lower() == name.lower()]


def numeric_bounds(metadata: FieldMetadata) -> tuple[float, float] | None:
    """Inclusive value bounds implied by a numeric field's type, precision and scale."""
    if metadata.type is FieldType.PERCENT:
        return PERCENT_MIN, PERCENT_MAX
    if metadata.type is FieldType.INT:
        if metadata.precision:
            limit = float(10**metadata.precision - 1)
            return max(-limit, INT_MIN), min(limit, INT_MAX)
        return INT_MIN, INT_MAX
    if metadata.type in (FieldType.CURRENCY, FieldType.DOUBLE) and metadata.precision:
        digits = max(metadata.precision - metadata.scale, 0)
        limit = 10**digits - 10 ** (-metadata.scale)
        return -limit, limit
    return None


def _format_range(low: float | None, high: float | None) -> str:
    def show(value: float | None) -> str:
        if value is None:
            return "*"
        return str(int(value)) if float(value).is_integer() else str(value)

    return f"RANGE[{show(low)}, {show(high)}]"


class ConstraintExtractor:
    """Builds FieldConstraint and FieldDependency lists for one object."""

    def __init__(self, rule_parser: ValidationRuleParser | None = None) -> None:
        self.rule_parser = rule_parser or ValidationRuleParser()

    def extract(self, schema: ObjectSchema, rules: Sequence[ValidationRule] | None = None) -> ExtractionResult:
        """
        Extract constraints and dependencies for an object.

        Args:
            schema: Object schema
            rules: Rules to use instead of ``schema.validation_rules``

        Returns:
            ExtractionResult with both lists
        """
        active = [rule for rule in (schema.validation_rules if rules is None else rules) if rule.active]
        result = ExtractionResult(
            constraints=self.extract_field_constraints(schema, active),
            dependencies=self.extract_field_dependencies(active, schema.name),
        )
        logger.debug(
            f"Extracted {len(result.constraints)} constraints and "
            f"{len(result.dependencies)} dependencies for {schema.name}"
        )
        return result

    def extract_field_constraints(
        self, schema: ObjectSchema, rules: Sequence[ValidationRule] = ()
    ) -> list[FieldConstraint]:
        constraints: list[FieldConstraint] = []
        for metadata in schema.fields:
            constraints.extend(self._schema_constraints(metadata))

        for rule in rules:
            if not rule.active:
                continue
            for constraint in self._rule_constraints(rule, schema):
                if constraint not in constraints:
                    constraints.append(constraint)
        return constraints

    def extract_field_dependencies(
        self, rules: Sequence[ValidationRule], object_name: str = ""
    ) -> list[FieldDependency]:
        dependencies: list[FieldDependency] = []
        for rule in rules:
            if not rule.active:
                continue
            parsed = self.rule_parser.parse_validation_rule_formula(rule.formula, object_name, rule.id)
            for dependency in parsed.dependencies:
                if dependency not in dependencies:
                    dependencies.append(dependency)
        return dependencies

    def _schema_constraints(self, metadata: FieldMetadata) -> list[FieldConstraint]:
        constraints: list[FieldConstraint] = []
        if not metadata.is_generatable:
            return constraints

        if metadata.required and metadata.type is not FieldType.BOOLEAN:
            constraints.append(FieldConstraint(metadata.name, ConstraintKind.REQUIRED, "NOT_BLANK"))

        if metadata.unique:
            constraints.append(FieldConstraint(metadata.name, ConstraintKind.UNIQUE, "UNIQUE_VALUE"))

        if metadata.type in _FORMAT_PATTERNS:
            expression, pattern = _FORMAT_PATTERNS[metadata.type]
            max_length = metadata.length or (DEFAULT_EMAIL_LENGTH if metadata.type is FieldType.EMAIL else None)
            constraints.append(
                FieldConstraint(
                    metadata.name,
                    ConstraintKind.FORMAT,
                    expression,
                    pattern=pattern,
                    max_length=max_length,
                )
            )
        elif metadata.type.is_text and metadata.length:
            constraints.append(
                FieldConstraint(
                    metadata.name,
                    ConstraintKind.FORMAT,
                    f"MAX_LENGTH({metadata.length})",
                    max_length=metadata.length,
                )
            )

        if metadata.type in (FieldType.PICKLIST, FieldType.MULTIPICKLIST) and metadata.active_picklist_values:
            allowed = tuple(metadata.active_picklist_values)
            constraints.append(
                FieldConstraint(
                    metadata.name,
                    ConstraintKind.FORMAT,
                    f"PICKLIST[{', '.join(allowed)}]",
                    allowed_values=allowed,
                )
            )

        bounds = numeric_bounds(metadata)
        if bounds is not None:
            constraints.append(
                FieldConstraint(
                    metadata.name,
                    ConstraintKind.RANGE,
                    _format_range(*bounds),
                    min_value=bounds[0],
                    max_value=bounds[1],
                )
            )
        return constraints

    def _rule_constraints(self, rule: ValidationRule, schema: ObjectSchema) -> list[FieldConstraint]:
        try:
            root = parse_formula(rule.formula)
        except ParseError:
            return []

        target = blank_check_target(root)
        if target and schema.get_field(target) is not None:
            return [
                FieldConstraint(
                    schema.get_field(target).name,
                    ConstraintKind.REQUIRED,
                    "NOT_BLANK",
                    severity=rule.severity,
                    source_rule_id=rule.id,
                )
            ]

        if isinstance(root, BinaryOp) and root.op in ORDERING_OPERATORS:
            op, ref, literal = root.op, root.left, root.right
            if isinstance(literal, FieldRef) and is_numeric_literal(ref):
                op, ref, literal = _MIRRORED[op], literal, ref
            if isinstance(ref, FieldRef) and is_numeric_literal(literal):
                metadata = schema.get_field(ref.path)
                if metadata is None or not metadata.type.is_numeric:
                    return []
                bound = _literal_number(literal)
                # the formula describes the violation, so the valid side is the opposite
                low, high = (bound, None) if op in ("<", "<=") else (None, bound)
                return [
                    FieldConstraint(
                        metadata.name,
                        ConstraintKind.RANGE,
                        _format_range(low, high),
                        severity=rule.severity,
                        min_value=low,
                        max_value=high,
                        source_rule_id=rule.id,
                    )
                ]
        return []


def _literal_number(node: Node) -> float:
    if isinstance(node, UnaryOp):
        return -_literal_number(node.operand)
    return float(node.value)  # type: ignore[attr-defined]
