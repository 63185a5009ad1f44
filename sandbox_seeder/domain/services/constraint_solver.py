"""
Constraint Solver - synthesizes records that satisfy constraints and rules.

This is a greedy, bounded local search rather than a general CSP solver:

1. Fields are visited in a deterministic plan (declaration order, with the
   sources of required-if dependencies placed before their targets).
2. Each field gets a type-appropriate value that already honours its
   required, format and range constraints.
3. The assembled record is checked against constraints, dependencies and
   every active rule through the Formula Evaluator.
4. Only the offending fields are regenerated, in plan order, up to the
   attempt budget.
5. When the budget runs out the best candidate seen is returned together with
   its unresolved violations. Unsatisfiable input never raises.

Given a seed, the same inputs always produce the same record: every record is
generated from a random stream derived from ``(seed, record_index)``.

Example:
    >>> solver = ConstraintSolver(seed=42)
    >>> solved = solver.generate_compliant_record(schema)
    >>> solved.is_compliant
    True
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from faker import Faker

from sandbox_seeder.domain.entities.constraints import (
    ConstraintKind,
    DependencyKind,
    FieldConstraint,
    FieldDependency,
)
from sandbox_seeder.domain.entities.results import SolvedRecord, ValidationViolation, ViolationKind
from sandbox_seeder.domain.entities.schema import FieldMetadata, FieldType, ObjectSchema
from sandbox_seeder.domain.entities.validation_rule import Severity, ValidationRule

from .constraint_extractor import ConstraintExtractor
from .field_generators import FieldValueGenerator
from .formula import FormulaEvaluator, is_blank
from .formula.evaluator import truthy
from .record_checker import RecordChecker
from .rule_parser import ValidationRuleParser, blank_checked_fields

if TYPE_CHECKING:
    from sandbox_seeder.application.config import SolverConfig

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPT_BUDGET = 5
DEFAULT_NULL_PROBABILITY = 0.1
_SEED_STRIDE = 1_000_003


@dataclass
class _SolveState:
    """Inputs and working state for one record."""

    schema: ObjectSchema
    rules: list[ValidationRule]
    constraints: list[FieldConstraint]
    dependencies: list[FieldDependency]
    record_index: int
    forced_required: set[str] = field(default_factory=set)
    plan: list[FieldMetadata] = field(default_factory=list)

    def constraints_for(self, name: str) -> list[FieldConstraint]:
        return [item for item in self.constraints if item.field.lower() == name.lower()]


class ConstraintSolver:
    """
    Generates rule-compliant records on a best-effort basis.

    Args:
        evaluator: Formula evaluator used to verify candidates
        seed: Seed for reproducible output; None uses an unseeded stream
        max_attempts: Default attempt budget per record
        null_probability: Chance an optional field is left blank
        locale: Faker locale for realistic text
        today: Reference date for generated dates
    """

    def __init__(
        self,
        evaluator: FormulaEvaluator | None = None,
        seed: int | None = None,
        max_attempts: int = DEFAULT_ATTEMPT_BUDGET,
        null_probability: float = DEFAULT_NULL_PROBABILITY,
        locale: str = "en_US",
        today: date | None = None,
        rule_parser: ValidationRuleParser | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if not 0.0 <= null_probability <= 1.0:
            raise ValueError(f"null_probability must be within [0, 1], got {null_probability}")

        self.evaluator = evaluator or FormulaEvaluator()
        self.rule_parser = rule_parser or ValidationRuleParser()
        self.extractor = ConstraintExtractor(self.rule_parser)
        self.checker = RecordChecker(self.evaluator, self.rule_parser)
        self.seed = seed
        self.max_attempts = max_attempts
        self.null_probability = null_probability
        self.generator = FieldValueGenerator(
            Faker(locale),
            random.Random(seed),
            today,
        )

    @classmethod
    def from_config(
        cls,
        config: "SolverConfig",
        evaluator: FormulaEvaluator | None = None,
        rule_parser: ValidationRuleParser | None = None,
    ) -> "ConstraintSolver":
        """Build a solver from the solver section of the application configuration."""
        return cls(
            evaluator,
            seed=config.seed,
            max_attempts=config.max_attempts,
            null_probability=config.null_probability,
            locale=config.locale,
            today=config.reference_date,
            rule_parser=rule_parser,
        )

    def create_generation_plan(
        self, schema: ObjectSchema, dependencies: Sequence[FieldDependency] = ()
    ) -> list[FieldMetadata]:
        """
        Order generatable fields so dependency sources come before targets.

        Ties keep declaration order; cycles are broken by declaration order.
        """
        pending = [item for item in schema.fields if item.is_generatable]
        names = {item.name.lower() for item in pending}
        prerequisites: dict[str, set[str]] = {item.name.lower(): set() for item in pending}
        for dependency in dependencies:
            source = dependency.source_field.lower()
            target = dependency.target_field.lower()
            if source in names and target in names and source != target:
                prerequisites[target].add(source)

        plan: list[FieldMetadata] = []
        placed: set[str] = set()
        while pending:
            ready = next(
                (item for item in pending if prerequisites[item.name.lower()] <= placed),
                None,
            )
            if ready is None:
                ready = pending[0]
                logger.debug(f"Dependency cycle at {ready.name} on {schema.name}, using declaration order")
            pending.remove(ready)
            plan.append(ready)
            placed.add(ready.name.lower())
        return plan

    def generate_compliant_record(
        self,
        schema: ObjectSchema,
        validation_rules: Sequence[ValidationRule] | None = None,
        field_constraints: Sequence[FieldConstraint] | None = None,
        field_dependencies: Sequence[FieldDependency] | None = None,
        attempt_budget: int | None = None,
        record_index: int = 0,
    ) -> SolvedRecord:
        """
        Generate one record satisfying the object's constraints and rules.

        Args:
            schema: Object schema
            validation_rules: Rules to satisfy; defaults to the schema's rules
            field_constraints: Constraints; extracted from the schema when None
            field_dependencies: Dependencies; extracted from the rules when None
            attempt_budget: Maximum check/repair rounds; defaults to max_attempts
            record_index: Position in a batch, mixed into the seed

        Returns:
            SolvedRecord with the best record and any unresolved violations
        """
        source_rules = schema.validation_rules if validation_rules is None else validation_rules
        rules = [rule for rule in source_rules if rule.active]
        if field_constraints is None or field_dependencies is None:
            extracted = self.extractor.extract(schema, rules)
            field_constraints = extracted.constraints if field_constraints is None else field_constraints
            field_dependencies = extracted.dependencies if field_dependencies is None else field_dependencies

        budget = max(attempt_budget or self.max_attempts, 1)
        state = _SolveState(
            schema=schema,
            rules=rules,
            constraints=list(field_constraints),
            dependencies=list(field_dependencies),
            record_index=record_index,
            forced_required={
                item.field.lower() for item in field_constraints if item.kind is ConstraintKind.REQUIRED
            },
        )

        if self.seed is not None:
            self.generator.reseed(self.seed * _SEED_STRIDE + record_index)

        state.plan = self.create_generation_plan(schema, state.dependencies)
        record: dict[str, Any] = {}
        for metadata in state.plan:
            record[metadata.name] = self._generate_field(metadata, record, state)

        best_record = dict(record)
        best_violations: list[ValidationViolation] | None = None
        attempts = 0

        for attempts in range(1, budget + 1):
            violations = self.checker.check(
                record,
                field_metadata=schema.fields,
                rules=rules,
                constraints=state.constraints,
                dependencies=state.dependencies,
            )
            errors = [item for item in violations if item.severity is Severity.ERROR]
            if best_violations is None or len(errors) < _error_count(best_violations):
                best_record, best_violations = dict(record), violations
            if not errors:
                break
            if attempts == budget:
                break

            for metadata in self._offending_fields(errors, record, state):
                record[metadata.name] = self._generate_field(metadata, record, state)

        unresolved = best_violations or []
        if any(item.severity is Severity.ERROR for item in unresolved):
            logger.warning(
                f"Record {record_index} for {schema.name} has {_error_count(unresolved)} "
                f"unresolved violation(s) after {attempts} attempt(s)"
            )

        return SolvedRecord(
            object_name=schema.name,
            record=self._finalise(best_record, schema),
            unresolved_violations=unresolved,
            attempts=attempts,
        )

    def generate_compliant_records(
        self,
        count: int,
        schema: ObjectSchema,
        validation_rules: Sequence[ValidationRule] | None = None,
        field_constraints: Sequence[FieldConstraint] | None = None,
        field_dependencies: Sequence[FieldDependency] | None = None,
        attempt_budget: int | None = None,
    ) -> list[SolvedRecord]:
        """Generate ``count`` records; constraints are extracted once for the batch."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        source_rules = schema.validation_rules if validation_rules is None else validation_rules
        rules = [rule for rule in source_rules if rule.active]
        if field_constraints is None or field_dependencies is None:
            extracted = self.extractor.extract(schema, rules)
            field_constraints = extracted.constraints if field_constraints is None else field_constraints
            field_dependencies = extracted.dependencies if field_dependencies is None else field_dependencies

        solved = [
            self.generate_compliant_record(
                schema, rules, field_constraints, field_dependencies, attempt_budget, record_index=index
            )
            for index in range(count)
        ]
        compliant = sum(1 for item in solved if item.is_compliant)
        logger.info(f"Generated {count} {schema.name} record(s), {compliant} fully compliant")
        return solved

    def _generate_field(self, metadata: FieldMetadata, record: dict[str, Any], state: _SolveState) -> Any:
        constraints = state.constraints_for(metadata.name)
        required = (
            metadata.name.lower() in state.forced_required
            or (metadata.required and metadata.type is not FieldType.BOOLEAN)
            or self._required_by_dependency(metadata, record, state)
        )

        if not required and metadata.type is not FieldType.BOOLEAN:
            if self.generator.rng.random() < self.null_probability:
                return None

        value = self.generator.generate(metadata, constraints, state.record_index, state.schema.name)
        if required and is_blank(value):
            value = self.generator.apply_constraints(
                self.generator.generate_required_fallback(metadata), metadata, constraints, state.record_index
            )
        return value

    def _required_by_dependency(
        self, metadata: FieldMetadata, record: dict[str, Any], state: _SolveState
    ) -> bool:
        for dependency in state.dependencies:
            if dependency.target_field.lower() != metadata.name.lower():
                continue
            if dependency.kind is DependencyKind.REQUIRED_IF:
                if truthy(self.evaluator.evaluate(dependency.condition, record, state.schema.fields)):
                    return True
            elif is_blank(record.get(dependency.source_field)):
                return True
        return False

    def _offending_fields(
        self, errors: list[ValidationViolation], record: dict[str, Any], state: _SolveState
    ) -> list[FieldMetadata]:
        """Fields to regenerate; fields that must become non-blank are marked required."""
        names: list[str] = []

        def mark(name: str, force: bool) -> None:
            metadata = state.schema.get_field(name)
            if metadata is None or not metadata.is_generatable:
                return
            if force:
                state.forced_required.add(metadata.name.lower())
            if metadata.name not in names:
                names.append(metadata.name)

        for violation in errors:
            if violation.kind in (ViolationKind.REQUIRED, ViolationKind.DEPENDENCY):
                mark(violation.field, force=True)
            elif violation.kind is ViolationKind.RULE:
                rule = next((item for item in state.rules if item.id == violation.rule_id), None)
                blanks = [
                    name
                    for name in (blank_checked_fields(rule.formula) if rule else [])
                    if is_blank(record.get(name)) and self._is_generatable(name, state)
                ]
                if blanks:
                    for name in blanks:
                        mark(name, force=True)
                else:
                    for name in violation.implicated_fields:
                        mark(name, force=False)
            else:
                mark(violation.field, force=False)

        plan_order = {item.name: position for position, item in enumerate(state.plan)}
        return sorted(
            (state.schema.get_field(name) for name in names),
            key=lambda item: plan_order.get(item.name, 0),
        )

    @staticmethod
    def _is_generatable(name: str, state: _SolveState) -> bool:
        metadata = state.schema.get_field(name)
        return metadata is not None and metadata.is_generatable

    @staticmethod
    def _finalise(record: dict[str, Any], schema: ObjectSchema) -> dict[str, Any]:
        ordered = {item.name: record[item.name] for item in schema.fields if item.name in record}
        return {name: value for name, value in ordered.items() if value is not None}


def _error_count(violations: Sequence[ValidationViolation]) -> int:
    return sum(1 for item in violations if item.severity is Severity.ERROR)
