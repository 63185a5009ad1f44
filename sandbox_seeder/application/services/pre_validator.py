"""
Pre-Validator - a cheap rule gate run before solving or insertion.

Only rule formulas the Formula Evaluator supports are evaluated; the rest are
reported through an unsupported-formula warning and the coverage report.

Per-rule outcomes are memoised by a content signature (a hash of the rule id
and the values of the fields the rule references), bounded by an LRU ceiling.
Large batches are sampled at evenly spaced positions and the violation total is
projected from the sample. A wall-clock timeout is checked between records;
when it expires, whatever was computed so far is returned with a performance
warning.

Batch state: PENDING -> SAMPLING or FULL -> COMPLETED or TIMED_OUT.
"""

import hashlib
import json
import logging
import random
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sandbox_seeder.application.config import PreValidatorConfig, get_config
from sandbox_seeder.domain.entities import (
    FieldMetadata,
    FieldType,
    Severity,
    SuggestedFix,
    ValidationRule,
    ValidationViolation,
    ValidationWarning,
    ViolationKind,
    WarningSeverity,
    WarningType,
)
from sandbox_seeder.domain.services.coverage import ValidationCoverage, compute_coverage, partition_rules
from sandbox_seeder.domain.services.field_generators import FieldValueGenerator
from sandbox_seeder.domain.services.fix_suggester import FixSuggester
from sandbox_seeder.domain.services.formula import FormulaEvaluator, resolve_path
from sandbox_seeder.domain.services.record_checker import RecordChecker
from sandbox_seeder.domain.services.rule_parser import ValidationRuleParser
from sandbox_seeder.infrastructure.cache import ValidationCache

logger = logging.getLogger(__name__)

PATTERN_SAMPLE_COUNT = 5
PATTERN_VIOLATION_RISK = 20
PATTERN_WARNING_RISK = 10
PATTERN_MAX_RISK = 100
PATTERN_RISK_CEILING = 50
MAX_REPORTED_UNSUPPORTED = 10
PATTERN_TYPE_ALIASES = {"number": "double", "text": "string"}

FieldMetadataInput = Mapping[str, FieldMetadata] | Sequence[FieldMetadata]


class PreValidationStatus(Enum):
    PENDING = "pending"
    SAMPLING = "sampling"
    FULL = "full"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


@dataclass
class PreValidationOptions:
    include_warnings: bool = True
    include_suggestions: bool = True
    timeout_seconds: float = 30.0
    sampling_threshold: int = 1000
    max_sample_size: int = 100
    sample_ratio: float = 0.1

    @classmethod
    def from_config(cls, config: PreValidatorConfig) -> "PreValidationOptions":
        return cls(timeout_seconds=config.timeout_seconds, sampling_threshold=config.sampling_threshold)


@dataclass(frozen=True)
class PreValidationViolation:
    """A rule broken by one record of the batch."""

    record_index: int
    rule_id: str
    message: str
    formula: str
    field: str | None = None
    severity: Severity = Severity.ERROR


@dataclass
class PreValidationPerformance:
    evaluation_time_ms: float = 0.0
    rules_evaluated: int = 0
    records_processed: int = 0
    total_records: int = 0
    sampled: bool = False
    sample_size: int = 0
    projected_violations: int | None = None

    @property
    def coverage_percentage(self) -> float:
        """Share of the batch that was actually validated."""
        if self.total_records == 0:
            return 100.0
        return self.records_processed / self.total_records * 100


@dataclass
class PreValidationResult:
    is_valid: bool
    violations: list[PreValidationViolation] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    suggestions: dict[int, list[SuggestedFix]] = field(default_factory=dict)
    performance: PreValidationPerformance = field(default_factory=PreValidationPerformance)
    status: PreValidationStatus = PreValidationStatus.COMPLETED

    @property
    def all_suggestions(self) -> list[SuggestedFix]:
        return [fix for fixes in self.suggestions.values() for fix in fixes]


@dataclass
class GenerationPatternAssessment:
    can_generate: bool
    issues: list[str]
    suggestions: list[str]
    risk_score: int
    validation: PreValidationResult | None = None


def sample_indices(total: int, size: int) -> list[int]:
    """Evenly spaced, deterministic positions covering the whole batch."""
    if size <= 0 or total <= 0:
        return []
    if size >= total:
        return list(range(total))
    step = total / size
    return [int(position * step) for position in range(size)]


class PreValidator:
    """
    Lightweight local validation of record batches.

    Args:
        engine: Validation engine used by ``pre_validate_object`` to obtain contexts
        config: Pre-validator settings; the pre_validator section of ``get_config()`` when omitted
        evaluator: Formula evaluator
        clock: Monotonic time source used for the timeout, injectable for tests
        cache: Memo of rule outcomes; pass one to share it between pre-validators
    """

    def __init__(
        self,
        engine: Any | None = None,
        config: PreValidatorConfig | None = None,
        evaluator: FormulaEvaluator | None = None,
        rule_parser: ValidationRuleParser | None = None,
        clock: Callable[[], float] = time.monotonic,
        cache: ValidationCache[bool] | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or get_config().pre_validator
        self.evaluator = evaluator or FormulaEvaluator()
        self.rule_parser = rule_parser or ValidationRuleParser()
        self.fix_suggester = FixSuggester()
        self._clock = clock
        if cache is None:
            cache = ValidationCache(max_size=self.config.cache_size, name="pre-validation")
        self.cache: ValidationCache[bool] = cache
        self._metrics: dict[str, float] = {
            "total_evaluations": 0,
            "records_validated": 0,
            "total_time_ms": 0.0,
            "average_time_ms": 0.0,
            "cache_hits": 0,
        }

    def pre_validate_records(
        self,
        records: Sequence[Mapping[str, Any]],
        validation_rules: Sequence[ValidationRule],
        field_metadata: FieldMetadataInput = (),
        options: PreValidationOptions | None = None,
    ) -> PreValidationResult:
        """
        Evaluate supported active rules against a batch.

        Args:
            records: Records to check
            validation_rules: The object's rules
            field_metadata: Field metadata by name, or a sequence of it
            options: Warnings, suggestions, timeout and sampling settings

        Returns:
            PreValidationResult; partial when the timeout expired
        """
        options = options or PreValidationOptions.from_config(self.config)
        start = self._clock()
        fields = self._metadata_list(field_metadata)

        status = PreValidationStatus.PENDING
        warnings: list[ValidationWarning] = []
        violations: list[PreValidationViolation] = []
        suggestions: dict[int, list[SuggestedFix]] = {}

        active = [rule for rule in validation_rules if rule.active]
        supported, unsupported = partition_rules(active, self.evaluator)
        if options.include_warnings and unsupported:
            warnings.append(
                ValidationWarning(
                    field=None,
                    message=f"{len(unsupported)} validation rules use unsupported formula functions",
                    warning_type=WarningType.UNSUPPORTED_FORMULA,
                    severity=WarningSeverity.MEDIUM,
                    details={"unsupported_rules": [rule.id for rule in unsupported[:MAX_REPORTED_UNSUPPORTED]]},
                )
            )

        sampling = len(records) > options.sampling_threshold
        if sampling:
            sample_size = min(options.max_sample_size, max(int(len(records) * options.sample_ratio), 1))
            indices = sample_indices(len(records), sample_size)
            status = PreValidationStatus.SAMPLING
        else:
            indices = list(range(len(records)))
            status = PreValidationStatus.FULL
        logger.debug(
            f"Pre-validating {len(indices)} records"
            + (f" (sampled from {len(records)})" if sampling else " (full dataset)")
        )

        processed = 0
        rules_evaluated = 0
        for position, index in enumerate(indices):
            if position > 0 and self._clock() - start > options.timeout_seconds:
                status = PreValidationStatus.TIMED_OUT
                warnings.append(
                    ValidationWarning(
                        field=None,
                        message="Validation timeout reached, some records may not be fully validated",
                        warning_type=WarningType.PERFORMANCE,
                        severity=WarningSeverity.HIGH,
                        details={"timeout_seconds": options.timeout_seconds, "records_processed": processed},
                    )
                )
                break

            record = records[index]
            record_violations = self._validate_record(record, supported, fields, index)
            violations.extend(record_violations)
            rules_evaluated += len(supported)
            processed += 1

            if options.include_suggestions and record_violations:
                fixes = self._suggest(record, record_violations, supported, fields)
                if fixes:
                    suggestions[index] = fixes

        performance = PreValidationPerformance(
            rules_evaluated=rules_evaluated,
            records_processed=processed,
            total_records=len(records),
            sampled=sampling,
            sample_size=len(indices) if sampling else 0,
        )
        if sampling:
            if processed:
                performance.projected_violations = round(len(violations) / processed * len(records))
            warnings.append(
                ValidationWarning(
                    field=None,
                    message=(
                        f"Results estimated from sample of {processed} of {len(records)} records. "
                        f"Estimated {performance.projected_violations or 0} total violations."
                    ),
                    warning_type=WarningType.PERFORMANCE,
                    severity=WarningSeverity.MEDIUM,
                    details={
                        "sample_size": processed,
                        "total_records": len(records),
                        "estimated_total": performance.projected_violations,
                        "coverage_percentage": performance.coverage_percentage,
                    },
                )
            )

        if status is not PreValidationStatus.TIMED_OUT:
            status = PreValidationStatus.COMPLETED

        performance.evaluation_time_ms = (self._clock() - start) * 1000
        self._update_metrics(performance)

        return PreValidationResult(
            is_valid=not any(item.severity is Severity.ERROR for item in violations),
            violations=violations,
            warnings=warnings,
            suggestions=suggestions,
            performance=performance,
            status=status,
        )

    async def pre_validate_object(
        self,
        object_name: str,
        records: Sequence[Mapping[str, Any]],
        options: PreValidationOptions | None = None,
    ) -> PreValidationResult:
        """Pre-validate records using the engine's cached context for the object."""
        if self.engine is None:
            raise ValueError("pre_validate_object requires a ValidationEngine")
        context = await self.engine.get_validation_context(object_name)
        return self.pre_validate_records(records, context.active_rules, context.schema.fields, options)

    def batch_pre_validate(
        self,
        record_batches: Sequence[Sequence[Mapping[str, Any]]],
        validation_rules: Sequence[ValidationRule],
        field_metadata: FieldMetadataInput = (),
        options: PreValidationOptions | None = None,
    ) -> list[PreValidationResult]:
        results = []
        for number, batch in enumerate(record_batches, start=1):
            logger.debug(f"Pre-validating batch {number}/{len(record_batches)} ({len(batch)} records)")
            results.append(self.pre_validate_records(batch, validation_rules, field_metadata, options))
        return results

    @staticmethod
    def apply_suggestions(
        record: Mapping[str, Any], suggestions: Sequence[SuggestedFix], confidence_threshold: float = 0.5
    ) -> dict[str, Any]:
        """Return a copy of the record with every fix at or above the threshold applied."""
        fixed = dict(record)
        for suggestion in suggestions:
            if suggestion.confidence >= confidence_threshold:
                fixed[suggestion.field] = suggestion.suggested_value
        return fixed

    def get_validation_coverage(self, validation_rules: Sequence[ValidationRule]) -> ValidationCoverage:
        return compute_coverage(validation_rules, self.evaluator)

    def validate_generation_pattern(
        self,
        generation_pattern: Mapping[str, Any],
        validation_rules: Sequence[ValidationRule],
        field_metadata: FieldMetadataInput = (),
    ) -> GenerationPatternAssessment:
        """
        Judge whether a generation pattern is likely to produce valid records.

        The pattern's ``fields`` mapping gives per-field settings (``type``,
        ``required``, or a fixed ``value``). A handful of sample records are
        built from it and pre-validated.
        """
        samples = self._sample_records(generation_pattern, field_metadata)
        validation = self.pre_validate_records(
            samples,
            validation_rules,
            field_metadata,
            PreValidationOptions(include_warnings=True, include_suggestions=True),
        )

        issues: list[str] = []
        suggestions: list[str] = []
        risk = 0

        if validation.violations:
            risk += len(validation.violations) * PATTERN_VIOLATION_RISK
            issues.append(f"Generation pattern violates {len(validation.violations)} validation rules")
            broken = list(dict.fromkeys(item.rule_id for item in validation.violations))
            suggestions.append(f"Consider adjusting generation parameters for rules: {', '.join(broken)}")

        if validation.warnings:
            risk += len(validation.warnings) * PATTERN_WARNING_RISK
            for warning in validation.warnings:
                if warning.warning_type is WarningType.UNSUPPORTED_FORMULA:
                    issues.append(warning.message)
                    suggestions.append(
                        "Some validation rules cannot be pre-validated and may cause insertion failures"
                    )

        return GenerationPatternAssessment(
            can_generate=validation.is_valid and risk < PATTERN_RISK_CEILING,
            issues=issues,
            suggestions=suggestions,
            risk_score=min(risk, PATTERN_MAX_RISK),
            validation=validation,
        )

    def get_performance_metrics(self) -> dict[str, Any]:
        return {
            **self._metrics,
            "cache_size": len(self.cache),
            "supported_functions": len(self.evaluator.get_supported_functions()),
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def _update_metrics(self, performance: PreValidationPerformance) -> None:
        metrics = self._metrics
        metrics["total_evaluations"] += 1
        metrics["records_validated"] += performance.records_processed
        metrics["total_time_ms"] += performance.evaluation_time_ms
        metrics["average_time_ms"] = metrics["total_time_ms"] / metrics["total_evaluations"]

    def _validate_record(
        self,
        record: Mapping[str, Any],
        rules: Sequence[ValidationRule],
        fields: list[FieldMetadata],
        record_index: int,
    ) -> list[PreValidationViolation]:
        violations: list[PreValidationViolation] = []
        for rule in rules:
            key = self._signature(rule, record)
            violates = self.cache.get(key)
            if violates is None:
                violates = self.evaluator.is_violated(rule.formula, record, fields)
                self.cache.set(key, violates)
            else:
                self._metrics["cache_hits"] += 1

            if violates:
                violations.append(
                    PreValidationViolation(
                        record_index=record_index,
                        rule_id=rule.id,
                        message=rule.error_message or f"Validation rule {rule.id} failed",
                        formula=rule.formula,
                        field=rule.error_display_field
                        or RecordChecker.primary_field(rule, self._rule_fields(rule), record),
                        severity=rule.severity,
                    )
                )
        return violations

    def _suggest(
        self,
        record: Mapping[str, Any],
        violations: Sequence[PreValidationViolation],
        rules: Sequence[ValidationRule],
        fields: list[FieldMetadata],
    ) -> list[SuggestedFix]:
        fixes: dict[str, SuggestedFix] = {}
        for item in violations:
            violation = ValidationViolation(
                field=item.field or item.rule_id,
                message=item.message,
                kind=ViolationKind.RULE,
                severity=item.severity,
                rule_id=item.rule_id,
            )
            for fix in self.fix_suggester.suggest(violation, record, fields, rules=rules):
                fixes.setdefault(fix.field, fix)
        return list(fixes.values())

    def _rule_fields(self, rule: ValidationRule) -> tuple[str, ...]:
        return rule.fields or self.rule_parser.parse_validation_rule_formula(rule.formula).fields

    def _signature(self, rule: ValidationRule, record: Mapping[str, Any]) -> str:
        relevant = {name: resolve_path(record, name) for name in self._rule_fields(rule)}
        content = json.dumps(relevant, sort_keys=True, default=str)
        digest = hashlib.sha256(f"{rule.id}\x00{rule.formula}\x00{content}".encode()).hexdigest()
        return f"{rule.id}:{digest}"

    @staticmethod
    def _metadata_list(field_metadata: FieldMetadataInput) -> list[FieldMetadata]:
        if isinstance(field_metadata, Mapping):
            return list(field_metadata.values())
        return list(field_metadata)

    def _sample_records(
        self, generation_pattern: Mapping[str, Any], field_metadata: FieldMetadataInput
    ) -> list[dict[str, Any]]:
        known = {item.name.lower(): item for item in self._metadata_list(field_metadata)}
        generator = FieldValueGenerator(rng=random.Random(0))
        generator.reseed(0)

        records = []
        for index in range(PATTERN_SAMPLE_COUNT):
            record: dict[str, Any] = {}
            for name, settings in (generation_pattern.get("fields") or {}).items():
                settings = settings or {}
                if "value" in settings:
                    record[name] = settings["value"]
                    continue
                pattern_type = str(settings.get("type", "string")).lower()
                pattern_type = PATTERN_TYPE_ALIASES.get(pattern_type, pattern_type)
                metadata = known.get(name.lower()) or FieldMetadata(
                    name=name,
                    type=FieldType.from_salesforce(pattern_type),
                    required=bool(settings.get("required", False)),
                )
                optional = not (metadata.required or settings.get("required", False))
                if optional and metadata.type in (FieldType.STRING, FieldType.TEXTAREA):
                    record[name] = None
                    continue
                record[name] = generator.generate(metadata, record_index=index)
            records.append(record)
        return records
