"""
Validation Engine - validates generated records against an object's rules.

The engine retrieves (or builds and caches) a ValidationContext per object,
checks every record locally through the record checker and the Formula
Evaluator, and optionally escalates risky or invalid records to an external
advisory service. Advisor failures never block validation: the local result is
always returned.

Key Responsibilities:
- Single-flight population of cached validation contexts per object
- Local constraint, rule and dependency checks with data-quality warnings
- Per-record risk scoring, suggested fixes and batch recommendations
- Optional advisor escalation with anonymized records
- Background sweep of expired contexts

Example:
    >>> engine = ValidationEngine(schema_provider)
    >>> result = await engine.validate_data(ValidationRequest("Account", records))
    >>> result.valid_records
    10
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sandbox_seeder.application.config import ValidationEngineConfig, get_config
from sandbox_seeder.application.interfaces import AdvisoryAnalysis, IAdvisoryService, ISchemaProvider
from sandbox_seeder.domain.entities import (
    ConstraintKind,
    EnginePerformance,
    ObjectSchema,
    RecordValidationResult,
    RiskLevel,
    RuleSetAnalysis,
    Severity,
    SuggestedFix,
    ValidationContext,
    ValidationEngineResult,
    ValidationViolation,
    ValidationWarning,
    ViolationKind,
    WarningSeverity,
    WarningType,
)
from sandbox_seeder.domain.exceptions import AdvisoryServiceError, ContextFetchError
from sandbox_seeder.domain.services.constraint_extractor import ConstraintExtractor
from sandbox_seeder.domain.services.constraint_solver import ConstraintSolver
from sandbox_seeder.domain.services.coverage import ValidationCoverage, compute_coverage
from sandbox_seeder.domain.services.fix_suggester import FixSuggester
from sandbox_seeder.domain.services.formula import FormulaEvaluator, is_blank
from sandbox_seeder.domain.services.record_checker import RecordChecker
from sandbox_seeder.domain.services.rule_parser import ValidationRuleParser
from sandbox_seeder.infrastructure.cache import CacheHealthInfo, CacheStats, ValidationCache
from sandbox_seeder.infrastructure.monitoring.logging import anonymize_record, correlation_context

logger = logging.getLogger(__name__)

CONTEXT_KEY_PREFIX = "validation-context:"

MAX_RISK_SCORE = 10.0
DEFAULT_ADVISOR_CONFIDENCE = 0.7
ERROR_RISK = 3.0
WARNING_VIOLATION_RISK = 1.0
HIGH_ERROR_RATE = 0.1
COMMON_FIELD_SHARE = 0.2
MIN_VALUE_LENGTH = 2
MIN_UNIQUE_LENGTH = 3
PLACEHOLDER_MARKERS = ("test", "sample")

_SUGGESTION_TEXT = re.compile(r"^(\w+):\s*(.+?)(?:\s*\(confidence:\s*([\d.]+)\))?$")


class ValidationLevel(Enum):
    """How much checking a validation request asks for."""

    BASIC = "basic"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


@dataclass
class ValidationRequest:
    object_name: str
    data: list[dict[str, Any]]
    skip_ai_analysis: bool = False
    include_warnings: bool = False
    validation_level: ValidationLevel = ValidationLevel.STANDARD


@dataclass
class GenerationPatternResult:
    """Outcome of checking one sample record built from a generation config."""

    is_valid: bool
    violations: list[ValidationViolation]
    suggestions: list[str]
    risk_score: float
    sample_record: dict[str, Any] = field(default_factory=dict)
    ai_analysis_used: bool = False


@dataclass
class RiskAssessment:
    overall_risk: RiskLevel
    risk_factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class FieldRecommendation:
    constraints: list[dict[str, Any]] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class RuleAnalysisReport:
    """Diagnostics for an object's rule set."""

    object_name: str
    analysis: RuleSetAnalysis
    field_recommendations: dict[str, FieldRecommendation]
    risk_assessment: RiskAssessment
    coverage: ValidationCoverage


class ValidationEngine:
    """
    Validates batches of records against cached validation contexts.

    Args:
        schema_provider: Source of object schemas and rules
        advisory_service: Optional external reviewer
        config: Engine settings; the engine section of ``get_config()`` when omitted
        cache: Context cache; a private one sized by the cache section when omitted
        evaluator: Formula evaluator shared by the checks
        rule_parser: Rule parser shared by analysis and extraction
        solver: Solver for pattern-check samples; built from the solver section when omitted
        clock: Timer used for performance figures
    """

    def __init__(
        self,
        schema_provider: ISchemaProvider,
        advisory_service: IAdvisoryService | None = None,
        config: ValidationEngineConfig | None = None,
        cache: ValidationCache | None = None,
        evaluator: FormulaEvaluator | None = None,
        rule_parser: ValidationRuleParser | None = None,
        solver: ConstraintSolver | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.schema_provider = schema_provider
        self.advisory_service = advisory_service
        app_config = get_config()
        self.config = config or app_config.engine
        if cache is None:
            cache = ValidationCache(
                default_ttl=app_config.cache.ttl_seconds,
                max_size=app_config.cache.max_size,
                max_memory_mb=app_config.cache.max_memory_mb,
            )
        self.cache = cache
        self.evaluator = evaluator or FormulaEvaluator()
        self.rule_parser = rule_parser or ValidationRuleParser()
        self.extractor = ConstraintExtractor(self.rule_parser)
        self.checker = RecordChecker(self.evaluator, self.rule_parser)
        self.fix_suggester = FixSuggester()
        self.solver = solver or ConstraintSolver.from_config(
            app_config.solver, self.evaluator, rule_parser=self.rule_parser
        )
        self._clock = clock

        self._context_locks: dict[str, asyncio.Lock] = {}
        self._semaphore = asyncio.Semaphore(max(self.config.max_concurrent_validations, 1))
        self._sweep_task: asyncio.Task[None] | None = None
        self._stop_sweep = False

        self._cache_hits = 0
        self._cache_misses = 0
        self._metrics: dict[str, float] = {
            "total_validations": 0,
            "successful_validations": 0,
            "records_validated": 0,
            "ai_analysis_used": 0,
            "avg_response_time_ms": 0.0,
        }

    async def __aenter__(self) -> "ValidationEngine":
        await self.start_background_sweep()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Context retrieval

    async def get_validation_context(self, object_name: str) -> ValidationContext:
        """
        Return the cached context for an object, building it on a miss.

        Concurrent callers for the same object share one fetch: the first one
        populates the cache while the others wait and then read it.

        Raises:
            ContextFetchError: If the schema provider fails
        """
        key = f"{CONTEXT_KEY_PREFIX}{object_name}"
        if self.config.cache_validation_results:
            cached = self.cache.get(key)
            if cached is not None:
                self._cache_hits += 1
                logger.debug(f"Using cached validation context for {object_name}")
                return cached

        lock = self._context_locks.setdefault(object_name, asyncio.Lock())
        async with lock:
            if self.config.cache_validation_results:
                cached = self.cache.get(key)
                if cached is not None:
                    self._cache_hits += 1
                    return cached

            self._cache_misses += 1
            context = await self._build_context(object_name)
            if self.config.cache_validation_results:
                self.cache.set(key, context)
            return context

    async def _build_context(self, object_name: str) -> ValidationContext:
        logger.info(f"Fetching validation context for {object_name}")
        try:
            payload = await self.schema_provider.get_object_schema(object_name)
        except ContextFetchError:
            raise
        except Exception as e:
            raise ContextFetchError(object_name, str(e)) from e

        if payload is None:
            raise ContextFetchError(object_name, "schema provider returned no schema")
        if isinstance(payload, ObjectSchema):
            schema = payload
        else:
            try:
                schema = ObjectSchema.from_dict(object_name, payload)
            except (TypeError, ValueError, AttributeError) as e:
                raise ContextFetchError(object_name, f"malformed schema: {e}") from e

        rules = []
        parsed_rules = {}
        for rule in schema.validation_rules:
            analysed, parsed = self.rule_parser.parse_rule(rule, object_name)
            rules.append(analysed)
            parsed_rules[rule.id] = parsed

        extraction = self.extractor.extract(schema, rules)
        return ValidationContext(
            object_name=object_name,
            schema=schema,
            rules=rules,
            parsed_rules=parsed_rules,
            constraints=extraction.constraints,
            dependencies=extraction.dependencies,
        )

    # Validation

    async def validate_data(self, request: ValidationRequest) -> ValidationEngineResult:
        """
        Validate a batch of records for one object.

        Args:
            request: Object name, records and validation options

        Returns:
            ValidationEngineResult with per-record results and aggregates

        Raises:
            ContextFetchError: If the object's context cannot be retrieved
        """
        start = self._clock()
        hits_before, misses_before = self._cache_hits, self._cache_misses

        with correlation_context(object_name=request.object_name):
            logger.info(f"Starting validation for {request.object_name} with {len(request.data)} records")

            async with self._semaphore:
                context = await self.get_validation_context(request.object_name)
                duplicates = self.checker.find_duplicates(request.data, context.constraints)

                results: list[RecordValidationResult] = []
                local_time = 0.0
                advisor_time = 0.0
                advisor_used = False
                rules_evaluated = 0

                for index, record in enumerate(request.data):
                    record_start = self._clock()
                    result = self.validate_record_locally(
                        record,
                        context,
                        include_warnings=request.include_warnings,
                        validation_level=request.validation_level,
                        record_index=index,
                        batch_violations=duplicates.get(index, ()),
                    )
                    local_time += self._clock() - record_start
                    rules_evaluated += len(context.active_rules)

                    if self._should_use_advisor(request, result):
                        advisor_start = self._clock()
                        result = await self._enhance_with_advisor(record, result, context)
                        advisor_time += self._clock() - advisor_start
                        advisor_used = True

                    results.append(result)

            valid = sum(1 for item in results if item.is_valid)
            total_ms = (self._clock() - start) * 1000
            outcome = ValidationEngineResult(
                is_valid=valid == len(results),
                total_records=len(results),
                valid_records=valid,
                invalid_records=len(results) - valid,
                results=results,
                overall_risk_score=self.calculate_overall_risk_score(results),
                engine_performance=EnginePerformance(
                    total_time_ms=total_ms,
                    local_validation_time_ms=local_time * 1000,
                    ai_analysis_time_ms=advisor_time * 1000 if advisor_used else None,
                    rules_evaluated=rules_evaluated,
                    cache_hits=self._cache_hits - hits_before,
                    cache_misses=self._cache_misses - misses_before,
                ),
                recommendations=self.generate_recommendations(results),
            )

            self._update_metrics(total_ms, len(results), any(item.ai_analysis_used for item in results))
            logger.info(
                f"Validation completed: {valid}/{len(results)} valid records "
                f"for {request.object_name} in {total_ms:.1f}ms"
            )
            return outcome

    def validate_record_locally(
        self,
        record: Mapping[str, Any],
        context: ValidationContext,
        include_warnings: bool = True,
        validation_level: ValidationLevel = ValidationLevel.STANDARD,
        record_index: int = 0,
        batch_violations: Sequence[ValidationViolation] = (),
    ) -> RecordValidationResult:
        """
        Check one record without any external calls.

        Basic validation skips dependency checks; standard and comprehensive
        include them.
        """
        violations = self.checker.check(
            record,
            field_metadata=context.schema.fields,
            rules=context.active_rules,
            constraints=context.constraints,
            dependencies=context.dependencies,
            include_dependencies=validation_level is not ValidationLevel.BASIC,
        )
        violations.extend(batch_violations)

        warnings = self.generate_warnings(record, context) if include_warnings else []
        fixes = self._suggest_fixes(violations, record, context)

        return RecordValidationResult(
            record_index=record_index,
            is_valid=not any(item.severity is Severity.ERROR for item in violations),
            violations=violations,
            warnings=warnings,
            risk_score=self.calculate_record_risk_score(violations, warnings),
            suggested_fixes=fixes,
            metadata={"validation_level": validation_level.value},
        )

    def generate_warnings(self, record: Mapping[str, Any], context: ValidationContext) -> list[ValidationWarning]:
        """Data-quality warnings: too-short values, placeholder text, weak unique values."""
        warnings: list[ValidationWarning] = []
        for name, value in record.items():
            if not isinstance(value, str) or is_blank(value):
                continue
            text = value.strip()
            if len(text) < MIN_VALUE_LENGTH:
                warnings.append(
                    ValidationWarning(
                        field=name,
                        message=f"{name} value may be too short",
                        warning_type=WarningType.DATA_QUALITY,
                        severity=WarningSeverity.LOW,
                        details={"suggestion": "Consider using a longer, more realistic value"},
                    )
                )
            lowered = text.lower()
            if any(marker in lowered for marker in PLACEHOLDER_MARKERS):
                warnings.append(
                    ValidationWarning(
                        field=name,
                        message=f"{name} appears to contain placeholder text",
                        warning_type=WarningType.DATA_QUALITY,
                        severity=WarningSeverity.MEDIUM,
                        details={"suggestion": "Use more realistic data"},
                    )
                )

        for constraint in context.constraints:
            if constraint.kind is not ConstraintKind.UNIQUE:
                continue
            value = record.get(constraint.field)
            if isinstance(value, str) and not is_blank(value) and len(value.strip()) < MIN_UNIQUE_LENGTH:
                warnings.append(
                    ValidationWarning(
                        field=constraint.field,
                        message=f"{constraint.field} value may not be sufficiently unique",
                        warning_type=WarningType.POTENTIAL_ISSUE,
                        severity=WarningSeverity.LOW,
                        details={"suggestion": "Consider using a longer, more unique value"},
                    )
                )
        return warnings

    def _suggest_fixes(
        self, violations: Sequence[ValidationViolation], record: Mapping[str, Any], context: ValidationContext
    ) -> list[SuggestedFix]:
        fixes: list[SuggestedFix] = []
        seen: set[str] = set()
        for violation in violations:
            for fix in self.fix_suggester.suggest(
                violation, record, context.schema.fields, context.constraints, context.active_rules
            ):
                if fix.field not in seen:
                    seen.add(fix.field)
                    fixes.append(fix)
        return fixes

    @staticmethod
    def calculate_record_risk_score(
        violations: Sequence[ValidationViolation], warnings: Sequence[ValidationWarning]
    ) -> float:
        score = 0.0
        for violation in violations:
            score += ERROR_RISK if violation.severity is Severity.ERROR else WARNING_VIOLATION_RISK
        for warning in warnings:
            score += warning.severity.risk_weight
        return min(score, MAX_RISK_SCORE)

    @staticmethod
    def calculate_overall_risk_score(results: Sequence[RecordValidationResult]) -> float:
        if not results:
            return 0.0
        return min(sum(item.risk_score for item in results) / len(results), MAX_RISK_SCORE)

    @staticmethod
    def generate_recommendations(results: Sequence[RecordValidationResult]) -> list[str]:
        if not results:
            return []

        recommendations: list[str] = []
        error_rate = sum(1 for item in results if not item.is_valid) / len(results)
        if error_rate > HIGH_ERROR_RATE:
            recommendations.append("High error rate detected - review data generation patterns")

        violations = [violation for item in results for violation in item.violations]
        if violations:
            recommendations.append("Consider adjusting data generation to avoid validation violations")

            counts: dict[str, int] = {}
            for violation in violations:
                counts[violation.field] = counts.get(violation.field, 0) + 1
            common = [name for name, count in counts.items() if count > len(violations) * COMMON_FIELD_SHARE]
            if common:
                recommendations.append(f"Focus on improving data quality for fields: {', '.join(common)}")
        return recommendations

    # Advisor escalation

    def _should_use_advisor(self, request: ValidationRequest, local: RecordValidationResult) -> bool:
        if self.advisory_service is None or not self.config.enable_ai_analysis or request.skip_ai_analysis:
            return False
        return (
            not local.is_valid
            or local.risk_score > self.config.ai_risk_threshold
            or request.validation_level is ValidationLevel.COMPREHENSIVE
        )

    async def _enhance_with_advisor(
        self, record: Mapping[str, Any], local: RecordValidationResult, context: ValidationContext
    ) -> RecordValidationResult:
        """Merge advisor findings into the local result; keep the local result on failure."""
        try:
            raw = await self.advisory_service.analyze_record(anonymize_record(record), context.active_rules)
            analysis = raw if isinstance(raw, AdvisoryAnalysis) else AdvisoryAnalysis.from_dict(raw)
            advisor_violations = [
                self._advisor_violation(item) for item in analysis.violations if isinstance(item, Mapping)
            ]
            advisor_fixes = [
                fix
                for fix in (self._advisor_fix(item, record) for item in analysis.suggestions)
                if fix is not None
            ]
            risk_score = min(max(local.risk_score, analysis.risk_score), MAX_RISK_SCORE)
        except Exception as e:
            error = AdvisoryServiceError(f"Advisory analysis failed: {e}", context.object_name)
            logger.warning(f"{error} (record {local.record_index})")
            local.metadata.update({"ai_analysis": "not_used", "ai_error": str(e)})
            return local

        skipped = len(analysis.violations) - len(advisor_violations)
        if skipped:
            logger.debug(f"Ignored {skipped} malformed advisor violation(s) for record {local.record_index}")

        return RecordValidationResult(
            record_index=local.record_index,
            is_valid=local.is_valid and not any(item.severity is Severity.ERROR for item in advisor_violations),
            violations=local.violations + advisor_violations,
            warnings=local.warnings,
            risk_score=risk_score,
            suggested_fixes=local.suggested_fixes + advisor_fixes,
            ai_analysis_used=True,
            metadata={**local.metadata, "ai_analysis": "used"},
        )

    @staticmethod
    def _advisor_violation(item: Mapping[str, Any]) -> ValidationViolation:
        return ValidationViolation(
            field=str(item.get("field") or "unknown"),
            message=str(item.get("message") or "Flagged by advisory review"),
            kind=ViolationKind.ADVISOR,
            severity=Severity.parse(item.get("severity")),
            rule_id=item.get("rule") or item.get("rule_id"),
        )

    @staticmethod
    def _advisor_confidence(value: Any) -> float:
        """Clamp a reported confidence to 0..1; unreadable values fall back to the default."""
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return DEFAULT_ADVISOR_CONFIDENCE
        if confidence != confidence:  # NaN
            return DEFAULT_ADVISOR_CONFIDENCE
        return min(max(confidence, 0.0), 1.0)

    @classmethod
    def _advisor_fix(cls, item: Any, record: Mapping[str, Any]) -> SuggestedFix | None:
        if isinstance(item, str):
            match = _SUGGESTION_TEXT.match(item.strip())
            if not match:
                return None
            name, reason, confidence = match.groups()
            return SuggestedFix(
                name,
                record.get(name),
                None,
                reason,
                cls._advisor_confidence(confidence if confidence is not None else DEFAULT_ADVISOR_CONFIDENCE),
            )

        if not isinstance(item, Mapping):
            return None
        name = item.get("field")
        if not name or not isinstance(name, str):
            return None
        return SuggestedFix(
            field=name,
            current_value=record.get(name),
            suggested_value=item.get("suggested_value", item.get("suggestedValue")),
            reason=str(item.get("reason") or "Suggested by advisory review"),
            confidence=cls._advisor_confidence(item.get("confidence", DEFAULT_ADVISOR_CONFIDENCE)),
        )

    # Pattern checks and diagnostics

    async def pre_validate_generation_pattern(
        self, object_name: str, sample_config: Mapping[str, Any]
    ) -> GenerationPatternResult:
        """
        Check a generation config before bulk synthesis.

        A compliant record is synthesized for the object, the config's fixed
        field values are laid over it, and the result is validated locally
        (and by the advisor when issues remain and one is configured).
        """
        logger.info(f"Pre-validating generation pattern for {object_name}")
        context = await self.get_validation_context(object_name)

        solved = self.solver.generate_compliant_record(
            context.schema, context.rules, context.constraints, context.dependencies
        )
        sample = {**solved.record, **dict(sample_config)}
        result = self.validate_record_locally(sample, context, include_warnings=True)

        if (not result.is_valid or result.warnings) and self.advisory_service and self.config.enable_ai_analysis:
            result = await self._enhance_with_advisor(sample, result, context)

        return GenerationPatternResult(
            is_valid=result.is_valid,
            violations=result.violations,
            suggestions=[f"{fix.field}: {fix.reason} (confidence: {fix.confidence})" for fix in result.suggested_fixes],
            risk_score=result.risk_score,
            sample_record=sample,
            ai_analysis_used=result.ai_analysis_used,
        )

    async def analyze_validation_rules(self, object_name: str) -> RuleAnalysisReport:
        """Rule-set analysis, per-field recommendations, risk assessment and coverage."""
        logger.info(f"Analyzing validation rules for {object_name}")
        context = await self.get_validation_context(object_name)
        analysis = self.rule_parser.parse_object_validation_rules(context.rules, object_name)

        return RuleAnalysisReport(
            object_name=object_name,
            analysis=analysis,
            field_recommendations=self._field_recommendations(context),
            risk_assessment=self.assess_validation_risk(context, analysis),
            coverage=compute_coverage(context.rules, self.evaluator),
        )

    @staticmethod
    def _field_recommendations(context: ValidationContext) -> dict[str, FieldRecommendation]:
        recommendations: dict[str, FieldRecommendation] = {}
        for rule in context.active_rules:
            for name in rule.fields:
                entry = recommendations.setdefault(name, FieldRecommendation())
                entry.constraints.append({"rule": rule.id, "formula": rule.formula, "message": rule.error_message})

        for constraint in context.constraints:
            entry = recommendations.get(constraint.field)
            if entry is None:
                continue
            suggestion = f"{constraint.kind.value}: {constraint.expression}"
            if suggestion not in entry.suggestions:
                entry.suggestions.append(suggestion)
        return recommendations

    @staticmethod
    def assess_validation_risk(context: ValidationContext, analysis: RuleSetAnalysis) -> RiskAssessment:
        factors: list[str] = []
        recommendations: list[str] = []

        if len(context.active_rules) > 10:
            factors.append("High number of validation rules")
            recommendations.append("Consider simplifying validation rules where possible")
        if len(context.dependencies) > 5:
            factors.append("Complex field dependencies")
            recommendations.append("Test field dependencies thoroughly during data generation")
        high_risk = analysis.high_risk_rule_ids
        if high_risk:
            factors.append(f"{len(high_risk)} high-risk validation rules")
            recommendations.append("Use advisory analysis for high-risk validation rules")

        if len(factors) >= 3:
            overall = RiskLevel.HIGH
        elif factors:
            overall = RiskLevel.MEDIUM
        else:
            overall = RiskLevel.LOW
        return RiskAssessment(overall_risk=overall, risk_factors=factors, recommendations=recommendations)

    # Cache management and background sweep

    def sweep_expired_contexts(self) -> int:
        purged = self.cache.purge_expired()
        if purged:
            logger.debug(f"Cleaned up {purged} expired validation cache entries")
        return purged

    @property
    def sweep_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start_background_sweep(self, interval: float | None = None) -> None:
        """Start purging expired contexts periodically, unless disabled by config."""
        if not self.config.enable_context_sweep:
            logger.debug("Context sweep disabled")
            return
        if self.sweep_running:
            logger.warning("Context sweep already running")
            return

        interval = interval or self.config.context_sweep_interval_seconds
        self._stop_sweep = False
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval))
        logger.info(f"Started validation context sweep (interval: {interval}s)")

    async def stop_background_sweep(self) -> None:
        self._stop_sweep = True

        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.info("Stopped validation context sweep")
        self._sweep_task = None

    async def _sweep_loop(self, interval: float) -> None:
        while not self._stop_sweep:
            try:
                self.sweep_expired_contexts()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in validation context sweep: {e}")
                await asyncio.sleep(interval)

    async def close(self) -> None:
        """Stop background work and drop cached contexts."""
        await self.stop_background_sweep()
        self.clear_cache()

    def clear_cache(self) -> None:
        removed = self.cache.invalidate(prefix=CONTEXT_KEY_PREFIX)
        logger.info(f"Validation cache cleared ({removed} contexts)")

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

    def get_cache_health(self) -> CacheHealthInfo:
        return self.cache.get_health_info()

    def get_performance_metrics(self) -> dict[str, float]:
        lookups = self._cache_hits + self._cache_misses
        return {
            **self._metrics,
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "cache_hit_rate": self._cache_hits / lookups if lookups else 0.0,
        }

    def _update_metrics(self, total_ms: float, records: int, advisor_used: bool) -> None:
        metrics = self._metrics
        metrics["total_validations"] += 1
        metrics["successful_validations"] += 1
        metrics["records_validated"] += records
        if advisor_used:
            metrics["ai_analysis_used"] += 1
        count = metrics["total_validations"]
        metrics["avg_response_time_ms"] = (metrics["avg_response_time_ms"] * (count - 1) + total_ms) / count
