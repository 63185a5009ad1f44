"""
Unit tests for the Validation Engine.

Tests cover:
- Local validation of batches (rules, constraints, duplicates, warnings)
- Validation context caching, expiry and single-flight population
- Advisory escalation and graceful degradation
- Generation pattern checks and rule-set diagnostics
- Background sweep lifecycle and metrics
"""

import asyncio
import os
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from sandbox_seeder.application.config import ValidationEngineConfig, reset_config
from sandbox_seeder.application.services import (
    ValidationEngine,
    ValidationLevel,
    ValidationRequest,
)
from sandbox_seeder.application.services.validation_engine import CONTEXT_KEY_PREFIX
from sandbox_seeder.domain.entities import (
    FieldMetadata,
    ObjectSchema,
    RecordValidationResult,
    RiskLevel,
    Severity,
    ValidationRule,
    ValidationViolation,
    ViolationKind,
    WarningType,
)
from sandbox_seeder.domain.exceptions import ContextFetchError
from sandbox_seeder.domain.services.constraint_solver import ConstraintSolver
from sandbox_seeder.infrastructure.cache import ValidationCache


@pytest.fixture
def engine(mock_schema_provider, engine_config):
    return ValidationEngine(mock_schema_provider, config=engine_config)


@pytest.fixture
def advised_engine(mock_schema_provider, mock_advisory_service, engine_config):
    return ValidationEngine(mock_schema_provider, mock_advisory_service, config=engine_config)


def _customer_without_industry():
    return {"Name": "Acme", "Type": "Customer", "Industry": "", "AnnualRevenue": 1000.0}


class TestLocalValidation:
    """Test validation without an advisory service"""

    @pytest.mark.asyncio
    async def test_scenario_blank_name(self, engine_config):
        """ISBLANK(Name) on a null name reports one violation on Name"""
        provider = AsyncMock()
        provider.get_object_schema.return_value = ObjectSchema(
            "Account",
            [FieldMetadata(name="Name")],
            [ValidationRule(id="Name_Required", formula="ISBLANK(Name)", error_message="Name is required")],
        )
        engine = ValidationEngine(provider, config=engine_config)

        result = await engine.validate_data(ValidationRequest("Account", [{"Name": None}]))

        assert result.is_valid is False
        assert result.invalid_records == 1
        (record_result,) = result.results
        assert len(record_result.violations) == 1
        assert record_result.violations[0].field == "Name"
        assert record_result.violations[0].rule_id == "Name_Required"
        assert record_result.suggested_fixes[0].field == "Name"
        assert record_result.risk_score == 3.0

    @pytest.mark.asyncio
    async def test_scenario_conditional_industry(self, engine):
        """A customer without an industry breaks exactly one rule"""
        result = await engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        (record_result,) = result.results
        assert [item.rule_id for item in record_result.violations] == ["Industry_Required_For_Customers"]
        assert record_result.violations[0].field == "Industry"
        assert {fix.field for fix in record_result.suggested_fixes} >= {"Industry"}

    @pytest.mark.asyncio
    async def test_valid_batch(self, engine, valid_account):
        """Valid records produce a clean result"""
        result = await engine.validate_data(ValidationRequest("Account", [valid_account, dict(valid_account)]))

        assert result.is_valid is True
        assert result.valid_records == 2
        assert result.overall_risk_score == 0.0
        assert result.recommendations == []
        assert result.engine_performance.rules_evaluated == 6

    @pytest.mark.asyncio
    async def test_validation_is_idempotent(self, engine):
        """Validating the same batch twice gives the same findings"""
        request = ValidationRequest("Account", [_customer_without_industry(), {"AnnualRevenue": -1}])
        first = await engine.validate_data(request)
        second = await engine.validate_data(request)

        assert [item.violations for item in first.results] == [item.violations for item in second.results]
        assert first.valid_records == second.valid_records

    @pytest.mark.asyncio
    async def test_warning_rules_do_not_invalidate(self, engine, valid_account):
        """Warning-severity rules are reported but keep the record valid"""
        record = {**valid_account, "NumberOfEmployees": 900000}
        result = await engine.validate_data(ValidationRequest("Account", [record]))

        (record_result,) = result.results
        assert record_result.is_valid is True
        assert record_result.violations[0].severity is Severity.WARNING
        assert record_result.risk_score == 1.0

    @pytest.mark.asyncio
    async def test_data_quality_warnings(self, engine, valid_account):
        """Placeholder text and very short values are flagged when asked"""
        record = {**valid_account, "Name": "Test Company", "Industry": "X"}
        result = await engine.validate_data(ValidationRequest("Account", [record], include_warnings=True))

        warnings = result.results[0].warnings
        assert {(item.field, item.warning_type) for item in warnings} == {
            ("Name", WarningType.DATA_QUALITY),
            ("Industry", WarningType.DATA_QUALITY),
        }
        assert result.results[0].risk_score == 1.5

    @pytest.mark.asyncio
    async def test_duplicates_across_batch(self, engine_config):
        """Repeated unique values invalidate the later records"""
        provider = AsyncMock()
        provider.get_object_schema.return_value = ObjectSchema(
            "Account", [FieldMetadata(name="AccountNumber", unique=True)]
        )
        engine = ValidationEngine(provider, config=engine_config)
        records = [{"AccountNumber": "ACC-1"}, {"AccountNumber": "ACC-2"}, {"AccountNumber": "acc-1"}]

        result = await engine.validate_data(ValidationRequest("Account", records))

        assert [item.is_valid for item in result.results] == [True, True, False]
        assert result.results[2].violations[0].kind is ViolationKind.UNIQUE

    @pytest.mark.asyncio
    async def test_validation_level_recorded(self, engine, valid_account):
        """The requested level is kept in the record metadata"""
        request = ValidationRequest("Account", [valid_account], validation_level=ValidationLevel.BASIC)
        result = await engine.validate_data(request)
        assert result.results[0].metadata["validation_level"] == "basic"

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine):
        """An empty batch is trivially valid"""
        result = await engine.validate_data(ValidationRequest("Account", []))
        assert result.is_valid is True
        assert result.total_records == 0
        assert result.overall_risk_score == 0.0


class TestRecommendations:
    """Test batch recommendations"""

    def _result(self, index, *fields):
        violations = [ValidationViolation(name, "bad", ViolationKind.RULE) for name in fields]
        return RecordValidationResult(record_index=index, is_valid=not violations, violations=violations)

    def test_high_error_rate(self):
        """More than 10% invalid records triggers a review hint"""
        results = [self._result(0, "Name", "Name", "Industry"), self._result(1)]
        recommendations = ValidationEngine.generate_recommendations(results)

        assert recommendations[0] == "High error rate detected - review data generation patterns"
        assert "Consider adjusting data generation to avoid validation violations" in recommendations
        assert recommendations[-1] == "Focus on improving data quality for fields: Name, Industry"

    def test_rare_fields_not_listed(self):
        """Fields under 20% of violations are not called out"""
        results = [self._result(0, *(["Name"] * 9 + ["Phone"]))] + [self._result(i) for i in range(1, 20)]
        recommendations = ValidationEngine.generate_recommendations(results)

        assert recommendations == [
            "Consider adjusting data generation to avoid validation violations",
            "Focus on improving data quality for fields: Name",
        ]


class TestContextCaching:
    """Test validation context retrieval"""

    @pytest.mark.asyncio
    async def test_context_cached(self, engine, mock_schema_provider, valid_account):
        """The schema is fetched once per object"""
        await engine.validate_data(ValidationRequest("Account", [valid_account]))
        second = await engine.validate_data(ValidationRequest("Account", [valid_account]))

        assert mock_schema_provider.get_object_schema.await_count == 1
        assert second.engine_performance.cache_hits == 1
        assert second.engine_performance.cache_misses == 0

    @pytest.mark.asyncio
    async def test_context_refetched_after_ttl(self, mock_schema_provider, engine_config, fake_clock):
        """An expired context is rebuilt"""
        cache = ValidationCache(default_ttl=10, clock=fake_clock)
        engine = ValidationEngine(mock_schema_provider, config=engine_config, cache=cache)

        await engine.get_validation_context("Account")
        fake_clock.advance(9)
        await engine.get_validation_context("Account")
        assert mock_schema_provider.get_object_schema.await_count == 1

        fake_clock.advance(1)
        await engine.get_validation_context("Account")
        assert mock_schema_provider.get_object_schema.await_count == 2

    @pytest.mark.asyncio
    async def test_single_flight(self, account_schema, engine_config):
        """Concurrent lookups share one fetch"""
        calls = 0

        async def slow_schema(object_name):
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return account_schema

        provider = AsyncMock()
        provider.get_object_schema.side_effect = slow_schema
        engine = ValidationEngine(provider, config=engine_config)

        contexts = await asyncio.gather(*(engine.get_validation_context("Account") for _ in range(5)))

        assert calls == 1
        assert all(item is contexts[0] for item in contexts)

    @pytest.mark.asyncio
    async def test_caching_disabled(self, mock_schema_provider):
        """Without result caching every lookup fetches"""
        engine = ValidationEngine(
            mock_schema_provider,
            config=ValidationEngineConfig(cache_validation_results=False, enable_context_sweep=False),
        )
        await engine.get_validation_context("Account")
        await engine.get_validation_context("Account")
        assert mock_schema_provider.get_object_schema.await_count == 2

    @pytest.mark.asyncio
    async def test_context_contents(self, engine):
        """Rules are analysed and constraints extracted"""
        context = await engine.get_validation_context("Account")

        assert all(rule.is_analyzed for rule in context.rules)
        assert set(context.parsed_rules) == {rule.id for rule in context.rules}
        assert context.constraints_for("AnnualRevenue")
        assert len(context.dependencies) == 1

    @pytest.mark.asyncio
    async def test_raw_payload(self, engine_config):
        """Provider payloads in mapping form are accepted"""
        provider = AsyncMock()
        provider.get_object_schema.return_value = {
            "fields": [{"name": "LastName", "type": "string", "required": True}],
            "validationRules": [{"fullName": "Last_Name_Length", "errorConditionFormula": "LEN(LastName) > 40"}],
        }
        engine = ValidationEngine(provider, config=engine_config)

        context = await engine.get_validation_context("Contact")

        assert context.schema.field_names == ["LastName"]
        assert context.rules[0].id == "Last_Name_Length"

    @pytest.mark.asyncio
    async def test_provider_failure(self, engine_config):
        """Provider errors surface as ContextFetchError"""
        provider = AsyncMock()
        provider.get_object_schema.side_effect = RuntimeError("connection refused")
        engine = ValidationEngine(provider, config=engine_config)

        with pytest.raises(ContextFetchError) as exc_info:
            await engine.validate_data(ValidationRequest("Account", [{}]))

        assert exc_info.value.object_name == "Account"
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_schema(self, engine_config):
        """A provider returning nothing is a fetch error"""
        provider = AsyncMock()
        provider.get_object_schema.return_value = None
        engine = ValidationEngine(provider, config=engine_config)

        with pytest.raises(ContextFetchError):
            await engine.get_validation_context("Account")

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self, account_schema, engine_config):
        """A later lookup retries after a failure"""
        provider = AsyncMock()
        provider.get_object_schema.side_effect = [RuntimeError("timeout"), account_schema]
        engine = ValidationEngine(provider, config=engine_config)

        with pytest.raises(ContextFetchError):
            await engine.get_validation_context("Account")
        context = await engine.get_validation_context("Account")
        assert context.object_name == "Account"

    @pytest.mark.asyncio
    async def test_clear_cache_only_drops_contexts(self, engine):
        """clear_cache leaves other entries of a shared cache alone"""
        engine.cache.set("pre-validation:other", True)
        await engine.get_validation_context("Account")

        engine.clear_cache()

        assert f"{CONTEXT_KEY_PREFIX}Account" not in engine.cache
        assert "pre-validation:other" in engine.cache


class TestAdvisoryEscalation:
    """Test the optional advisory service"""

    @pytest.mark.asyncio
    async def test_invalid_records_escalated_anonymized(self, advised_engine, mock_advisory_service):
        """Invalid records go to the advisor with text masked"""
        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        mock_advisory_service.analyze_record.assert_awaited_once()
        record, rules = mock_advisory_service.analyze_record.await_args.args
        assert record == {"Name": "***", "Type": "***", "Industry": "", "AnnualRevenue": 1000.0}
        assert len(rules) == 3
        assert result.results[0].ai_analysis_used is True
        assert result.engine_performance.ai_analysis_time_ms is not None

    @pytest.mark.asyncio
    async def test_valid_records_not_escalated(self, advised_engine, mock_advisory_service, valid_account):
        """Low-risk valid records stay local at the standard level"""
        result = await advised_engine.validate_data(ValidationRequest("Account", [valid_account]))

        mock_advisory_service.analyze_record.assert_not_awaited()
        assert result.engine_performance.ai_analysis_time_ms is None

    @pytest.mark.asyncio
    async def test_comprehensive_level_escalates(self, advised_engine, mock_advisory_service, valid_account):
        """Comprehensive validation always consults the advisor"""
        request = ValidationRequest("Account", [valid_account], validation_level=ValidationLevel.COMPREHENSIVE)
        await advised_engine.validate_data(request)
        mock_advisory_service.analyze_record.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skip_flag(self, advised_engine, mock_advisory_service):
        """skip_ai_analysis keeps validation local"""
        request = ValidationRequest("Account", [_customer_without_industry()], skip_ai_analysis=True)
        await advised_engine.validate_data(request)
        mock_advisory_service.analyze_record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_advisor_findings_merged(self, advised_engine, mock_advisory_service):
        """Advisor violations and suggestions join the local result"""
        mock_advisory_service.analyze_record.return_value = {
            "violations": [{"field": "Name", "message": "Looks synthetic", "severity": "warning"}],
            "suggestions": [
                "Name: Use a realistic company name (confidence: 0.6)",
                {"field": "Industry", "suggestedValue": "Retail", "reason": "Common industry", "confidence": 2},
            ],
            "riskScore": 12,
        }
        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        record_result = result.results[0]
        advisor = [item for item in record_result.violations if item.kind is ViolationKind.ADVISOR]
        assert advisor[0].severity is Severity.WARNING
        assert record_result.risk_score == 10.0
        name_fix = next(fix for fix in record_result.suggested_fixes if fix.reason == "Use a realistic company name")
        assert name_fix.confidence == 0.6
        industry_fix = next(fix for fix in record_result.suggested_fixes if fix.suggested_value == "Retail")
        assert industry_fix.confidence == 1.0

    @pytest.mark.asyncio
    async def test_advisor_failure_keeps_local_result(self, advised_engine, mock_advisory_service):
        """Advisor errors never block validation"""
        mock_advisory_service.analyze_record.side_effect = TimeoutError("advisor timed out")

        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        record_result = result.results[0]
        assert record_result.is_valid is False
        assert record_result.ai_analysis_used is False
        assert record_result.metadata["ai_analysis"] == "not_used"
        assert "advisor timed out" in record_result.metadata["ai_error"]

    @pytest.mark.asyncio
    async def test_malformed_advisor_violations_ignored(self, advised_engine, mock_advisory_service):
        """Violation entries that are not mappings are skipped, the local result survives"""
        mock_advisory_service.analyze_record.return_value = {"violations": ["Name looks fake"]}

        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        record_result = result.results[0]
        assert record_result.is_valid is False
        assert record_result.ai_analysis_used is True
        assert [item.rule_id for item in record_result.violations] == ["Industry_Required_For_Customers"]

    @pytest.mark.asyncio
    async def test_unreadable_suggestion_confidence_defaults(self, advised_engine, mock_advisory_service):
        """Non-numeric confidences fall back to 0.7 instead of failing the batch"""
        mock_advisory_service.analyze_record.return_value = {
            "suggestions": [
                {"field": "Name", "confidence": "high", "reason": "Too short"},
                "Industry: pick a real industry (confidence: .)",
                42,
                {"field": None},
            ]
        }

        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        record_result = result.results[0]
        advisor_fixes = {
            fix.field: fix.confidence
            for fix in record_result.suggested_fixes
            if fix.reason in ("Too short", "pick a real industry")
        }
        assert advisor_fixes == {"Name": 0.7, "Industry": 0.7}
        assert record_result.is_valid is False

    @pytest.mark.asyncio
    async def test_unreadable_risk_score_keeps_local_result(self, advised_engine, mock_advisory_service):
        """A reply whose risk score is not a number degrades to the local result"""
        mock_advisory_service.analyze_record.return_value = {"riskScore": "very high"}

        result = await advised_engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))

        record_result = result.results[0]
        assert record_result.ai_analysis_used is False
        assert record_result.metadata["ai_analysis"] == "not_used"

    @pytest.mark.asyncio
    async def test_advisor_disabled_by_config(self, mock_schema_provider, mock_advisory_service):
        """enable_ai_analysis=False never escalates"""
        engine = ValidationEngine(
            mock_schema_provider,
            mock_advisory_service,
            config=ValidationEngineConfig(enable_ai_analysis=False, enable_context_sweep=False),
        )
        await engine.validate_data(ValidationRequest("Account", [_customer_without_industry()]))
        mock_advisory_service.analyze_record.assert_not_awaited()


class TestPatternsAndDiagnostics:
    """Test generation pattern checks and rule analysis"""

    @pytest.mark.asyncio
    async def test_pattern_violating_rule(self, mock_schema_provider, engine_config):
        """A config forcing a blank industry for customers is rejected"""
        engine = ValidationEngine(mock_schema_provider, config=engine_config, solver=ConstraintSolver(seed=42))

        result = await engine.pre_validate_generation_pattern("Account", {"Type": "Customer", "Industry": ""})

        assert result.is_valid is False
        assert result.sample_record["Type"] == "Customer"
        assert "Industry_Required_For_Customers" in [item.rule_id for item in result.violations]
        assert any(item.startswith("Industry:") for item in result.suggestions)
        assert result.ai_analysis_used is False

    @pytest.mark.asyncio
    async def test_pattern_compliant(self, mock_schema_provider, engine_config):
        """A harmless config yields a valid sample"""
        engine = ValidationEngine(mock_schema_provider, config=engine_config, solver=ConstraintSolver(seed=42))

        result = await engine.pre_validate_generation_pattern("Account", {"AnnualRevenue": 125000.0})

        assert result.is_valid is True
        assert result.sample_record["AnnualRevenue"] == 125000.0

    @pytest.mark.asyncio
    async def test_analyze_validation_rules(self, engine):
        """Rule analysis combines parsing, recommendations, risk and coverage"""
        report = await engine.analyze_validation_rules("Account")

        assert report.analysis.total_rules == 3
        assert report.coverage.coverage == 100.0
        assert report.risk_assessment.overall_risk is RiskLevel.LOW
        assert report.risk_assessment.risk_factors == []
        industry = report.field_recommendations["Industry"]
        assert industry.constraints[0]["rule"] == "Industry_Required_For_Customers"
        assert "format: MAX_LENGTH(40)" in industry.suggestions

    @pytest.mark.asyncio
    async def test_high_risk_rules_assessed(self, engine_config):
        """High-risk rules raise the overall assessment"""
        provider = AsyncMock()
        provider.get_object_schema.return_value = ObjectSchema(
            "Opportunity",
            [FieldMetadata(name="CloseDate"), FieldMetadata(name="Amount")],
            [
                ValidationRule(id="Close_In_Past", formula="CloseDate < TODAY()"),
                ValidationRule(id="Amount_Changed", formula="PRIORVALUE(Amount) > Amount"),
            ],
        )
        engine = ValidationEngine(provider, config=engine_config)

        report = await engine.analyze_validation_rules("Opportunity")

        assert report.risk_assessment.overall_risk is RiskLevel.MEDIUM
        assert report.risk_assessment.risk_factors == ["2 high-risk validation rules"]
        assert report.coverage.unsupported_rule_ids == ["Amount_Changed"]


class TestLifecycleAndMetrics:
    """Test the background sweep and metrics"""

    @pytest.mark.asyncio
    async def test_sweep_disabled_by_config(self, engine):
        """A disabled sweep never starts"""
        async with engine:
            assert engine.sweep_running is False

    @pytest.mark.asyncio
    async def test_sweep_lifecycle(self, mock_schema_provider):
        """The sweep runs inside the context manager and stops on exit"""
        engine = ValidationEngine(
            mock_schema_provider,
            config=ValidationEngineConfig(enable_context_sweep=True, context_sweep_interval_seconds=0.01),
        )
        async with engine:
            assert engine.sweep_running is True
            await engine.start_background_sweep()
            await asyncio.sleep(0.03)
        assert engine.sweep_running is False

    @pytest.mark.asyncio
    async def test_sweep_purges_expired(self, mock_schema_provider, engine_config, fake_clock):
        """Expired contexts are purged by the sweep"""
        cache = ValidationCache(default_ttl=5, clock=fake_clock)
        engine = ValidationEngine(mock_schema_provider, config=engine_config, cache=cache)
        await engine.get_validation_context("Account")

        fake_clock.advance(5)
        assert engine.sweep_expired_contexts() == 1
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_close_clears_contexts(self, engine):
        """close drops cached contexts"""
        await engine.get_validation_context("Account")
        await engine.close()
        assert engine.get_cache_stats().entries_count == 0

    @pytest.mark.asyncio
    async def test_metrics(self, engine, valid_account):
        """Validation counters accumulate"""
        await engine.validate_data(ValidationRequest("Account", [valid_account] * 3))
        await engine.validate_data(ValidationRequest("Account", [valid_account]))

        metrics = engine.get_performance_metrics()
        assert metrics["total_validations"] == 2
        assert metrics["records_validated"] == 4
        assert metrics["cache_hits"] == 1
        assert metrics["cache_misses"] == 1
        assert metrics["cache_hit_rate"] == 0.5
        assert engine.get_cache_health().stats.entries_count == 1


class TestConfigDefaults:
    """Test collaborators built from the environment"""

    @patch.dict(
        os.environ,
        {"ENVIRONMENT": "testing", "VALIDATION_CACHE_TTL_SECONDS": "5", "SOLVER_SEED": "7"},
        clear=True,
    )
    def test_defaults_follow_environment(self, mock_schema_provider):
        """Engine settings, cache TTL and solver seed come from the environment"""
        reset_config()
        engine = ValidationEngine(mock_schema_provider)

        assert engine.config.enable_context_sweep is False
        assert engine.cache.default_ttl == 5.0
        assert engine.solver.seed == 7

    @patch.dict(os.environ, {"SOLVER_REFERENCE_DATE": "2024-02-29", "SOLVER_MAX_ATTEMPTS": "2"})
    def test_solver_reference_date_from_environment(self, mock_schema_provider, engine_config):
        """The solver anchors generated dates on the configured reference date"""
        reset_config()
        engine = ValidationEngine(mock_schema_provider, config=engine_config)

        assert engine.solver.generator.today == date(2024, 2, 29)
        assert engine.solver.max_attempts == 2

    def test_explicit_collaborators_win(self, mock_schema_provider, engine_config):
        """Passed-in config, cache and solver are used as given"""
        cache = ValidationCache(default_ttl=9)
        solver = ConstraintSolver(seed=1)

        engine = ValidationEngine(mock_schema_provider, config=engine_config, cache=cache, solver=solver)

        assert engine.config is engine_config
        assert engine.cache is cache
        assert engine.solver is solver
