"""
Comprehensive tests for application configuration module.

Tests all configuration classes, environment handling, and the singleton.
"""

import os
from datetime import date
from unittest.mock import patch

import pytest

from sandbox_seeder.application.config import (
    AppConfig,
    CacheConfig,
    Environment,
    LoggingConfig,
    PreValidatorConfig,
    SolverConfig,
    ValidationEngineConfig,
    configure_logging,
    current_environment,
    get_config,
    reset_config,
    set_config,
)


class TestEnvironment:
    """Test Environment enum."""

    def test_environment_values(self):
        """Test environment enum values."""
        assert Environment.DEVELOPMENT.value == "development"
        assert Environment.TESTING.value == "testing"
        assert Environment.STAGING.value == "staging"
        assert Environment.PRODUCTION.value == "production"

    @patch.dict(os.environ, {"ENVIRONMENT": "Production"})
    def test_current_environment_case_insensitive(self):
        """Test environment names are case-insensitive."""
        assert current_environment() == Environment.PRODUCTION

    @patch.dict(os.environ, {"ENVIRONMENT": "moon"})
    def test_invalid_environment(self):
        """Test an unknown environment is rejected."""
        with pytest.raises(ValueError, match="Invalid environment: moon"):
            current_environment()


class TestCacheConfig:
    """Test CacheConfig class."""

    def test_default_values(self):
        """Test default cache configuration values."""
        config = CacheConfig()
        assert config.ttl_seconds == 3600.0
        assert config.max_size == 1000
        assert config.max_memory_mb == 50.0

    @patch.dict(
        os.environ,
        {
            "VALIDATION_CACHE_TTL_SECONDS": "600",
            "VALIDATION_CACHE_MAX_SIZE": "50",
            "VALIDATION_CACHE_MAX_MEMORY_MB": "8.5",
        },
    )
    def test_from_env(self):
        """Test cache configuration from environment."""
        config = CacheConfig.from_env()
        assert config.ttl_seconds == 600.0
        assert config.max_size == 50
        assert config.max_memory_mb == 8.5


class TestValidationEngineConfig:
    """Test ValidationEngineConfig class."""

    def test_default_values(self):
        """Test default engine configuration values."""
        config = ValidationEngineConfig()
        assert config.enable_ai_analysis is True
        assert config.cache_validation_results is True
        assert config.max_concurrent_validations == 1
        assert config.ai_risk_threshold == 5.0
        assert config.context_sweep_interval_seconds == 1800.0
        assert config.enable_context_sweep is True

    @patch.dict(os.environ, {}, clear=True)
    def test_sweep_disabled_when_testing(self):
        """Test the background sweep defaults off in the testing environment."""
        assert ValidationEngineConfig.from_env(Environment.TESTING).enable_context_sweep is False
        assert ValidationEngineConfig.from_env(Environment.PRODUCTION).enable_context_sweep is True

    @patch.dict(
        os.environ,
        {
            "ENVIRONMENT": "staging",
            "ENABLE_AI_ANALYSIS": "FALSE",
            "MAX_CONCURRENT_VALIDATIONS": "4",
            "AI_RISK_THRESHOLD": "7.5",
            "ENABLE_CONTEXT_SWEEP": "true",
            "CONTEXT_SWEEP_INTERVAL_SECONDS": "60",
        },
        clear=True,
    )
    def test_from_env(self):
        """Test engine configuration from environment."""
        config = ValidationEngineConfig.from_env()
        assert config.enable_ai_analysis is False
        assert config.cache_validation_results is True
        assert config.max_concurrent_validations == 4
        assert config.ai_risk_threshold == 7.5
        assert config.enable_context_sweep is True
        assert config.context_sweep_interval_seconds == 60.0


class TestOtherSections:
    """Test the pre-validator, solver and logging sections."""

    @patch.dict(
        os.environ,
        {
            "PRE_VALIDATION_CACHE_SIZE": "100",
            "PRE_VALIDATION_TIMEOUT_SECONDS": "2.5",
            "PRE_VALIDATION_SAMPLING_THRESHOLD": "500",
        },
    )
    def test_pre_validator_from_env(self):
        """Test pre-validator configuration from environment."""
        config = PreValidatorConfig.from_env()
        assert config.cache_size == 100
        assert config.timeout_seconds == 2.5
        assert config.sampling_threshold == 500

    @patch.dict(os.environ, {"SOLVER_SEED": "", "FAKER_LOCALE": "de_DE"})
    def test_solver_empty_seed(self):
        """Test an empty seed means unseeded generation."""
        config = SolverConfig.from_env()
        assert config.seed is None
        assert config.locale == "de_DE"

    @patch.dict(os.environ, {"SOLVER_SEED": "42", "SOLVER_MAX_ATTEMPTS": "8"})
    def test_solver_from_env(self):
        """Test solver configuration from environment."""
        config = SolverConfig.from_env()
        assert config.seed == 42
        assert config.max_attempts == 8

    @patch.dict(os.environ, {"SOLVER_REFERENCE_DATE": "2024-03-01"})
    def test_solver_reference_date(self):
        """Test the reference date for generated dates is read as an ISO date."""
        config = SolverConfig.from_env()
        assert config.reference_date == date(2024, 3, 1)

    @patch.dict(os.environ, {"SOLVER_REFERENCE_DATE": ""})
    def test_solver_reference_date_unset(self):
        """Test an empty reference date falls back to the current day."""
        assert SolverConfig.from_env().reference_date is None

    @patch.dict(os.environ, {"LOG_LEVEL": "DEBUG", "LOG_FORMAT": "text", "LOG_FILE": ""})
    def test_logging_from_env(self):
        """Test logging configuration from environment."""
        config = LoggingConfig.from_env()
        assert config.level == "DEBUG"
        assert config.format == "text"
        assert config.file is None


class TestAppConfig:
    """Test AppConfig class."""

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_defaults(self):
        """Test loading defaults with an empty environment."""
        config = AppConfig.from_env()
        assert config.environment == Environment.DEVELOPMENT
        assert config.engine.enable_context_sweep is True
        assert config.solver.seed is None
        assert config.logging.format == "json"

    def test_test_environment_file_loaded(self):
        """Test the .env.test settings are active during tests."""
        config = AppConfig.from_env()
        assert config.environment == Environment.TESTING
        assert config.engine.enable_context_sweep is False
        assert config.solver.seed == 42

    def test_to_dict(self):
        """Test conversion to a plain dictionary."""
        data = AppConfig(environment=Environment.STAGING).to_dict()
        assert data["environment"] == "staging"
        assert data["cache"]["ttl_seconds"] == 3600.0
        assert data["pre_validator"]["sampling_threshold"] == 1000
        assert data["solver"]["seed"] is None
        assert data["solver"]["reference_date"] is None
        assert set(data) == {"environment", "cache", "engine", "pre_validator", "solver", "logging"}

    def test_validate_defaults(self):
        """Test default configuration is valid."""
        assert AppConfig().validate() is True

    @pytest.mark.parametrize(
        "config, message",
        [
            (AppConfig(cache=CacheConfig(ttl_seconds=0)), "Cache TTL must be positive"),
            (AppConfig(cache=CacheConfig(max_size=0)), "Cache max size"),
            (AppConfig(engine=ValidationEngineConfig(max_concurrent_validations=0)), "concurrent validation"),
            (AppConfig(pre_validator=PreValidatorConfig(timeout_seconds=-1)), "Pre-validation timeout"),
            (AppConfig(solver=SolverConfig(max_attempts=0)), "at least one attempt"),
            (AppConfig(solver=SolverConfig(null_probability=2)), "Null probability"),
        ],
    )
    def test_validate_rejects(self, config, message):
        """Test invalid values are rejected."""
        with pytest.raises(ValueError, match=message):
            config.validate()


class TestConfigSingleton:
    """Test the global configuration accessors."""

    def test_get_config_caches(self):
        """Test get_config returns the same instance."""
        assert get_config() is get_config()

    def test_set_and_reset(self):
        """Test set_config replaces and reset_config clears the singleton."""
        custom = AppConfig(environment=Environment.STAGING)
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom


class TestConfigureLogging:
    """Test the logging bootstrap."""

    @patch("sandbox_seeder.application.config.setup_structured_logging")
    def test_applies_logging_section(self, mock_setup):
        """Test the logging section drives the structured logging setup."""
        config = AppConfig(logging=LoggingConfig(level="WARNING", format="text", file="/tmp/seeder.log"))

        configure_logging(config)

        mock_setup.assert_called_once_with(level="WARNING", format_type="text", log_file="/tmp/seeder.log")

    @patch.dict(os.environ, {"LOG_LEVEL": "ERROR", "LOG_FORMAT": "json"})
    @patch("sandbox_seeder.application.config.setup_structured_logging")
    def test_defaults_to_global_config(self, mock_setup):
        """Test the environment is used when no configuration is passed."""
        configure_logging()

        mock_setup.assert_called_once()
        assert mock_setup.call_args.kwargs["level"] == "ERROR"
        assert mock_setup.call_args.kwargs["format_type"] == "json"
