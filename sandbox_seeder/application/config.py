"""
Application Configuration - Central configuration management.

This module provides configuration for the validation engine, the
pre-validator, the constraint solver, the validation cache and logging,
read from environment variables (and a ``.env`` file when present).
"""

import os
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from dotenv import load_dotenv

from sandbox_seeder.infrastructure.monitoring.logging import setup_structured_logging

load_dotenv()


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def current_environment() -> Environment:
    env_str = os.getenv("ENVIRONMENT", "development")
    try:
        return Environment(env_str.lower())
    except ValueError:
        raise ValueError(f"Invalid environment: {env_str}")


@dataclass
class CacheConfig:
    """Validation cache configuration."""

    ttl_seconds: float = 3600.0
    max_size: int = 1000
    max_memory_mb: float = 50.0

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables."""
        return cls(
            ttl_seconds=float(os.getenv("VALIDATION_CACHE_TTL_SECONDS", "3600")),
            max_size=int(os.getenv("VALIDATION_CACHE_MAX_SIZE", "1000")),
            max_memory_mb=float(os.getenv("VALIDATION_CACHE_MAX_MEMORY_MB", "50")),
        )


@dataclass
class ValidationEngineConfig:
    """Validation engine configuration."""

    enable_ai_analysis: bool = True
    cache_validation_results: bool = True
    max_concurrent_validations: int = 1
    ai_risk_threshold: float = 5.0
    context_sweep_interval_seconds: float = 1800.0
    enable_context_sweep: bool = True

    @classmethod
    def from_env(cls, environment: Environment | None = None) -> "ValidationEngineConfig":
        """Create configuration from environment variables."""
        environment = environment or current_environment()
        sweep_default = "false" if environment == Environment.TESTING else "true"
        return cls(
            enable_ai_analysis=_flag("ENABLE_AI_ANALYSIS", "true"),
            cache_validation_results=_flag("CACHE_VALIDATION_RESULTS", "true"),
            max_concurrent_validations=int(os.getenv("MAX_CONCURRENT_VALIDATIONS", "1")),
            ai_risk_threshold=float(os.getenv("AI_RISK_THRESHOLD", "5")),
            context_sweep_interval_seconds=float(os.getenv("CONTEXT_SWEEP_INTERVAL_SECONDS", "1800")),
            enable_context_sweep=_flag("ENABLE_CONTEXT_SWEEP", sweep_default),
        )


@dataclass
class PreValidatorConfig:
    """Pre-validator configuration."""

    cache_size: int = 10000
    timeout_seconds: float = 30.0
    sampling_threshold: int = 1000

    @classmethod
    def from_env(cls) -> "PreValidatorConfig":
        """Create configuration from environment variables."""
        return cls(
            cache_size=int(os.getenv("PRE_VALIDATION_CACHE_SIZE", "10000")),
            timeout_seconds=float(os.getenv("PRE_VALIDATION_TIMEOUT_SECONDS", "30")),
            sampling_threshold=int(os.getenv("PRE_VALIDATION_SAMPLING_THRESHOLD", "1000")),
        )


@dataclass
class SolverConfig:
    """Constraint solver configuration."""

    max_attempts: int = 5
    seed: int | None = None
    null_probability: float = 0.1
    locale: str = "en_US"
    # Anchor for generated dates; seeded runs only repeat across days when set
    reference_date: date | None = None

    @classmethod
    def from_env(cls) -> "SolverConfig":
        """Create configuration from environment variables."""
        seed = os.getenv("SOLVER_SEED")
        reference_date = os.getenv("SOLVER_REFERENCE_DATE")
        return cls(
            max_attempts=int(os.getenv("SOLVER_MAX_ATTEMPTS", "5")),
            seed=int(seed) if seed else None,
            null_probability=float(os.getenv("SOLVER_NULL_PROBABILITY", "0.1")),
            locale=os.getenv("FAKER_LOCALE", "en_US"),
            reference_date=date.fromisoformat(reference_date) if reference_date else None,
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    file: str | None = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        file_path = os.getenv("LOG_FILE")
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            format=os.getenv("LOG_FORMAT", "json"),
            file=file_path if file_path else None,
        )


@dataclass
class AppConfig:
    """Main application configuration."""

    environment: Environment = Environment.DEVELOPMENT
    cache: CacheConfig = field(default_factory=CacheConfig)
    engine: ValidationEngineConfig = field(default_factory=ValidationEngineConfig)
    pre_validator: PreValidatorConfig = field(default_factory=PreValidatorConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        environment = current_environment()
        return cls(
            environment=environment,
            cache=CacheConfig.from_env(),
            engine=ValidationEngineConfig.from_env(environment),
            pre_validator=PreValidatorConfig.from_env(),
            solver=SolverConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.environment.value,
            "cache": {
                "ttl_seconds": self.cache.ttl_seconds,
                "max_size": self.cache.max_size,
                "max_memory_mb": self.cache.max_memory_mb,
            },
            "engine": {
                "enable_ai_analysis": self.engine.enable_ai_analysis,
                "cache_validation_results": self.engine.cache_validation_results,
                "max_concurrent_validations": self.engine.max_concurrent_validations,
                "ai_risk_threshold": self.engine.ai_risk_threshold,
                "context_sweep_interval_seconds": self.engine.context_sweep_interval_seconds,
                "enable_context_sweep": self.engine.enable_context_sweep,
            },
            "pre_validator": {
                "cache_size": self.pre_validator.cache_size,
                "timeout_seconds": self.pre_validator.timeout_seconds,
                "sampling_threshold": self.pre_validator.sampling_threshold,
            },
            "solver": {
                "max_attempts": self.solver.max_attempts,
                "seed": self.solver.seed,
                "null_probability": self.solver.null_probability,
                "locale": self.solver.locale,
                "reference_date": self.solver.reference_date.isoformat() if self.solver.reference_date else None,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file": self.logging.file,
            },
        }

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if valid, raises exception otherwise
        """
        if self.cache.ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive")
        if self.cache.max_size < 1:
            raise ValueError("Cache max size must be at least 1")
        if self.cache.max_memory_mb <= 0:
            raise ValueError("Cache memory limit must be positive")

        if self.engine.max_concurrent_validations < 1:
            raise ValueError("At least one concurrent validation is required")
        if self.engine.context_sweep_interval_seconds <= 0:
            raise ValueError("Context sweep interval must be positive")

        if self.pre_validator.timeout_seconds <= 0:
            raise ValueError("Pre-validation timeout must be positive")
        if self.pre_validator.sampling_threshold < 1:
            raise ValueError("Sampling threshold must be at least 1")

        if self.solver.max_attempts < 1:
            raise ValueError("Solver needs at least one attempt")
        if not 0.0 <= self.solver.null_probability <= 1.0:
            raise ValueError("Null probability must be within [0, 1]")

        return True


# Global configuration singleton
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """
    Get the application configuration singleton.

    Returns:
        AppConfig: The application configuration
    """
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Reset the configuration singleton."""
    global _config
    _config = None


def configure_logging(config: AppConfig | None = None) -> None:
    """Apply the logging section (level, format and optional file) to the root logger."""
    logging_config = (config or get_config()).logging
    setup_structured_logging(
        level=logging_config.level,
        format_type=logging_config.format,
        log_file=logging_config.file,
    )
