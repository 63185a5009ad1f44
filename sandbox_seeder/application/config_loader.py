"""
Configuration Loader - Handles IO operations for configuration management.

Loads AppConfig from YAML files, keeping AppConfig itself focused on data
representation and validation. Sections and keys missing from the file keep
their defaults.
"""

from datetime import date
from pathlib import Path
from typing import Any

import yaml

from sandbox_seeder.application.config import (
    AppConfig,
    CacheConfig,
    Environment,
    LoggingConfig,
    PreValidatorConfig,
    SolverConfig,
    ValidationEngineConfig,
)


class ConfigLoader:
    """Handles loading and saving of configuration from YAML files."""

    @classmethod
    def from_env(cls) -> AppConfig:
        return AppConfig.from_env()

    @classmethod
    def from_yaml(cls, path: str | Path) -> AppConfig:
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            AppConfig: Configuration loaded from YAML file
        """
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        config = AppConfig()

        if "environment" in data:
            config.environment = Environment(data["environment"])

        if "cache" in data:
            section = data["cache"] or {}
            config.cache = CacheConfig(
                ttl_seconds=float(section.get("ttl_seconds", config.cache.ttl_seconds)),
                max_size=int(section.get("max_size", config.cache.max_size)),
                max_memory_mb=float(section.get("max_memory_mb", config.cache.max_memory_mb)),
            )

        if "engine" in data:
            section = data["engine"] or {}
            engine = config.engine
            config.engine = ValidationEngineConfig(
                enable_ai_analysis=bool(section.get("enable_ai_analysis", engine.enable_ai_analysis)),
                cache_validation_results=bool(
                    section.get("cache_validation_results", engine.cache_validation_results)
                ),
                max_concurrent_validations=int(
                    section.get("max_concurrent_validations", engine.max_concurrent_validations)
                ),
                ai_risk_threshold=float(section.get("ai_risk_threshold", engine.ai_risk_threshold)),
                context_sweep_interval_seconds=float(
                    section.get("context_sweep_interval_seconds", engine.context_sweep_interval_seconds)
                ),
                enable_context_sweep=bool(
                    section.get(
                        "enable_context_sweep",
                        config.environment != Environment.TESTING and engine.enable_context_sweep,
                    )
                ),
            )
        elif config.environment == Environment.TESTING:
            config.engine.enable_context_sweep = False

        if "pre_validator" in data:
            section = data["pre_validator"] or {}
            config.pre_validator = PreValidatorConfig(
                cache_size=int(section.get("cache_size", config.pre_validator.cache_size)),
                timeout_seconds=float(section.get("timeout_seconds", config.pre_validator.timeout_seconds)),
                sampling_threshold=int(
                    section.get("sampling_threshold", config.pre_validator.sampling_threshold)
                ),
            )

        if "solver" in data:
            section = data["solver"] or {}
            seed = section.get("seed", config.solver.seed)
            config.solver = SolverConfig(
                max_attempts=int(section.get("max_attempts", config.solver.max_attempts)),
                seed=int(seed) if seed is not None else None,
                null_probability=float(section.get("null_probability", config.solver.null_probability)),
                locale=section.get("locale", config.solver.locale),
                reference_date=_as_date(section.get("reference_date", config.solver.reference_date)),
            )

        if "logging" in data:
            section = data["logging"] or {}
            config.logging = LoggingConfig(
                level=section.get("level", config.logging.level),
                format=section.get("format", config.logging.format),
                file=section.get("file", config.logging.file),
            )

        config.validate()
        return config

    @classmethod
    def to_yaml(cls, config: AppConfig) -> str:
        """
        Convert configuration to YAML string.

        Args:
            config: AppConfig instance to convert

        Returns:
            str: YAML representation of the configuration
        """
        return yaml.dump(config.to_dict(), default_flow_style=False)

    @classmethod
    def save_to_yaml(cls, config: AppConfig, path: str | Path) -> None:
        """
        Save configuration to YAML file.

        Args:
            config: AppConfig instance to save
            path: Path to save the YAML file to
        """
        yaml_content = cls.to_yaml(config)
        with open(path, "w") as f:
            f.write(yaml_content)


def _as_date(value: Any) -> date | None:
    # YAML loads unquoted ISO dates as date objects, quoted ones as strings
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
