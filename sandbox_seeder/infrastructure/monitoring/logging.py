"""
Structured Logging for the sandbox seeder

Seeding runs log org metadata, rule formulas and sample records, so two kinds of
protection are applied:

- credentials and personal identifiers are masked in log messages and in the
  ``extra`` payload of JSON log lines
- records handed to an external reviewer are anonymised with ``anonymize_record``

Every line emitted inside ``correlation_context`` carries the same correlation id
and the object being seeded.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
object_name_var: ContextVar[str | None] = ContextVar("object_name", default=None)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else was passed through ``extra``
_RESERVED_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "correlation_id",
    "object_name",
}


@dataclass
class SensitiveDataConfig:
    """Which keys are sensitive and how they are hidden."""

    # Org credentials (OAuth, session and security tokens)
    credential_keys: list[str] = field(
        default_factory=lambda: [
            r"api[_-]?key",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"security[_-]?token",
            r"session[_-]?id",
            r"client[_-]?secret",
            r"authorization",
        ]
    )

    # Identifiers that may sit on Contact, Lead or Account records
    personal_keys: list[str] = field(
        default_factory=lambda: [
            r"ssn",
            r"social[_-]?security",
            r"tax[_-]?id",
            r"credit[_-]?card",
            r"card[_-]?number",
            r"bank[_-]?account",
        ]
    )

    mask_replacement: str = "***MASKED***"

    # Dropped from extra payloads entirely
    excluded_fields: set[str] = field(
        default_factory=lambda: {"password", "passwd", "secret", "private_key", "token"}
    )

    @property
    def sensitive_keys(self) -> list[str]:
        return [*self.credential_keys, *self.personal_keys]


class SensitiveDataMasker:
    """Hides sensitive values in messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        self.config = config or SensitiveDataConfig()
        keys = "|".join(f"(?:{key})" for key in self.config.sensitive_keys)
        self._key_matcher = re.compile(keys, re.IGNORECASE)
        # "key": "value" | key=value | key: value
        self._assignment = re.compile(
            rf'(?P<quoted>"(?:{keys})"\s*:\s*)"[^"]*"|(?P<bare>\b(?:{keys})\s*[=:]\s*)[^\s,;]+',
            re.IGNORECASE,
        )

    def mask_message(self, message: str) -> str:
        replacement = self.config.mask_replacement

        def hide(match: re.Match[str]) -> str:
            if match.group("quoted") is not None:
                return f'{match.group("quoted")}"{replacement}"'
            return f"{match.group('bare')}{replacement}"

        return self._assignment.sub(hide, message)

    def mask_extra_fields(self, extra: Mapping[str, Any]) -> dict[str, Any]:
        masked: dict[str, Any] = {}
        for key, value in extra.items():
            if key.lower() in self.config.excluded_fields:
                continue
            if self.is_sensitive_field(key):
                masked[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked[key] = self.mask_message(value)
            elif isinstance(value, Mapping):
                masked[key] = self.mask_extra_fields(value)
            else:
                masked[key] = value
        return masked

    def is_sensitive_field(self, field_name: str) -> bool:
        return self._key_matcher.search(field_name) is not None


def anonymize_record(record: Mapping[str, Any], placeholder: str = "***") -> dict[str, Any]:
    """
    Copy a record with every non-blank string value replaced by a placeholder.

    Numbers, booleans and blanks are kept so an external reviewer can still
    reason about ranges and required fields without seeing the text.

    Args:
        record: Field name to value mapping
        placeholder: Replacement for string values

    Returns:
        New dict; the input is not modified
    """
    anonymized: dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, str) and value.strip():
            anonymized[key] = placeholder
        elif isinstance(value, Mapping):
            anonymized[key] = anonymize_record(value, placeholder)
        else:
            anonymized[key] = value
    return anonymized


class ContextFilter(logging.Filter):
    """Stamps the current correlation id and object name on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.object_name = object_name_var.get()
        return True


class StructuredJSONFormatter(logging.Formatter):
    """One JSON document per log line, with masked message and extras."""

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.masker = SensitiveDataMasker(sensitive_data_config)
        self.include_extra = include_extra
        self.sort_keys = sort_keys

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.thread,
            "process": record.process,
        }

        for key, fallback in (("correlation_id", correlation_id_var), ("object_name", object_name_var)):
            value = getattr(record, key, None) or fallback.get()
            if value:
                entry[key] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: self._jsonable(value)
                for key, value in vars(record).items()
                if key not in _RESERVED_ATTRIBUTES and not key.startswith("_")
            }
            if extra:
                entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(entry, sort_keys=self.sort_keys, default=self._jsonable)

    @staticmethod
    def _jsonable(value: Any) -> Any:
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, (set, frozenset)):
            return sorted(value, key=str)
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        if hasattr(value, "__dict__"):
            return str(value)
        return value


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@contextmanager
def correlation_context(
    correlation_id: str | None = None, object_name: str | None = None
) -> Generator[str, None, None]:
    """Scope a correlation id (generated when omitted) and optionally the object name."""
    correlation_id = correlation_id or generate_correlation_id()
    id_token = correlation_id_var.set(correlation_id)
    name_token = object_name_var.set(object_name) if object_name is not None else None
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(id_token)
        if name_token is not None:
            object_name_var.reset(name_token)


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
    log_file: str | None = None,
) -> None:
    """
    Replace the root handlers with console (and optional file) output.

    Args:
        level: Logging level name
        format_type: 'json' for StructuredJSONFormatter, anything else for plain text
        sensitive_data_config: Masking rules for the JSON formatter
        log_file: Optional path for an additional file handler
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter = (
        StructuredJSONFormatter(sensitive_data_config) if format_type == "json" else logging.Formatter(TEXT_FORMAT)
    )
    context_filter = ContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger(__name__).info(f"Structured logging configured ({format_type}, level {level.upper()})")
