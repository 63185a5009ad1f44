"""
Domain-level exceptions for the validation and synthesis core.

Most of these are recovered inside the domain layer and turned into structured
results (a parse failure becomes a conservative classification, an evaluation
failure becomes ``False``). Only ContextFetchError is meant to reach callers.
"""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ParseError(DomainException):
    """Raised when formula text cannot be tokenized or parsed."""

    def __init__(self, message: str, formula: str | None = None, position: int | None = None) -> None:
        details: dict[str, Any] = {}
        if formula is not None:
            details["formula"] = formula
        if position is not None:
            details["position"] = position
            message = f"{message} at position {position}"

        super().__init__(message, details)
        self.formula = formula
        self.position = position


class EvaluationError(DomainException):
    """Raised when a parsed formula cannot be evaluated against a record."""


class UnsupportedFunctionError(EvaluationError):
    """Raised when a formula calls a function the evaluator does not implement."""

    def __init__(self, function_name: str) -> None:
        super().__init__(
            f"Unsupported formula function: {function_name}",
            details={"function": function_name},
        )
        self.function_name = function_name


class ConstraintUnsatisfiable(DomainException):
    """
    Raised when a caller chooses to escalate a best-effort record.

    The solver itself never raises this; it returns the best candidate together
    with its unresolved violations.
    """

    def __init__(self, object_name: str, unresolved: list[Any], attempts: int) -> None:
        super().__init__(
            f"Could not satisfy {len(unresolved)} constraint(s) for {object_name} "
            f"after {attempts} attempt(s)",
            details={
                "object_name": object_name,
                "unresolved": [str(item) for item in unresolved],
                "attempts": attempts,
            },
        )
        self.object_name = object_name
        self.unresolved = unresolved
        self.attempts = attempts


class ContextFetchError(DomainException):
    """Raised when the schema provider cannot supply an object's schema."""

    def __init__(self, object_name: str, reason: str) -> None:
        super().__init__(
            f"Failed to fetch validation context for {object_name}: {reason}",
            details={"object_name": object_name, "reason": reason},
        )
        self.object_name = object_name
        self.reason = reason


class AdvisoryServiceError(DomainException):
    """Raised when the optional advisory service fails or returns garbage."""

    def __init__(self, message: str, object_name: str | None = None) -> None:
        details = {}
        if object_name:
            details["object_name"] = object_name
        super().__init__(message, details)
        self.object_name = object_name


class CacheError(DomainException):
    """Raised for invalid cache configuration."""
