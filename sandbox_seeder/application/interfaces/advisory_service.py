"""
Advisory Service Interface - Defines the contract for external record review
"""

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sandbox_seeder.domain.entities.validation_rule import ValidationRule


@dataclass
class AdvisoryAnalysis:
    """Findings returned by an advisory service for one record"""

    violations: list[dict[str, Any]] = field(default_factory=list)
    suggestions: list[dict[str, Any]] = field(default_factory=list)
    risk_score: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AdvisoryAnalysis":
        """Accepts ``riskScore`` or ``risk_score``."""
        risk = payload.get("risk_score", payload.get("riskScore", 0.0))
        return cls(
            violations=list(payload.get("violations") or []),
            suggestions=list(payload.get("suggestions") or []),
            risk_score=float(risk or 0.0),
        )


class IAdvisoryService(Protocol):
    """
    Optional reviewer consulted for risky or invalid records.

    Its absence or failure never blocks local validation.
    """

    @abstractmethod
    async def analyze_record(
        self, record: Mapping[str, Any], rules: Sequence[ValidationRule]
    ) -> AdvisoryAnalysis | Mapping[str, Any]:
        """
        Review one anonymized record against the object's rules.

        Args:
            record: Record with string values masked
            rules: Active validation rules of the object

        Returns:
            Findings as an AdvisoryAnalysis or an equivalent mapping
        """
        ...
