"""
Application Interfaces - Collaborator Contracts

The application layer defines what it needs from the outside world; schema
sources and advisory reviewers are supplied by the caller.
"""

from .advisory_service import AdvisoryAnalysis, IAdvisoryService
from .schema_provider import ISchemaProvider

__all__ = [
    "AdvisoryAnalysis",
    "IAdvisoryService",
    "ISchemaProvider",
]
