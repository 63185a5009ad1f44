"""Constraint-aware record validation and synthesis for Salesforce sandbox seeding."""

__version__ = "0.1.0"
