"""Global pytest configuration and fixtures."""

# Standard library imports
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

# Load test environment variables
from dotenv import load_dotenv

test_env_path = Path(__file__).parent.parent / ".env.test"
if test_env_path.exists():
    load_dotenv(test_env_path, override=True)

# Third-party imports
import pytest

# Local imports
from sandbox_seeder.application.config import ValidationEngineConfig, reset_config
from sandbox_seeder.domain.entities import (
    FieldMetadata,
    FieldType,
    ObjectSchema,
    PicklistValue,
    Severity,
    ValidationRule,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0, step: float = 0.0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the configuration singleton from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def account_fields() -> list[FieldMetadata]:
    """Provides a small Account field set."""
    return [
        FieldMetadata(name="Name", type=FieldType.STRING, length=80),
        FieldMetadata(
            name="Type",
            type=FieldType.PICKLIST,
            picklist_values=(PicklistValue("Customer"), PicklistValue("Partner"), PicklistValue("Prospect")),
        ),
        FieldMetadata(name="Industry", type=FieldType.STRING, length=40),
        FieldMetadata(name="AnnualRevenue", type=FieldType.CURRENCY, precision=18, scale=2),
        FieldMetadata(name="NumberOfEmployees", type=FieldType.INT, precision=8),
        FieldMetadata(name="Email__c", type=FieldType.EMAIL, length=80),
    ]


@pytest.fixture
def account_rules() -> list[ValidationRule]:
    """Provides typical Account validation rules."""
    return [
        ValidationRule(
            id="Industry_Required_For_Customers",
            formula='AND(ISPICKVAL(Type, "Customer"), ISBLANK(Industry))',
            error_message="Customers must have an industry",
        ),
        ValidationRule(
            id="Revenue_Not_Negative",
            formula="AnnualRevenue < 0",
            error_message="Annual revenue cannot be negative",
        ),
        ValidationRule(
            id="Employees_Sanity_Check",
            formula="NumberOfEmployees > 500000",
            error_message="Employee count looks wrong",
            severity=Severity.WARNING,
        ),
    ]


@pytest.fixture
def account_schema(account_fields, account_rules) -> ObjectSchema:
    return ObjectSchema(name="Account", fields=account_fields, validation_rules=account_rules)


@pytest.fixture
def valid_account() -> dict[str, Any]:
    return {
        "Name": "Acme Corporation",
        "Type": "Customer",
        "Industry": "Manufacturing",
        "AnnualRevenue": 2500000.0,
        "NumberOfEmployees": 250,
        "Email__c": "info@acme.com",
    }


@pytest.fixture
def mock_schema_provider(account_schema) -> AsyncMock:
    """Provides a schema provider returning the Account schema."""
    provider = AsyncMock()
    provider.get_object_schema.return_value = account_schema
    return provider


@pytest.fixture
def mock_advisory_service() -> AsyncMock:
    """Provides an advisory service with no findings."""
    service = AsyncMock()
    service.analyze_record.return_value = {"violations": [], "suggestions": [], "riskScore": 0}
    return service


@pytest.fixture
def engine_config() -> ValidationEngineConfig:
    """Engine configuration without the background sweep."""
    return ValidationEngineConfig(enable_context_sweep=False)
