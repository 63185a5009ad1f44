"""
Unit tests for field value generation.
"""

import random
import re
from datetime import date

import pytest
from faker import Faker

from sandbox_seeder.domain.entities import (
    ConstraintKind,
    FieldConstraint,
    FieldMetadata,
    FieldType,
    PicklistValue,
)
from sandbox_seeder.domain.services.constraint_extractor import EMAIL_PATTERN
from sandbox_seeder.domain.services.field_generators import FieldValueGenerator, salesforce_id_checksum

TODAY = date(2024, 6, 1)


@pytest.fixture
def generator():
    return FieldValueGenerator(Faker("en_US"), random.Random(7), TODAY)


class TestDispatch:
    """Test that every field type has a generator"""

    def test_every_type_is_dispatched(self, generator):
        """The dispatch table is total over FieldType"""
        assert generator.supported_types == frozenset(FieldType)

    @pytest.mark.parametrize("field_type", [item for item in FieldType if item is not FieldType.UNKNOWN])
    def test_known_types_produce_values(self, generator, field_type):
        """Known types produce a value when they have what they need"""
        metadata = FieldMetadata(
            name="Field__c",
            type=field_type,
            picklist_values=(PicklistValue("One"), PicklistValue("Two")),
        )
        assert generator.generate(metadata) is not None

    def test_unknown_type_yields_none(self, generator):
        """UNKNOWN is an explicit variant that generates nothing"""
        assert generator.generate(FieldMetadata(name="Blob__c", type=FieldType.UNKNOWN)) is None

    def test_empty_picklist_yields_none(self, generator):
        """A picklist without values cannot be filled"""
        assert generator.generate(FieldMetadata(name="Stage", type=FieldType.PICKLIST)) is None


class TestTypedValues:
    """Test the shape of generated values"""

    def test_email_matches_format(self, generator):
        """Generated emails match the email format constraint"""
        value = generator.generate(FieldMetadata(name="Email", type=FieldType.EMAIL))
        assert re.match(EMAIL_PATTERN, value)

    def test_phone_format(self, generator):
        """Phones use the (###) ###-#### shape"""
        value = generator.generate(FieldMetadata(name="Phone", type=FieldType.PHONE))
        assert re.fullmatch(r"\(\d{3}\) \d{3}-\d{4}", value)

    def test_date_is_iso(self, generator):
        """Dates are ISO strings near the reference date"""
        value = generator.generate(FieldMetadata(name="CloseDate", type=FieldType.DATE))
        parsed = date.fromisoformat(value)
        assert parsed > TODAY

    def test_birthdate_in_the_past(self, generator):
        """Birth dates are at least 18 years back"""
        value = date.fromisoformat(generator.generate(FieldMetadata(name="Birthdate", type=FieldType.DATE)))
        assert value.year <= TODAY.year - 18

    def test_employee_count_range(self, generator):
        """Employee counts are positive integers"""
        value = generator.generate(FieldMetadata(name="NumberOfEmployees", type=FieldType.INT))
        assert isinstance(value, int)
        assert 1 <= value <= 10_000

    def test_multipicklist_uses_semicolons(self, generator):
        """Multi-select values are joined with semicolons"""
        field = FieldMetadata(
            name="Regions__c",
            type=FieldType.MULTIPICKLIST,
            picklist_values=tuple(PicklistValue(name) for name in ("NA", "EMEA", "APAC")),
        )
        value = generator.generate(field)
        assert set(value.split(";")) <= {"NA", "EMEA", "APAC"}

    def test_reference_id(self, generator):
        """References get an 18-character id with the target's key prefix"""
        value = generator.generate(FieldMetadata(name="AccountId", type=FieldType.REFERENCE, reference_to=("Account",)))
        assert len(value) == 18
        assert value.startswith("001")
        assert value[15:] == salesforce_id_checksum(value[:15])

    def test_checksum(self):
        """The checksum encodes upper-case positions per 5-character chunk"""
        assert salesforce_id_checksum("001000000000000") == "AAA"
        assert salesforce_id_checksum("A0000A0000A0000") == "BBB"


class TestConstraints:
    """Test constraint-aware corrections"""

    def test_range_clamped(self, generator):
        """Values are moved inside a range constraint"""
        metadata = FieldMetadata(name="Score__c", type=FieldType.INT)
        constraint = FieldConstraint("Score__c", ConstraintKind.RANGE, "RANGE[10, 20]", min_value=10, max_value=20)
        for _ in range(20):
            value = generator.generate(metadata, [constraint])
            assert 10 <= value <= 20

    def test_minimum_only(self, generator):
        """A lower bound alone is honoured"""
        metadata = FieldMetadata(name="Amount", type=FieldType.CURRENCY)
        constraint = FieldConstraint("Amount", ConstraintKind.RANGE, "RANGE[50000, *]", min_value=50000)
        assert generator.generate(metadata, [constraint]) >= 50000

    def test_truncated_to_max_length(self, generator):
        """Text is cut to the tightest length limit"""
        metadata = FieldMetadata(name="Description", type=FieldType.TEXTAREA, length=10)
        assert len(generator.generate(metadata)) <= 10

    def test_unique_values_distinct_per_record(self, generator):
        """Unique text is suffixed with the record index"""
        metadata = FieldMetadata(name="Code__c", type=FieldType.STRING)
        constraint = FieldConstraint("Code__c", ConstraintKind.UNIQUE, "UNIQUE_VALUE")
        assert generator.apply_constraints("ABC", metadata, [constraint], 3) == "ABC 3"

    def test_unique_email_keeps_domain(self, generator):
        """Unique emails keep a valid shape"""
        metadata = FieldMetadata(name="Email", type=FieldType.EMAIL)
        constraint = FieldConstraint("Email", ConstraintKind.UNIQUE, "UNIQUE_VALUE")
        assert generator.apply_constraints("ada@example.com", metadata, [constraint], 2) == "ada.2@example.com"

    def test_unique_suffix_survives_length_limit(self, generator):
        """The base is shortened so the record index is never cut off"""
        metadata = FieldMetadata(name="Name", type=FieldType.STRING, length=9)
        constraint = FieldConstraint("Name", ConstraintKind.UNIQUE, "UNIQUE_VALUE")

        first = generator.apply_constraints("Acme Corp", metadata, [constraint], 1)
        second = generator.apply_constraints("Acme Corp", metadata, [constraint], 2)

        assert first != second
        assert first == "Acme Co 1"
        assert len(first) <= 9 and len(second) <= 9

    def test_unique_suffix_with_constraint_length(self, generator):
        """A length constraint tighter than the field also keeps the suffix"""
        metadata = FieldMetadata(name="Code__c", type=FieldType.STRING, length=80)
        constraints = [
            FieldConstraint("Code__c", ConstraintKind.UNIQUE, "UNIQUE_VALUE"),
            FieldConstraint("Code__c", ConstraintKind.FORMAT, "MAX_LENGTH[6]", max_length=6),
        ]
        values = {generator.apply_constraints("ABCDEFGH", metadata, constraints, index) for index in range(10, 20)}
        assert len(values) == 10
        assert all(len(value) <= 6 for value in values)

    def test_unique_email_within_length(self, generator):
        """Long unique emails shorten the local part and keep the domain"""
        metadata = FieldMetadata(name="Email", type=FieldType.EMAIL, length=20)
        constraint = FieldConstraint("Email", ConstraintKind.UNIQUE, "UNIQUE_VALUE")

        value = generator.apply_constraints("adalovelace@example.com", metadata, [constraint], 12)

        assert value.endswith(".12@example.com")
        assert len(value) <= 20

    def test_allowed_values(self, generator):
        """Values outside the allowed set are replaced"""
        metadata = FieldMetadata(name="Type", type=FieldType.PICKLIST)
        constraint = FieldConstraint("Type", ConstraintKind.FORMAT, "PICKLIST[A]", allowed_values=("A",))
        assert generator.apply_constraints("Z", metadata, [constraint]) == "A"


class TestReproducibility:
    """Test seeded generation"""

    def test_reseed_repeats_values(self, generator):
        """Reseeding repeats the same sequence"""
        fields = [
            FieldMetadata(name="Name", type=FieldType.STRING),
            FieldMetadata(name="Amount", type=FieldType.CURRENCY),
            FieldMetadata(name="CloseDate", type=FieldType.DATE),
        ]
        generator.reseed(99)
        first = [generator.generate(item, object_name="Opportunity") for item in fields]
        generator.reseed(99)
        second = [generator.generate(item, object_name="Opportunity") for item in fields]
        assert first == second

    def test_required_fallbacks_are_non_blank(self, generator):
        """Every type has a non-blank fallback"""
        for field_type in FieldType:
            value = generator.generate_required_fallback(FieldMetadata(name="F", type=field_type))
            assert value is not None and value != ""

    def test_same_seed_and_reference_date_repeat_across_instances(self):
        """Separate generators with the same seed and reference date agree"""
        fields = [
            FieldMetadata(name="CloseDate", type=FieldType.DATE),
            FieldMetadata(name="LastActivity__c", type=FieldType.DATETIME),
        ]
        runs = []
        for _ in range(2):
            generator = FieldValueGenerator(Faker("en_US"), random.Random(), date(2023, 12, 31))
            generator.reseed(5)
            runs.append([generator.generate(item) for item in fields])
        assert runs[0] == runs[1]

    def test_reference_date_anchors_dates(self):
        """Generated dates move with the reference date, not the wall clock"""
        metadata = FieldMetadata(name="Renewal__c", type=FieldType.DATE)
        values = []
        for reference in (date(2020, 1, 1), date(2021, 1, 1)):
            generator = FieldValueGenerator(Faker("en_US"), random.Random(), reference)
            generator.reseed(5)
            values.append(date.fromisoformat(generator.generate(metadata)))
        assert (values[1] - values[0]).days == 366


class TestNumericScale:
    """Test decimal places of generated numbers"""

    def test_scale_zero_gives_whole_numbers(self, generator):
        """A declared scale of 0 yields whole currency amounts"""
        metadata = FieldMetadata(name="Amount", type=FieldType.CURRENCY, precision=18, scale=0)
        for _ in range(20):
            assert float(generator.generate(metadata)).is_integer()

    def test_declared_scale_is_used(self, generator):
        """Percentages round to the declared scale"""
        metadata = FieldMetadata(name="Margin__c", type=FieldType.PERCENT, precision=5, scale=1)
        for _ in range(20):
            value = generator.generate(metadata)
            assert round(value, 1) == value

    def test_missing_numeric_shape_defaults_to_cents(self, generator):
        """Without precision the scale is unknown and two places are used"""
        metadata = FieldMetadata(name="Weight__c", type=FieldType.DOUBLE)
        for _ in range(20):
            value = generator.generate(metadata)
            assert round(value, 2) == value

    def test_range_correction_respects_scale(self, generator):
        """Values moved into a range keep the declared scale"""
        metadata = FieldMetadata(name="Amount", type=FieldType.CURRENCY, precision=10, scale=0)
        constraint = FieldConstraint("Amount", ConstraintKind.RANGE, "RANGE[1, 5]", min_value=1, max_value=5)
        value = generator.apply_constraints(1000.0, metadata, [constraint])
        assert 1 <= value <= 5
        assert float(value).is_integer()
