"""
Field value generation with an explicit per-type dispatch table.

Every FieldType variant, UNKNOWN included, has exactly one generator in
``FieldValueGenerator._dispatch``. Values are business-realistic where the
field name hints at meaning (revenue, birth date, city, ...) and otherwise fall
back to a plain value of the right type. All randomness flows through one
seeded Faker instance and one ``random.Random`` so generation is reproducible.
"""

import base64
import logging
import random
import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from faker import Faker

from sandbox_seeder.domain.entities.constraints import ConstraintKind, FieldConstraint
from sandbox_seeder.domain.entities.schema import FieldMetadata, FieldType

logger = logging.getLogger(__name__)

BASE62 = string.digits + string.ascii_uppercase + string.ascii_lowercase
_CHECKSUM_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ012345"

KEY_PREFIXES = {
    "account": "001",
    "contact": "003",
    "user": "005",
    "opportunity": "006",
    "lead": "00Q",
    "campaign": "701",
    "case": "500",
    "product2": "01t",
    "pricebook2": "01s",
}
DEFAULT_KEY_PREFIX = "a00"

DEFAULT_SCALE = 2


def salesforce_id_checksum(id15: str) -> str:
    """Three-character case-safe suffix for a 15-character id."""
    suffix = ""
    for chunk in range(3):
        flags = 0
        for position, char in enumerate(id15[chunk * 5 : chunk * 5 + 5]):
            if "A" <= char <= "Z":
                flags |= 1 << position
        suffix += _CHECKSUM_ALPHABET[flags]
    return suffix


def _decimal_places(metadata: FieldMetadata) -> int:
    """Declared scale when the field describes its numeric shape, otherwise cents."""
    # precision 0 means the describe call carried no numeric shape, so scale 0 is not meaningful
    return metadata.scale if metadata.precision else DEFAULT_SCALE


@dataclass(frozen=True)
class NameHint:
    """Keyword match on a lowercased field name."""

    keywords: tuple[str, ...]

    def matches(self, field_name: str) -> bool:
        lowered = field_name.lower()
        return any(keyword in lowered for keyword in self.keywords)


REVENUE = NameHint(("revenue",))
AMOUNT = NameHint(("amount", "price", "cost", "value", "budget"))
EMPLOYEES = NameHint(("employee", "headcount"))
AGE = NameHint(("age",))
PROBABILITY = NameHint(("probability", "discount", "rate"))
BIRTH = NameHint(("birth",))
START = NameHint(("start", "created", "open"))
END = NameHint(("end", "close", "due", "expir"))
ACTIVE = NameHint(("active", "enabled", "verified"))
NEGATIVE_FLAG = NameHint(("deleted", "optout", "opt_out", "donotcall", "do_not", "disabled", "archived"))


class FieldValueGenerator:
    """
    Generates type-appropriate values for fields.

    Args:
        faker: Faker instance used for realistic text
        rng: Random source for numbers, dates and choices
        today: Reference date for relative dates; defaults to the current UTC date,
            so pass one when seeded output must repeat across days
    """

    def __init__(
        self,
        faker: Faker | None = None,
        rng: random.Random | None = None,
        today: date | None = None,
    ) -> None:
        self.faker = faker or Faker()
        self.rng = rng or random.Random()
        self.today = today or datetime.now(UTC).date()
        self._dispatch: dict[FieldType, Callable[[FieldMetadata, str], Any]] = {
            FieldType.STRING: self._string,
            FieldType.TEXTAREA: self._textarea,
            FieldType.EMAIL: self._email,
            FieldType.PHONE: self._phone,
            FieldType.URL: self._url,
            FieldType.INT: self._int,
            FieldType.DOUBLE: self._double,
            FieldType.CURRENCY: self._currency,
            FieldType.PERCENT: self._percent,
            FieldType.DATE: self._date,
            FieldType.DATETIME: self._datetime,
            FieldType.TIME: self._time,
            FieldType.BOOLEAN: self._boolean,
            FieldType.PICKLIST: self._picklist,
            FieldType.MULTIPICKLIST: self._multipicklist,
            FieldType.COMBOBOX: self._combobox,
            FieldType.REFERENCE: self._reference,
            FieldType.ID: self._id,
            FieldType.ENCRYPTEDSTRING: self._encrypted,
            FieldType.BASE64: self._base64,
            FieldType.UNKNOWN: self._unknown,
        }

    @property
    def supported_types(self) -> frozenset[FieldType]:
        return frozenset(self._dispatch)

    def reseed(self, seed: int) -> None:
        """Reset both random sources so the next values are reproducible."""
        self.faker.seed_instance(seed)
        self.rng.seed(seed)

    def generate(
        self,
        metadata: FieldMetadata,
        constraints: Sequence[FieldConstraint] = (),
        record_index: int = 0,
        object_name: str = "",
    ) -> Any:
        """
        Generate a value for a field, honouring its constraints.

        Args:
            metadata: Field metadata
            constraints: Constraints on this field
            record_index: Position in the batch, used to keep unique values distinct
            object_name: Owning object, used for naming hints

        Returns:
            Generated value; None only for UNKNOWN fields or empty picklists
        """
        value = self._dispatch[metadata.type](metadata, object_name)
        return self.apply_constraints(value, metadata, constraints, record_index)

    def apply_constraints(
        self,
        value: Any,
        metadata: FieldMetadata,
        constraints: Sequence[FieldConstraint],
        record_index: int = 0,
    ) -> Any:
        """Correct a generated value so it satisfies range, length, picklist and uniqueness."""
        if value is None:
            return value

        for constraint in constraints:
            if constraint.kind is ConstraintKind.RANGE and isinstance(value, (int, float)):
                value = self._within_range(value, metadata, constraint)
            elif constraint.kind is ConstraintKind.FORMAT and constraint.allowed_values:
                value = self._within_allowed(value, metadata, constraint.allowed_values)

        max_length = min(
            (item.max_length for item in constraints if item.max_length),
            default=metadata.length or None,
        )
        if isinstance(value, str) and any(item.kind is ConstraintKind.UNIQUE for item in constraints):
            value = self._make_unique(value, metadata, record_index, max_length)

        if isinstance(value, str) and max_length and len(value) > max_length:
            value = self._truncate(value, metadata, max_length)
        return value

    def generate_required_fallback(self, metadata: FieldMetadata) -> Any:
        """A deterministic non-blank value for a required field."""
        label = metadata.label or metadata.name
        field_type = metadata.type
        if field_type is FieldType.EMAIL:
            return "sample@example.com"
        if field_type is FieldType.PHONE:
            return "(555) 555-0100"
        if field_type is FieldType.URL:
            return "https://www.example.com"
        if field_type.is_numeric:
            return 1
        if field_type is FieldType.DATE:
            return self.today.isoformat()
        if field_type is FieldType.DATETIME:
            return f"{self.today.isoformat()}T09:00:00.000Z"
        if field_type is FieldType.TIME:
            return "09:00:00.000Z"
        if field_type is FieldType.BOOLEAN:
            return False
        if field_type in (FieldType.PICKLIST, FieldType.MULTIPICKLIST, FieldType.COMBOBOX):
            values = metadata.active_picklist_values
            return values[0] if values else "Option 1"
        if field_type in (FieldType.REFERENCE, FieldType.ID):
            return self.salesforce_id(metadata.reference_to[0] if metadata.reference_to else None)
        return f"Sample {label}"

    def salesforce_id(self, object_name: str | None = None) -> str:
        """An 18-character id with a plausible key prefix for the object."""
        prefix = KEY_PREFIXES.get((object_name or "").lower(), DEFAULT_KEY_PREFIX)
        body = prefix + "0" + "".join(self.rng.choice(BASE62) for _ in range(11))
        return body + salesforce_id_checksum(body)

    # Constraint helpers

    def _within_range(self, value: float, metadata: FieldMetadata, constraint: FieldConstraint) -> float:
        low, high = constraint.min_value, constraint.max_value
        if (low is None or value >= low) and (high is None or value <= high):
            return value
        if low is not None and high is not None:
            value = self.rng.uniform(low, high)
        elif low is not None:
            value = low + abs(value - low) % 1000
        else:
            value = high - abs(high - value) % 1000
        if metadata.type is FieldType.INT:
            return int(max(low if low is not None else value, min(round(value), high if high is not None else value)))
        return round(value, _decimal_places(metadata))

    def _within_allowed(self, value: Any, metadata: FieldMetadata, allowed: tuple[str, ...]) -> Any:
        if metadata.type is FieldType.MULTIPICKLIST:
            kept = [item for item in str(value).split(";") if item in allowed]
            return ";".join(kept) if kept else allowed[0]
        return value if value in allowed else self.rng.choice(allowed)

    def _make_unique(self, value: str, metadata: FieldMetadata, record_index: int, max_length: int | None) -> str:
        """Append the record index, shortening the base so the index survives the length limit."""
        if metadata.type in (FieldType.PICKLIST, FieldType.MULTIPICKLIST, FieldType.REFERENCE, FieldType.ID):
            return value
        if metadata.type is FieldType.EMAIL and "@" in value:
            local, domain = value.split("@", 1)
            suffix = f".{record_index}"
            if max_length:
                local = local[: max(max_length - len(suffix) - len(domain) - 1, 1)]
            return f"{local}{suffix}@{domain}"

        suffix = f" {record_index}"
        if max_length and len(value) + len(suffix) > max_length:
            if len(suffix) >= max_length:
                return str(record_index)[-max_length:]
            value = value[: max_length - len(suffix)].rstrip()
        return f"{value}{suffix}"

    @staticmethod
    def _truncate(value: str, metadata: FieldMetadata, max_length: int) -> str:
        if metadata.type is FieldType.EMAIL and "@" in value:
            local, domain = value.split("@", 1)
            room = max(max_length - len(domain) - 1, 1)
            return f"{local[:room]}@{domain}"[:max_length]
        return value[:max_length].rstrip() or value[:max_length]

    # Generators

    def _string(self, metadata: FieldMetadata, object_name: str) -> str:
        name = metadata.name.lower()
        if "firstname" in name or "first_name" in name:
            return self.faker.first_name()
        if "lastname" in name or "last_name" in name:
            return self.faker.last_name()
        if "company" in name or (name == "name" and object_name.lower() in ("account", "")):
            return self.faker.company()
        if name == "name":
            return self.faker.name()
        if "title" in name:
            return self.faker.job()
        if "street" in name or "address" in name:
            return self.faker.street_address()
        if "city" in name:
            return self.faker.city()
        if "state" in name or "province" in name:
            return self.faker.state_abbr()
        if "postal" in name or "zip" in name:
            return self.faker.postcode()
        if "country" in name:
            return self.faker.country()
        if "description" in name or "comment" in name or "note" in name:
            return self.faker.sentence(nb_words=8)
        if "industry" in name or "department" in name:
            return self.faker.bs().title()
        return self.faker.catch_phrase()

    def _textarea(self, metadata: FieldMetadata, object_name: str) -> str:
        return self.faker.paragraph(nb_sentences=2)

    def _email(self, metadata: FieldMetadata, object_name: str) -> str:
        return f"{self.faker.user_name()}@{self.faker.safe_domain_name()}"

    def _phone(self, metadata: FieldMetadata, object_name: str) -> str:
        return self.faker.numerify("(###) ###-####")

    def _url(self, metadata: FieldMetadata, object_name: str) -> str:
        return self.faker.url()

    def _int(self, metadata: FieldMetadata, object_name: str) -> int:
        if EMPLOYEES.matches(metadata.name):
            return self.rng.randint(1, 10_000)
        if AGE.matches(metadata.name):
            return self.rng.randint(18, 80)
        return self.rng.randint(0, 1_000)

    def _double(self, metadata: FieldMetadata, object_name: str) -> float:
        return round(self.rng.uniform(0, 10_000), _decimal_places(metadata))

    def _currency(self, metadata: FieldMetadata, object_name: str) -> float:
        if REVENUE.matches(metadata.name):
            low, high = 100_000, 50_000_000
        elif AMOUNT.matches(metadata.name):
            low, high = 100, 100_000
        else:
            low, high = 10, 10_000
        return round(self.rng.uniform(low, high), _decimal_places(metadata))

    def _percent(self, metadata: FieldMetadata, object_name: str) -> float:
        if PROBABILITY.matches(metadata.name):
            return float(self.rng.choice(range(0, 101, 10)))
        return round(self.rng.uniform(0, 100), _decimal_places(metadata))

    def _pick_date(self, metadata: FieldMetadata) -> date:
        if BIRTH.matches(metadata.name):
            offset = -self.rng.randint(18 * 365, 80 * 365)
        elif END.matches(metadata.name):
            offset = self.rng.randint(1, 365)
        elif START.matches(metadata.name):
            offset = self.rng.randint(-365, 30)
        else:
            offset = self.rng.randint(-365, 365)
        return self.today + timedelta(days=offset)

    def _date(self, metadata: FieldMetadata, object_name: str) -> str:
        return self._pick_date(metadata).isoformat()

    def _datetime(self, metadata: FieldMetadata, object_name: str) -> str:
        day = self._pick_date(metadata)
        moment = datetime.combine(day, time(self.rng.randint(8, 17), self.rng.randint(0, 59)))
        return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")

    def _time(self, metadata: FieldMetadata, object_name: str) -> str:
        return f"{self.rng.randint(0, 23):02d}:{self.rng.choice((0, 15, 30, 45)):02d}:00.000Z"

    def _boolean(self, metadata: FieldMetadata, object_name: str) -> bool:
        if NEGATIVE_FLAG.matches(metadata.name):
            return self.rng.random() < 0.1
        if ACTIVE.matches(metadata.name):
            return self.rng.random() < 0.8
        return self.rng.random() < 0.5

    def _picklist(self, metadata: FieldMetadata, object_name: str) -> str | None:
        values = metadata.active_picklist_values
        return self.rng.choice(values) if values else None

    def _multipicklist(self, metadata: FieldMetadata, object_name: str) -> str | None:
        values = metadata.active_picklist_values
        if not values:
            return None
        count = self.rng.randint(1, min(3, len(values)))
        chosen = self.rng.sample(values, count)
        return ";".join(sorted(chosen, key=values.index))

    def _combobox(self, metadata: FieldMetadata, object_name: str) -> str:
        values = metadata.active_picklist_values
        return self.rng.choice(values) if values else self.faker.word().title()

    def _reference(self, metadata: FieldMetadata, object_name: str) -> str:
        target = metadata.reference_to[0] if metadata.reference_to else None
        return self.salesforce_id(target)

    def _id(self, metadata: FieldMetadata, object_name: str) -> str:
        return self.salesforce_id(object_name)

    def _encrypted(self, metadata: FieldMetadata, object_name: str) -> str:
        return self.faker.bothify("????-####-????")

    def _base64(self, metadata: FieldMetadata, object_name: str) -> str:
        return base64.b64encode(self.faker.binary(length=24)).decode("ascii")

    def _unknown(self, metadata: FieldMetadata, object_name: str) -> None:
        logger.debug(f"No value generated for {metadata.name}: unknown field type")
        return None
