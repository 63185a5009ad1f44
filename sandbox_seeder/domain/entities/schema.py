"""
Object schema entities.

Field metadata arrives from the schema provider in the describe-style shape
(camelCase keys); ``from_dict`` normalises it into typed dataclasses so the rest
of the domain never deals with raw mappings.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .validation_rule import ValidationRule


class FieldType(Enum):
    """Salesforce field types understood by the generators and evaluator."""

    STRING = "string"
    TEXTAREA = "textarea"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    INT = "int"
    DOUBLE = "double"
    CURRENCY = "currency"
    PERCENT = "percent"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    PICKLIST = "picklist"
    MULTIPICKLIST = "multipicklist"
    COMBOBOX = "combobox"
    REFERENCE = "reference"
    ID = "id"
    ENCRYPTEDSTRING = "encryptedstring"
    BASE64 = "base64"
    UNKNOWN = "unknown"

    @classmethod
    def from_salesforce(cls, type_name: str | None) -> "FieldType":
        """Map a describe type name onto a variant, UNKNOWN when unrecognised."""
        if not type_name:
            return cls.UNKNOWN
        try:
            return cls(type_name.strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_TYPES

    @property
    def is_text(self) -> bool:
        return self in _TEXT_TYPES


_NUMERIC_TYPES = frozenset({FieldType.INT, FieldType.DOUBLE, FieldType.CURRENCY, FieldType.PERCENT})
_TEXT_TYPES = frozenset(
    {
        FieldType.STRING,
        FieldType.TEXTAREA,
        FieldType.EMAIL,
        FieldType.PHONE,
        FieldType.URL,
        FieldType.ENCRYPTEDSTRING,
        FieldType.COMBOBOX,
    }
)


@dataclass(frozen=True)
class PicklistValue:
    """A single picklist entry."""

    value: str
    label: str | None = None
    active: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | str) -> "PicklistValue":
        if isinstance(data, str):
            return cls(value=data, label=data)
        value = str(data.get("value", data.get("label", "")))
        return cls(value=value, label=data.get("label", value), active=bool(data.get("active", True)))


@dataclass(frozen=True)
class FieldMetadata:
    """
    Describe metadata for a single field.

    Attributes:
        name: API name of the field
        type: Field type variant
        length: Maximum text length (0 when not applicable)
        precision: Total digits for numeric fields
        scale: Digits after the decimal point
        required: Field must be non-blank on create
        unique: Field value must be unique across records
        createable: Field can be set on insert
        calculated: Formula field, never generated
        auto_number: Auto-number field, never generated
        reference_to: Target objects for lookup fields
        picklist_values: Allowed values for picklist fields
    """

    name: str
    type: FieldType = FieldType.STRING
    label: str | None = None
    length: int = 0
    precision: int = 0
    scale: int = 0
    required: bool = False
    unique: bool = False
    createable: bool = True
    calculated: bool = False
    auto_number: bool = False
    nillable: bool = True
    reference_to: tuple[str, ...] = ()
    picklist_values: tuple[PicklistValue, ...] = ()
    default_value: Any = None

    @property
    def is_generatable(self) -> bool:
        """Whether a value for this field should be synthesized."""
        return self.createable and not self.calculated and not self.auto_number

    @property
    def active_picklist_values(self) -> list[str]:
        return [item.value for item in self.picklist_values if item.active]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldMetadata":
        """Create field metadata from a describe-style mapping."""
        name = data.get("name")
        if not name:
            raise ValueError("Field metadata requires a name")

        return cls(
            name=str(name),
            type=FieldType.from_salesforce(data.get("type")),
            label=data.get("label"),
            length=int(data.get("length") or 0),
            precision=int(data.get("precision") or 0),
            scale=int(data.get("scale") or 0),
            required=bool(data.get("required", False)),
            unique=bool(data.get("unique", False)),
            createable=bool(data.get("createable", True)),
            calculated=bool(data.get("calculated", False)),
            auto_number=bool(data.get("autoNumber", data.get("auto_number", False))),
            nillable=bool(data.get("nillable", True)),
            reference_to=tuple(data.get("referenceTo") or data.get("reference_to") or ()),
            picklist_values=tuple(
                PicklistValue.from_dict(item)
                for item in (data.get("picklistValues") or data.get("picklist_values") or ())
            ),
            default_value=data.get("defaultValue", data.get("default_value")),
        )


@dataclass
class ObjectSchema:
    """An object's fields (in declaration order) and its validation rules."""

    name: str
    fields: list[FieldMetadata] = field(default_factory=list)
    validation_rules: list[ValidationRule] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._index = {item.name.lower(): item for item in self.fields}

    def get_field(self, name: str) -> FieldMetadata | None:
        """Case-insensitive field lookup."""
        return self._index.get(name.lower())

    @property
    def field_names(self) -> list[str]:
        return [item.name for item in self.fields]

    @property
    def active_rules(self) -> list[ValidationRule]:
        return [rule for rule in self.validation_rules if rule.active]

    @classmethod
    def from_dict(cls, name: str, payload: Mapping[str, Any]) -> "ObjectSchema":
        """
        Build a schema from the provider payload.

        Args:
            name: Object API name
            payload: Mapping with ``fields`` and ``validationRules`` lists

        Returns:
            Parsed ObjectSchema
        """
        raw_fields: Sequence[Mapping[str, Any]] = payload.get("fields") or []
        raw_rules: Sequence[Mapping[str, Any]] = (
            payload.get("validationRules") or payload.get("validation_rules") or []
        )
        return cls(
            name=name,
            fields=[FieldMetadata.from_dict(item) for item in raw_fields],
            validation_rules=[ValidationRule.from_dict(item) for item in raw_rules],
        )
