"""The cached bundle of everything needed to validate one object type."""

import time
from dataclasses import dataclass, field

from .analysis import ParsedFormula
from .constraints import FieldConstraint, FieldDependency
from .schema import FieldMetadata, ObjectSchema
from .validation_rule import ValidationRule


@dataclass
class ValidationContext:
    """Rules, constraints, dependencies and schema for one object type."""

    object_name: str
    schema: ObjectSchema
    rules: list[ValidationRule]
    parsed_rules: dict[str, ParsedFormula] = field(default_factory=dict)
    constraints: list[FieldConstraint] = field(default_factory=list)
    dependencies: list[FieldDependency] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    @property
    def active_rules(self) -> list[ValidationRule]:
        return [rule for rule in self.rules if rule.active]

    def constraints_for(self, field_name: str) -> list[FieldConstraint]:
        return [item for item in self.constraints if item.field.lower() == field_name.lower()]

    def field_metadata(self) -> dict[str, FieldMetadata]:
        return {item.name: item for item in self.schema.fields}
