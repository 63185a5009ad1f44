"""
Schema Provider Interface - Defines the contract for object schema sources
"""

from abc import abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol

from sandbox_seeder.domain.entities.schema import ObjectSchema


class ISchemaProvider(Protocol):
    """
    Source of object metadata and validation rules.

    Implementations usually wrap an org's describe and tooling APIs. They may
    return an ObjectSchema directly or the raw provider payload
    ``{"fields": [...], "validationRules": [...]}``.
    """

    @abstractmethod
    async def get_object_schema(self, object_name: str) -> ObjectSchema | Mapping[str, Any]:
        """
        Fetch the schema of one object.

        Args:
            object_name: Object API name, e.g. "Account"

        Returns:
            The object's fields and validation rules

        Raises:
            Exception: Any failure; the caller wraps it in ContextFetchError
        """
        ...
