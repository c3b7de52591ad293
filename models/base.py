"""
Base schema shared by all wire models.

The backend speaks camelCase JSON; Python code uses snake_case
attributes. Models accept either on input and dump by alias.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Generic, Optional, TypeVar


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - camelCase aliases generated from field names
        - Population by field name or alias
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )

    def to_wire(self) -> dict:
        """Serialize for a request body: aliases, JSON-safe values, unset fields dropped."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Standard response wrapper: {success, data, message?, error?}."""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None
    errors: Optional[dict[str, Any]] = None
