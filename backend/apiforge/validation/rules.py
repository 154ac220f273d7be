"""
apiforge — Validation Rules & Schemas
======================================

What:  Declarative, immutable description of what a request body must look
       like.
How:   A ValidationRule describes one field; a ValidationSchema maps
       dot-addressable field paths ("user.email") to rules and is wrapped
       in a read-only MappingProxyType once built.

Example:
    schema = make_schema({
        "email": ValidationRule(FieldType.EMAIL, required=True),
        "age": ValidationRule(FieldType.NUMBER, required=True, min=10, max=100),
    })
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple, Union

# A custom predicate returns True (valid), False (generic failure message)
# or a string that replaces the failure message.
CustomPredicate = Callable[[Any], Union[bool, str]]


def from_epoch_ms(value: Union[int, float]) -> Optional[datetime]:
    """Epoch milliseconds → aware UTC datetime, or None when out of range."""
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    EMAIL = "email"
    URL = "url"
    ENUM = "enum"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class ValidationRule:
    """
    Attributes:
        type:         FieldType of the value
        required:     Absent, None and "" fail with "<field> is required"
        min / max:    String length, number bounds or array size
        pattern:      Regex a string value must contain a match for
        enum_values:  Allowed values for FieldType.ENUM
        custom:       Extra predicate run after the type check
        transform:    Applied to valid values before sanitization
        sanitize:     False opts this field out of HTML-entity encoding
        sanitizers:   Names of registered sanitizers run after `transform`
    """

    type: FieldType
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    enum_values: Tuple[Any, ...] = ()
    custom: Optional[CustomPredicate] = None
    transform: Optional[Callable[[Any], Any]] = None
    sanitize: bool = True
    sanitizers: Tuple[str, ...] = ()

    def optional(self) -> "ValidationRule":
        return replace(self, required=False)


ValidationSchema = Mapping[str, ValidationRule]


def make_schema(fields: Mapping[str, ValidationRule]) -> ValidationSchema:
    for path, rule in fields.items():
        if not isinstance(rule, ValidationRule):
            raise TypeError(f"Schema entry '{path}' must be a ValidationRule")
        if rule.type is FieldType.ENUM and not rule.enum_values:
            raise ValueError(f"Enum field '{path}' needs enum_values")
    return MappingProxyType(dict(fields))


def partial_schema(schema: ValidationSchema) -> ValidationSchema:
    """Same rules with every field optional. Used for PATCH bodies."""
    return make_schema({path: rule.optional() for path, rule in schema.items()})
