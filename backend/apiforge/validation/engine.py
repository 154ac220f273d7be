"""
apiforge — Validation Engine
=============================

What:  Validates request data against a ValidationSchema and produces a
       sanitized copy.
How:   Every field in the schema is checked independently and ALL failures
       are collected, so a client can fix every problem in one round trip.
Who:   The "validate" pipeline stage (built by `stage()`), the CRUD
       generator and anything else holding a schema.

Per-field order:
    1. required check      absent / None / "" → "<field> is required"
                           (no further checks for that field)
    2. optional + absent   → pass
    3. type check          string length & pattern, number bounds, boolean
                           (True/False/"true"/"false"/1/0), date, email,
                           URL, enum membership, array size, plain object
    4. custom predicate    True passes; False → "<field> validation failed";
                           a string replaces the message

Sanitization (only when the whole request is valid and sanitize_input is
on, per field unless rule.sanitize is False):
    transform → named sanitizers → HTML-entity encoding of & < > " ' /
    (string fields only)
"""

import copy
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from apiforge.exceptions import ValidationError
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import Continue, ShortCircuit, Stage, StageOutcome
from apiforge.validation.rules import FieldType, ValidationRule, ValidationSchema, from_epoch_ms
from apiforge.validation.schemas import BUILTIN_SCHEMAS

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MISSING = object()

_HTML_ENTITIES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
    ("/", "&#x2F;"),
)


def escape_html(value: str) -> str:
    # & first so already-produced entities are not double encoded
    for char, entity in _HTML_ENTITIES:
        value = value.replace(char, entity)
    return value


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def get_path(data: Any, path: str) -> Any:
    current = data
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        else:
            return _MISSING
    return current


def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message, "value": self.value}


@dataclass(frozen=True)
class ValidationOutcome:
    errors: Tuple[FieldError, ...]
    sanitized: Any

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(field_errors=[e.to_dict() for e in self.errors])


class ValidationEngine:
    """
    Args:
        sanitize_input:  Global switch for transform/sanitize on valid data
    """

    def __init__(self, sanitize_input: bool = True):
        self.sanitize_input = sanitize_input
        self._custom_rules: Dict[str, ValidationRule] = {}
        self._schemas: Dict[Tuple[str, str], ValidationSchema] = {}
        self._sanitizers: Dict[str, Callable[[Any], Any]] = {
            "trim": lambda v: v.strip() if isinstance(v, str) else v,
            "lowercase": lambda v: v.lower() if isinstance(v, str) else v,
            "uppercase": lambda v: v.upper() if isinstance(v, str) else v,
            "escape": lambda v: escape_html(v) if isinstance(v, str) else v,
        }

    # ── Registration ──────────────────────────────────────────────────────

    def add_custom_rule(self, name: str, rule: Union[ValidationRule, Callable[[Any], Union[bool, str]]]) -> None:
        """Register a reusable rule. A bare predicate becomes a string rule."""
        if not isinstance(rule, ValidationRule):
            rule = ValidationRule(FieldType.STRING, custom=rule)
        self._custom_rules[name] = rule
        logger.info("Custom validation rule added: %s", name)

    def rule(self, name: str) -> ValidationRule:
        try:
            return self._custom_rules[name]
        except KeyError:
            raise KeyError(f"Unknown validation rule '{name}'") from None

    def add_sanitizer(self, name: str, sanitizer: Callable[[Any], Any]) -> None:
        self._sanitizers[name] = sanitizer
        logger.info("Custom sanitizer added: %s", name)

    def sanitizer(self, name: str) -> Callable[[Any], Any]:
        try:
            return self._sanitizers[name]
        except KeyError:
            raise KeyError(f"Unknown sanitizer '{name}'") from None

    def register_schema(self, resource: str, operation: str, schema: ValidationSchema) -> None:
        self._schemas[(resource, operation)] = schema

    def schema_for(self, resource: str, operation: str) -> Optional[ValidationSchema]:
        """Registered schema first, then the built-in one, else None."""
        schema = self._schemas.get((resource, operation))
        if schema is None:
            schema = BUILTIN_SCHEMAS.get(resource, {}).get(operation)
        return schema

    # ── Validation ────────────────────────────────────────────────────────

    def validate(self, schema: ValidationSchema, data: Any) -> ValidationOutcome:
        errors: List[FieldError] = []
        valid_fields: List[Tuple[str, Any, ValidationRule]] = []

        for path, rule in schema.items():
            value = get_path(data, path)
            message = self.validate_field(path, value, rule)
            if message is None:
                valid_fields.append((path, value, rule))
            else:
                errors.append(FieldError(path, message, None if value is _MISSING else value))

        if errors:
            return ValidationOutcome(errors=tuple(errors), sanitized=data)

        sanitized = copy.deepcopy(data) if isinstance(data, dict) else data
        if self.sanitize_input and isinstance(sanitized, dict):
            for path, value, rule in valid_fields:
                if value is _MISSING or value is None or not rule.sanitize:
                    continue
                set_path(sanitized, path, self._sanitize_value(value, rule))
        return ValidationOutcome(errors=(), sanitized=sanitized)

    def validate_field(self, field: str, value: Any, rule: ValidationRule) -> Optional[str]:
        """Return the error message for `value`, or None when it is valid."""
        absent = value is _MISSING or value is None
        if rule.required and (absent or value == ""):
            return f"{field} is required"
        if absent:
            return None

        message = self._check_type(field, value, rule)
        if message is not None:
            return message

        if rule.custom is not None:
            result = rule.custom(value)
            if result is not True:
                return result if isinstance(result, str) else f"{field} validation failed"
        return None

    def _check_type(self, field: str, value: Any, rule: ValidationRule) -> Optional[str]:
        kind = rule.type

        if kind is FieldType.STRING:
            if not isinstance(value, str):
                return f"{field} must be a string"
            if rule.min is not None and len(value) < rule.min:
                return f"{field} must be at least {_fmt(rule.min)} characters"
            if rule.max is not None and len(value) > rule.max:
                return f"{field} must be at most {_fmt(rule.max)} characters"
            if rule.pattern and not re.search(rule.pattern, value):
                return f"{field} format is invalid"
            return None

        if kind is FieldType.NUMBER:
            number = _as_number(value)
            if number is None:
                return f"{field} must be a number"
            if rule.min is not None and number < rule.min:
                return f"{field} must be at least {_fmt(rule.min)}"
            if rule.max is not None and number > rule.max:
                return f"{field} must be at most {_fmt(rule.max)}"
            return None

        if kind is FieldType.BOOLEAN:
            if isinstance(value, bool) or value in ("true", "false"):
                return None
            if type(value) is int and value in (0, 1):
                return None
            return f"{field} must be a boolean"

        if kind is FieldType.DATE:
            return None if _is_date(value) else f"{field} must be a valid date"

        if kind is FieldType.EMAIL:
            if isinstance(value, str) and _EMAIL_RE.match(value):
                return None
            return f"{field} must be a valid email address"

        if kind is FieldType.URL:
            if isinstance(value, str):
                parsed = urlparse(value)
                if parsed.scheme and (parsed.netloc or parsed.path):
                    return None
            return f"{field} must be a valid URL"

        if kind is FieldType.ENUM:
            if value in rule.enum_values:
                return None
            return f"{field} must be one of: {', '.join(str(v) for v in rule.enum_values)}"

        if kind is FieldType.ARRAY:
            if not isinstance(value, list):
                return f"{field} must be an array"
            if rule.min is not None and len(value) < rule.min:
                return f"{field} must have at least {_fmt(rule.min)} items"
            if rule.max is not None and len(value) > rule.max:
                return f"{field} must have at most {_fmt(rule.max)} items"
            return None

        if kind is FieldType.OBJECT:
            return None if isinstance(value, dict) else f"{field} must be an object"

        return None

    def _sanitize_value(self, value: Any, rule: ValidationRule) -> Any:
        if rule.transform is not None:
            value = rule.transform(value)
        for name in rule.sanitizers:
            value = self.sanitizer(name)(value)
        if rule.type is FieldType.STRING and isinstance(value, str):
            value = escape_html(value)
        return value

    # ── Pipeline stage ────────────────────────────────────────────────────

    def stage(self, schema: ValidationSchema) -> Stage:
        """
        Build the "validate" stage for `schema`.

        On success the context body is replaced by the sanitized copy; on
        failure the stage short-circuits with a ValidationError carrying
        every field error.
        """

        async def run(ctx: RequestContext) -> StageOutcome:
            body = ctx.body if ctx.body is not None else {}
            if not isinstance(body, dict):
                return ShortCircuit(ctx, ValidationError("Request body must be a JSON object"))
            outcome = self.validate(schema, body)
            if not outcome.valid:
                logger.info(
                    "[%s] Validation failed on %s %s: %s",
                    ctx.request_id,
                    ctx.method,
                    ctx.path,
                    ", ".join(e.field for e in outcome.errors),
                )
                return ShortCircuit(ctx, ValidationError(field_errors=[e.to_dict() for e in outcome.errors]))
            return Continue(ctx.evolve(body=outcome.sanitized))

        return Stage(name="validate", run=run, options={"schema": schema})


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _is_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return from_epoch_ms(value) is not None
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        return False
