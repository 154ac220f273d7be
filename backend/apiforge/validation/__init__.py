"""
apiforge — Validation Package
==============================

    - rules.py:    ValidationRule, FieldType, make_schema / partial_schema
    - engine.py:   ValidationEngine (validate, sanitize, "validate" stage)
    - schemas.py:  built-in schemas for user, foodEntry, nutritionGoal
"""

from apiforge.validation.engine import FieldError, ValidationEngine, ValidationOutcome, escape_html
from apiforge.validation.rules import (
    FieldType,
    ValidationRule,
    ValidationSchema,
    make_schema,
    partial_schema,
)

__all__ = [
    "FieldError",
    "FieldType",
    "ValidationEngine",
    "ValidationOutcome",
    "ValidationRule",
    "ValidationSchema",
    "escape_html",
    "make_schema",
    "partial_schema",
]
