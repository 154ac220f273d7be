"""
apiforge — Built-in Resource Schemas
=====================================

What:  Validation schemas for the resources served out of the box.
Who:   ValidationEngine.schema_for() falls back to these when no schema was
       registered for (resource, operation).

Operations:
    create  full payload for POST and (unless "update" exists) PUT
    update  PUT payload; PATCH uses it with every field optional
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from apiforge.validation.rules import FieldType, ValidationRule, ValidationSchema, from_epoch_ms, make_schema

MEAL_TYPES = ("BREAKFAST", "SNACK", "LUNCH", "DINNER", "EVENING_SNACK", "AFTER_PRACTICE")
ROLES = ("PLAYER", "COACH", "ADMIN")
# Players may back-fill a missed meal for up to a week
FOOD_LOG_WINDOW_DAYS = 7
TIME_PATTERN = r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$"


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        moment = from_epoch_ms(value)
        return moment.date() if moment is not None else None
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def within_food_log_window(value: Any) -> Union[bool, str]:
    """Meal dates must not be in the future or older than the log window."""
    day = _to_date(value)
    if day is None:
        return "date must be a valid date"
    today = datetime.now(timezone.utc).date()
    if day > today:
        return "Cannot log food for future dates"
    if day < today - timedelta(days=FOOD_LOG_WINDOW_DAYS):
        return f"Cannot log food more than {FOOD_LOG_WINDOW_DAYS} days in the past"
    return True


USER_CREATE = make_schema({
    "email": ValidationRule(FieldType.EMAIL, required=True, sanitizers=("trim", "lowercase")),
    "name": ValidationRule(FieldType.STRING, required=True, min=2, max=100, sanitizers=("trim",)),
    "age": ValidationRule(FieldType.NUMBER, required=True, min=10, max=100),
    "role": ValidationRule(FieldType.ENUM, required=True, enum_values=ROLES),
})

USER_UPDATE = make_schema({
    "email": ValidationRule(FieldType.EMAIL, sanitizers=("trim", "lowercase")),
    "name": ValidationRule(FieldType.STRING, min=2, max=100, sanitizers=("trim",)),
    "age": ValidationRule(FieldType.NUMBER, min=10, max=100),
    "role": ValidationRule(FieldType.ENUM, enum_values=ROLES),
})

FOOD_ENTRY_CREATE = make_schema({
    "mealType": ValidationRule(FieldType.ENUM, required=True, enum_values=MEAL_TYPES),
    "description": ValidationRule(FieldType.STRING, required=True, min=1, max=500),
    "date": ValidationRule(FieldType.DATE, required=True, custom=within_food_log_window),
    "time": ValidationRule(FieldType.STRING, pattern=TIME_PATTERN),
    "location": ValidationRule(FieldType.STRING, max=100),
    "notes": ValidationRule(FieldType.STRING, max=500),
    "userId": ValidationRule(FieldType.STRING, sanitize=False),
})

NUTRITION_GOAL_CREATE = make_schema({
    "goalType": ValidationRule(FieldType.STRING, required=True),
    "targetValue": ValidationRule(FieldType.NUMBER, required=True, min=0),
    "unit": ValidationRule(FieldType.STRING, required=True),
    "startDate": ValidationRule(FieldType.DATE, required=True),
    "endDate": ValidationRule(FieldType.DATE),
    "isActive": ValidationRule(FieldType.BOOLEAN),
    "userId": ValidationRule(FieldType.STRING, sanitize=False),
})

BUILTIN_SCHEMAS: Dict[str, Dict[str, ValidationSchema]] = {
    "user": {"create": USER_CREATE, "update": USER_UPDATE},
    "foodEntry": {"create": FOOD_ENTRY_CREATE},
    "nutritionGoal": {"create": NUTRITION_GOAL_CREATE},
}
