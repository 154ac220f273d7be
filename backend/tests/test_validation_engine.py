"""
apiforge — Validation Engine Tests
===================================

What we test:
    - every failing field is reported in one pass
    - per-type checks and their messages
    - custom predicates (True / False / message string)
    - sanitization: transform, named sanitizers, HTML escaping, opt-out
    - built-in food entry date window
    - the "validate" pipeline stage
"""

from datetime import datetime, timedelta, timezone

import pytest

from apiforge.exceptions import ValidationError
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import Continue, ShortCircuit
from apiforge.validation import FieldType, ValidationEngine, ValidationRule, escape_html, make_schema, partial_schema
from apiforge.validation.schemas import FOOD_ENTRY_CREATE, USER_CREATE, within_food_log_window


def _today(offset_days=0):
    return (datetime.now(timezone.utc).date() + timedelta(days=offset_days)).isoformat()


class TestValidate:
    def setup_method(self):
        self.engine = ValidationEngine()

    def test_collects_all_errors(self):
        outcome = self.engine.validate(USER_CREATE, {"email": "nope", "age": 5})
        fields = {e.field for e in outcome.errors}
        assert fields == {"email", "name", "age", "role"}
        assert not outcome.valid

    def test_required_messages(self):
        outcome = self.engine.validate(USER_CREATE, {"email": "", "name": None})
        messages = {e.field: e.message for e in outcome.errors}
        assert messages["email"] == "email is required"
        assert messages["name"] == "name is required"

    def test_optional_absent_passes(self):
        schema = make_schema({"nickname": ValidationRule(FieldType.STRING, min=3)})
        assert self.engine.validate(schema, {}).valid

    @pytest.mark.parametrize(
        "rule,value,message",
        [
            (ValidationRule(FieldType.STRING, min=3), "ab", "f must be at least 3 characters"),
            (ValidationRule(FieldType.STRING, max=2), "abc", "f must be at most 2 characters"),
            (ValidationRule(FieldType.STRING, pattern=r"^\d+$"), "12a", "f format is invalid"),
            (ValidationRule(FieldType.NUMBER, min=10), 9, "f must be at least 10"),
            (ValidationRule(FieldType.NUMBER), "abc", "f must be a number"),
            (ValidationRule(FieldType.BOOLEAN), "yes", "f must be a boolean"),
            (ValidationRule(FieldType.DATE), "not-a-date", "f must be a valid date"),
            (ValidationRule(FieldType.EMAIL), "a@b", "f must be a valid email address"),
            (ValidationRule(FieldType.URL), "example", "f must be a valid URL"),
            (ValidationRule(FieldType.ENUM, enum_values=("A", "B")), "C", "f must be one of: A, B"),
            (ValidationRule(FieldType.ARRAY, max=1), [1, 2], "f must have at most 1 items"),
            (ValidationRule(FieldType.OBJECT), [], "f must be an object"),
        ],
    )
    def test_type_checks(self, rule, value, message):
        outcome = self.engine.validate(make_schema({"f": rule}), {"f": value})
        assert [e.message for e in outcome.errors] == [message]

    @pytest.mark.parametrize("value", [True, False, "true", "false", 1, 0])
    def test_boolean_accepted_forms(self, value):
        schema = make_schema({"f": ValidationRule(FieldType.BOOLEAN)})
        assert self.engine.validate(schema, {"f": value}).valid

    def test_custom_predicate_message(self):
        schema = make_schema({
            "even": ValidationRule(FieldType.NUMBER, custom=lambda v: v % 2 == 0 or "even must be even"),
            "odd": ValidationRule(FieldType.NUMBER, custom=lambda v: v % 2 == 1),
        })
        outcome = self.engine.validate(schema, {"even": 3, "odd": 2})
        messages = {e.field: e.message for e in outcome.errors}
        assert messages == {"even": "even must be even", "odd": "odd validation failed"}

    def test_dot_paths(self):
        schema = make_schema({"address.city": ValidationRule(FieldType.STRING, required=True)})
        assert self.engine.validate(schema, {"address": {"city": "Oslo"}}).valid
        outcome = self.engine.validate(schema, {"address": {}})
        assert outcome.errors[0].field == "address.city"


class TestSanitize:
    def setup_method(self):
        self.engine = ValidationEngine()

    def test_escape_html(self):
        assert escape_html("<a href='/x'>&</a>") == "&lt;a href=&#x27;&#x2F;x&#x27;&gt;&amp;&lt;&#x2F;a&gt;"

    def test_strings_escaped_and_input_untouched(self):
        schema = make_schema({"note": ValidationRule(FieldType.STRING)})
        data = {"note": "<b>hi</b>"}
        outcome = self.engine.validate(schema, data)
        assert outcome.sanitized["note"] == "&lt;b&gt;hi&lt;&#x2F;b&gt;"
        assert data["note"] == "<b>hi</b>"

    def test_sanitize_opt_out(self):
        schema = make_schema({"raw": ValidationRule(FieldType.STRING, sanitize=False)})
        assert self.engine.validate(schema, {"raw": "<x>"}).sanitized["raw"] == "<x>"

    def test_global_switch_off(self):
        engine = ValidationEngine(sanitize_input=False)
        schema = make_schema({"note": ValidationRule(FieldType.STRING)})
        assert engine.validate(schema, {"note": "<x>"}).sanitized["note"] == "<x>"

    def test_named_sanitizers(self):
        outcome = self.engine.validate(USER_CREATE, {
            "email": "Coach@Club.ORG",
            "name": "  Sam  ",
            "age": 30,
            "role": "COACH",
        })
        assert outcome.valid
        assert outcome.sanitized["email"] == "coach@club.org"
        assert outcome.sanitized["name"] == "Sam"

    def test_transform_runs_first(self):
        schema = make_schema({"tag": ValidationRule(FieldType.STRING, transform=str.upper)})
        assert self.engine.validate(schema, {"tag": "a&b"}).sanitized["tag"] == "A&amp;B"

    def test_custom_sanitizer_registration(self):
        self.engine.add_sanitizer("collapse", lambda v: " ".join(v.split()))
        schema = make_schema({"s": ValidationRule(FieldType.STRING, sanitizers=("collapse",))})
        assert self.engine.validate(schema, {"s": "a   b"}).sanitized["s"] == "a b"

    def test_custom_rule_registry(self):
        self.engine.add_custom_rule("jersey", lambda v: v.isdigit() or "jersey must be numeric")
        schema = make_schema({"jersey": self.engine.rule("jersey")})
        assert self.engine.validate(schema, {"jersey": "10"}).valid
        assert not self.engine.validate(schema, {"jersey": "ten"}).valid
        with pytest.raises(KeyError):
            self.engine.rule("unknown")


class TestFoodEntrySchema:
    def setup_method(self):
        self.engine = ValidationEngine()

    def _entry(self, **overrides):
        entry = {"mealType": "LUNCH", "description": "Pasta", "date": _today()}
        entry.update(overrides)
        return entry

    def test_valid_entry(self):
        assert self.engine.validate(FOOD_ENTRY_CREATE, self._entry(time="12:15")).valid

    def test_future_date_rejected(self):
        outcome = self.engine.validate(FOOD_ENTRY_CREATE, self._entry(date=_today(1)))
        assert outcome.errors[0].message == "Cannot log food for future dates"

    def test_old_date_rejected(self):
        outcome = self.engine.validate(FOOD_ENTRY_CREATE, self._entry(date=_today(-8)))
        assert outcome.errors[0].message == "Cannot log food more than 7 days in the past"

    def test_epoch_millisecond_date_accepted(self):
        now_ms = datetime.now(timezone.utc).timestamp() * 1000
        assert self.engine.validate(FOOD_ENTRY_CREATE, self._entry(date=now_ms)).valid

    @pytest.mark.parametrize("value", [1e300, -1e300, float("inf"), float("-inf"), float("nan")])
    def test_out_of_range_timestamp_is_a_field_error(self, value):
        outcome = self.engine.validate(FOOD_ENTRY_CREATE, self._entry(date=value))
        assert [(e.field, e.message) for e in outcome.errors] == [("date", "date must be a valid date")]

    def test_window_check_never_raises(self):
        assert within_food_log_window(1e300) == "date must be a valid date"
        assert within_food_log_window("not-a-date") == "date must be a valid date"

    def test_bad_time_and_meal(self):
        outcome = self.engine.validate(FOOD_ENTRY_CREATE, self._entry(time="25:00", mealType="BRUNCH"))
        assert {e.field for e in outcome.errors} == {"time", "mealType"}

    def test_partial_schema_makes_everything_optional(self):
        assert self.engine.validate(partial_schema(FOOD_ENTRY_CREATE), {"notes": "later"}).valid

    def test_schema_lookup(self):
        assert self.engine.schema_for("foodEntry", "create") is FOOD_ENTRY_CREATE
        assert self.engine.schema_for("foodEntry", "update") is None
        custom = make_schema({})
        self.engine.register_schema("foodEntry", "update", custom)
        assert self.engine.schema_for("foodEntry", "update") is custom


class TestValidateStage:
    def setup_method(self):
        self.stage = ValidationEngine().stage(USER_CREATE)

    @pytest.mark.asyncio
    async def test_short_circuits_with_all_errors(self):
        outcome = await self.stage(RequestContext.create("POST", "/api/v1/user", body={}))
        assert isinstance(outcome, ShortCircuit)
        assert isinstance(outcome.error, ValidationError)
        assert len(outcome.error.field_errors) == 4

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        outcome = await self.stage(RequestContext.create("POST", "/api/v1/user", body=[1, 2]))
        assert isinstance(outcome, ShortCircuit)
        assert outcome.error.message == "Request body must be a JSON object"

    @pytest.mark.asyncio
    async def test_continue_carries_sanitized_body(self):
        body = {"email": "A@B.CO", "name": "Al <3", "age": 12, "role": "PLAYER"}
        outcome = await self.stage(RequestContext.create("POST", "/api/v1/user", body=body))
        assert isinstance(outcome, Continue)
        assert outcome.context.body["email"] == "a@b.co"
        assert outcome.context.body["name"] == "Al &lt;3"
