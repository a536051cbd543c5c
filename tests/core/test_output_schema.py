"""
Tests for marketpilot.schema — flat output schemas and positional answers.
"""

import pytest

from marketpilot.betting.prompts import DECISION_SCHEMA
from marketpilot.errors import InvalidOutputSchemaError, MalformedAnswerError
from marketpilot.schema import decode_answer, encode_answer, schema_fields

FLAGS_SCHEMA = {
    "type": "object",
    "properties": {
        "approved": {"type": "boolean"},
        "score": {"type": "integer"},
        "note": {"type": "string"},
    },
    "required": ["approved"],
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  schema_fields
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSchemaFields:
    def test_declaration_order(self):
        assert schema_fields(DECISION_SCHEMA) == [
            ("decision", "string"),
            ("confidence", "integer"),
            ("rationale", "string"),
        ]

    def test_rejects_non_object(self):
        with pytest.raises(InvalidOutputSchemaError):
            schema_fields({"type": "array", "items": {"type": "string"}})

    def test_rejects_missing_properties(self):
        with pytest.raises(InvalidOutputSchemaError):
            schema_fields({"type": "object"})

    @pytest.mark.parametrize("kind", ["number", "array", "object", None])
    def test_rejects_unsupported_property_types(self, kind):
        schema = {"type": "object", "properties": {"x": {"type": kind}}}
        with pytest.raises(InvalidOutputSchemaError) as exc_info:
            schema_fields(schema)
        assert exc_info.value.field == "x"

    def test_rejects_unknown_required(self):
        schema = {
            "type": "object",
            "properties": {"x": {"type": "string"}},
            "required": ["y"],
        }
        with pytest.raises(InvalidOutputSchemaError):
            schema_fields(schema)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Encoding / decoding
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestWireValues:
    def test_booleans_travel_as_zero_or_one(self):
        values = encode_answer(FLAGS_SCHEMA, {"approved": True, "score": 7, "note": "ok"})
        assert values == (1, 7, "ok")

        decoded = decode_answer(FLAGS_SCHEMA, (0, 7, "ok"))
        assert decoded == {"approved": False, "score": 7, "note": "ok"}

    def test_encode_missing_field(self):
        with pytest.raises(MalformedAnswerError) as exc_info:
            encode_answer(FLAGS_SCHEMA, {"approved": True, "score": 1})
        assert exc_info.value.field == "note"

    def test_encode_rejects_negative_integer(self):
        with pytest.raises(MalformedAnswerError):
            encode_answer(FLAGS_SCHEMA, {"approved": True, "score": -1, "note": ""})

    def test_decode_wrong_arity(self):
        with pytest.raises(MalformedAnswerError):
            decode_answer(FLAGS_SCHEMA, (1, 2))

    def test_decode_rejects_bool_as_integer(self):
        with pytest.raises(MalformedAnswerError) as exc_info:
            decode_answer(FLAGS_SCHEMA, (1, True, "x"))
        assert exc_info.value.field == "score"

    def test_decode_rejects_boolean_out_of_range(self):
        with pytest.raises(MalformedAnswerError):
            decode_answer(FLAGS_SCHEMA, (2, 1, "x"))

    def test_decode_rejects_non_string(self):
        with pytest.raises(MalformedAnswerError):
            decode_answer(FLAGS_SCHEMA, (1, 1, 42))
