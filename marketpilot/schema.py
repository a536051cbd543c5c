"""
Flat output schemas — the wire shape of structured inference answers.

A structured request carries a flat JSON-Schema object: top-level
properties only, each of type ``integer``, ``boolean`` or ``string``; no
nesting, no arrays, no floating point. The inference service delivers the
answer as a tuple of values in the schema's property order:

    integer → non-negative int
    boolean → 0 / 1
    string  → str

``encode_answer`` is what a service does before delivery; ``decode_answer``
is what the agent does on receipt. Content validation (enums, ranges) is
left to the consumer that owns the meaning of each field.
"""

from __future__ import annotations

from typing import Any, Sequence

from marketpilot.errors import InvalidOutputSchemaError, MalformedAnswerError

SUPPORTED_TYPES = ("integer", "boolean", "string")


def schema_fields(schema: dict[str, Any]) -> list[tuple[str, str]]:
    """
    Return ``(name, type)`` for each top-level property, in declaration order.

    Raises:
        InvalidOutputSchemaError: If the schema is not a flat object of
            supported scalar properties, or ``required`` names an unknown one.
    """
    if schema.get("type") != "object":
        raise InvalidOutputSchemaError("Output schema must be an object", field="type")
    properties = schema.get("properties")
    if not isinstance(properties, dict) or not properties:
        raise InvalidOutputSchemaError(
            "Output schema must declare properties", field="properties"
        )

    fields: list[tuple[str, str]] = []
    for name, spec in properties.items():
        kind = spec.get("type") if isinstance(spec, dict) else None
        if kind not in SUPPORTED_TYPES:
            raise InvalidOutputSchemaError(
                f"Property {name!r} has unsupported type {kind!r}", field=name
            )
        fields.append((name, kind))

    for name in schema.get("required", []):
        if name not in properties:
            raise InvalidOutputSchemaError(
                f"Required property {name!r} is not declared", field=name
            )
    return fields


def encode_answer(schema: dict[str, Any], answer: dict[str, Any]) -> tuple:
    """Encode a parsed JSON answer into the positional wire tuple."""
    values: list[Any] = []
    for name, kind in schema_fields(schema):
        if name not in answer:
            raise MalformedAnswerError(f"Answer is missing {name!r}", field=name)
        raw = answer[name]
        if kind == "boolean":
            if not isinstance(raw, bool):
                raise MalformedAnswerError(f"{name!r} must be a boolean", field=name)
            values.append(1 if raw else 0)
        elif kind == "integer":
            if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
                raise MalformedAnswerError(
                    f"{name!r} must be a non-negative integer", field=name
                )
            values.append(raw)
        else:
            if not isinstance(raw, str):
                raise MalformedAnswerError(f"{name!r} must be a string", field=name)
            values.append(raw)
    return tuple(values)


def decode_answer(schema: dict[str, Any], values: Sequence[Any]) -> dict[str, Any]:
    """
    Decode a delivered wire tuple back into a ``{name: value}`` mapping.

    Raises:
        MalformedAnswerError: If the arity or any value type does not match.
    """
    fields = schema_fields(schema)
    if len(values) != len(fields):
        raise MalformedAnswerError(
            f"Expected {len(fields)} values, got {len(values)}", field="*"
        )

    decoded: dict[str, Any] = {}
    for (name, kind), raw in zip(fields, values):
        if kind == "boolean":
            if raw not in (0, 1) or isinstance(raw, str):
                raise MalformedAnswerError(f"{name!r} must be 0 or 1", field=name)
            decoded[name] = bool(raw)
        elif kind == "integer":
            if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
                raise MalformedAnswerError(
                    f"{name!r} must be an unsigned integer", field=name
                )
            decoded[name] = raw
        else:
            if not isinstance(raw, str):
                raise MalformedAnswerError(f"{name!r} must be a string", field=name)
            decoded[name] = raw
    return decoded
