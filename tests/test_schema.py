# tests/test_schema.py
import pytest

from mcp_bridge.mcp.core.errors import ValidationError
from mcp_bridge.mcp.core.schema import FieldKind, translate

ACTION_SCHEMA = {
    "type": "object",
    "properties": {"action": {"type": "string", "enum": ["read", "write"]}},
    "required": ["action"],
}


def test_enum_field_accepts_declared_value():
    signature = translate(ACTION_SCHEMA)
    assert signature.validate({"action": "read"}) == {"action": "read"}


def test_enum_field_rejects_value_outside_enum():
    signature = translate(ACTION_SCHEMA)
    with pytest.raises(ValidationError) as exc:
        signature.validate({"action": "delete"})
    assert exc.value.field == "action"
    assert "enum" in exc.value.reason


def test_missing_required_field_is_rejected():
    signature = translate(ACTION_SCHEMA)
    with pytest.raises(ValidationError) as exc:
        signature.validate({})
    assert exc.value.field == "action"
    assert exc.value.reason == "missing required field"


def test_unknown_keys_are_dropped():
    signature = translate(ACTION_SCHEMA)
    assert signature.validate({"action": "write", "context": {"channelId": "C1"}}) == {"action": "write"}


def test_strict_types():
    signature = translate({
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "count": {"type": "integer"},
            "ratio": {"type": "number"},
            "force": {"type": "boolean"},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
    })

    assert signature.validate({"count": 3, "ratio": 0.5, "force": True, "tags": ["a"]}) == {
        "count": 3, "ratio": 0.5, "force": True, "tags": ["a"]
    }

    with pytest.raises(ValidationError) as exc:
        signature.validate({"name": 1})
    assert exc.value.field == "name"
    assert exc.value.reason.startswith("wrong type")

    with pytest.raises(ValidationError) as exc:
        signature.validate({"count": "3"})
    assert exc.value.field == "count"


def test_optional_field_is_not_filled_without_default():
    signature = translate({
        "type": "object",
        "properties": {"query": {"type": "string"}, "maxResults": {"type": "integer", "default": 5},
                       "lang": {"type": "string"}},
        "required": ["query"],
    })
    assert signature.validate({"query": "rain"}) == {"query": "rain", "maxResults": 5}


def test_property_names_that_are_not_identifiers():
    signature = translate({
        "type": "object",
        "properties": {"file-path": {"type": "string"}, "model_config": {"type": "string"}},
        "required": ["file-path"],
    })
    assert signature.validate({"file-path": "a.txt", "model_config": "x"}) == {
        "file-path": "a.txt", "model_config": "x"
    }


@pytest.mark.parametrize("schema", [None, "nope", {"type": "string"}, {"type": "object", "properties": []}])
def test_unrecognized_schema_falls_back_to_opaque(schema):
    signature = translate(schema)
    assert signature.is_opaque
    assert signature.validate({"anything": [1, 2]}) == {"anything": [1, 2]}


def test_non_object_input_is_rejected():
    signature = translate(ACTION_SCHEMA)
    with pytest.raises(ValidationError) as exc:
        signature.validate(["read"])
    assert exc.value.field == "$"


def test_untyped_property_is_opaque():
    signature = translate({"type": "object", "properties": {"payload": {}}})
    assert signature.fields[0].kind == FieldKind.OPAQUE
    assert signature.validate({"payload": {"nested": True}}) == {"payload": {"nested": True}}


def test_json_schema_export():
    exported = translate(ACTION_SCHEMA).to_json_schema()
    assert exported == {
        "type": "object",
        "properties": {"action": {"type": "string", "enum": ["read", "write"]}},
        "required": ["action"],
    }


LEVEL_SCHEMA = {
    "type": "object",
    "properties": {"level": {"type": "integer", "enum": [1, 2, 3]}},
    "required": ["level"],
}


def test_integer_enum_keeps_its_declared_type():
    signature = translate(LEVEL_SCHEMA)

    assert signature.fields[0].kind == FieldKind.NUMBER
    assert signature.to_json_schema()["properties"] == {"level": {"type": "integer", "enum": [1, 2, 3]}}
    assert signature.validate({"level": 2}) == {"level": 2}


@pytest.mark.parametrize("value, reason", [
    (True, "wrong type: expected integer"),
    (1.0, "wrong type: expected integer"),
    ("1", "wrong type: expected integer"),
    (4, "value outside declared enum [1, 2, 3]"),
])
def test_integer_enum_is_strict(value, reason):
    with pytest.raises(ValidationError) as exc:
        translate(LEVEL_SCHEMA).validate({"level": value})
    assert exc.value.field == "level"
    assert exc.value.reason == reason


def test_untyped_enum_infers_type_from_values():
    signature = translate({
        "type": "object",
        "properties": {
            "mode": {"enum": ["fast", "slow"]},
            "ratio": {"enum": [0.5, 1]},
            "flag": {"enum": [True]},
        },
    })

    exported = signature.to_json_schema()["properties"]
    assert exported["mode"]["type"] == "string"
    assert exported["ratio"]["type"] == "number"
    assert exported["flag"]["type"] == "boolean"
    assert signature.validate({"ratio": 1, "flag": True}) == {"ratio": 1, "flag": True}

    with pytest.raises(ValidationError) as exc:
        signature.validate({"flag": 1})
    assert exc.value.field == "flag"
