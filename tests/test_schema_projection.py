import pytest

from bridge.exceptions import ToolConfigurationError
from tools.schema_projection import (
    is_placeholder,
    open_parameters,
    placeholder_parameters,
    project_schema,
    to_tool_schema,
)
from tools.tool_models import LLM_PLACEHOLDER

SCHEMA = {
    "type": "object",
    "properties": {
        "uri": {"type": "string"},
        "method": {"type": "string"},
        "body": {"type": "object", "properties": {"text": {"type": "string"}}},
    },
    "required": ["uri", "method"],
}


class TestSchemaProjection:
    """Tests for the projection of task schemas into tool parameters."""

    def test_preset_parameter_is_removed(self):
        projected = project_schema(SCHEMA, {"uri": "https://example.com"})
        assert "uri" not in projected["properties"]
        assert "uri" not in projected["required"]
        assert projected["required"] == ["method"]

    def test_placeholder_keeps_parameter_open(self):
        projected = project_schema(SCHEMA, {"uri": LLM_PLACEHOLDER, "method": "GET"})
        assert list(projected["properties"]) == ["uri", "body"]
        assert projected["required"] == ["uri"]

    def test_no_presets_keeps_everything(self):
        projected = project_schema(SCHEMA, {})
        assert projected["properties"] == SCHEMA["properties"]
        assert projected["required"] == SCHEMA["required"]

    def test_nested_schemas_are_copied_unchanged(self):
        projected = project_schema(SCHEMA, {"uri": "x", "method": "GET"})
        assert projected["properties"]["body"] == SCHEMA["properties"]["body"]

    def test_input_schema_is_not_mutated(self):
        project_schema(SCHEMA, {"uri": "x", "method": "GET", "body": {}})
        assert list(SCHEMA["properties"]) == ["uri", "method", "body"]
        assert SCHEMA["required"] == ["uri", "method"]

    def test_type_defaults_to_object(self):
        projected = project_schema({"properties": {"a": {"type": "string"}}}, {})
        assert projected["type"] == "object"
        assert projected["required"] == []

    def test_preset_falsy_values_still_count_as_preset(self):
        projected = project_schema(SCHEMA, {"uri": "", "method": None})
        assert list(projected["properties"]) == ["body"]


class TestPlaceholderHelpers:

    def test_is_placeholder_only_matches_sentinel_string(self):
        assert is_placeholder("...")
        assert not is_placeholder("....")
        assert not is_placeholder(None)
        assert not is_placeholder(["..."])

    def test_open_and_placeholder_parameters(self):
        presets = {"uri": LLM_PLACEHOLDER, "method": "POST"}
        assert open_parameters(SCHEMA, presets) == ["uri", "body"]
        assert placeholder_parameters(presets) == ["uri"]


PYDANTIC_SCHEMA = {
    "title": "Request",
    "type": "object",
    "$defs": {
        "Level": {"title": "Level", "type": "string", "enum": ["INFO", "ERROR"]},
        "Header": {
            "title": "Header",
            "type": "object",
            "properties": {"name": {"title": "Name", "type": "string"}},
            "required": ["name"],
        },
    },
    "properties": {
        "level": {"$ref": "#/$defs/Level", "description": "Log level", "default": "INFO"},
        "body": {"anyOf": [{"type": "string"}, {"type": "null"}], "default": None, "title": "Body"},
        "headers": {"type": "array", "items": {"$ref": "#/$defs/Header"}, "title": "Headers"},
        "mode": {"const": "fast", "type": "string"},
    },
    "required": ["level"],
}


def keywords(schema):
    """Every keyword used anywhere in a translated schema."""
    found = set(schema)
    for prop in schema.get("properties", {}).values():
        found |= keywords(prop)
    if "items" in schema:
        found |= keywords(schema["items"])
    return found


class TestToolSchemaTranslation:
    """Tests for the translation of pydantic schemas into tool parameter schemas."""

    def test_references_are_inlined(self):
        level = to_tool_schema(PYDANTIC_SCHEMA)["properties"]["level"]
        assert level == {"type": "string", "description": "Log level", "enum": ["INFO", "ERROR"]}

    def test_optional_collapses_to_its_type(self):
        assert to_tool_schema(PYDANTIC_SCHEMA)["properties"]["body"] == {"type": "string"}

    def test_array_items_are_translated(self):
        headers = to_tool_schema(PYDANTIC_SCHEMA)["properties"]["headers"]
        assert headers["items"] == {"type": "object", "properties": {"name": {"type": "string"}}, "required": ["name"]}

    def test_const_becomes_enum(self):
        assert to_tool_schema(PYDANTIC_SCHEMA)["properties"]["mode"] == {"type": "string", "enum": ["fast"]}

    def test_only_subset_keywords_remain(self):
        translated = to_tool_schema(PYDANTIC_SCHEMA)
        assert keywords(translated) <= {"type", "description", "enum", "properties", "required", "items"}
        assert translated["required"] == ["level"]

    def test_input_schema_is_untouched(self):
        to_tool_schema(PYDANTIC_SCHEMA)
        assert "$ref" in PYDANTIC_SCHEMA["properties"]["level"]
        assert "$defs" in PYDANTIC_SCHEMA

    def test_recursive_reference(self):
        schema = {
            "type": "object",
            "$defs": {"Node": {"type": "object", "properties": {"child": {"$ref": "#/$defs/Node"}}}},
            "properties": {"root": {"$ref": "#/$defs/Node"}},
        }
        with pytest.raises(ToolConfigurationError):
            to_tool_schema(schema)

    def test_unresolvable_reference(self):
        with pytest.raises(ToolConfigurationError):
            to_tool_schema({"type": "object", "properties": {"x": {"$ref": "#/$defs/Missing"}}})
