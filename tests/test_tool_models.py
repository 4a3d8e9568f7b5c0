import pytest
from pydantic import TypeAdapter, ValidationError

from bridge.exceptions import ToolArgumentsError
from tools.tool_models import (
    ActionDefinition,
    FlowReference,
    TaskDefinition,
    ToolInvocationRequest,
    ToolParameter,
    ToolParameterType,
    ToolSpecification,
    build_parameter_schema,
)


class TestToolInvocationRequest:

    def test_object_arguments(self):
        request = ToolInvocationRequest(name="t", arguments={"a": 1})
        assert request.parsed_arguments() == {"a": 1}

    def test_json_arguments(self):
        assert ToolInvocationRequest(name="t", arguments='{"a": [1, 2]}').parsed_arguments() == {"a": [1, 2]}

    def test_blank_arguments(self):
        assert ToolInvocationRequest(name="t", arguments="  ").parsed_arguments() == {}

    def test_malformed_arguments(self):
        with pytest.raises(ToolArgumentsError) as exc_info:
            ToolInvocationRequest(name="t", arguments="{").parsed_arguments()
        assert exc_info.value.tool_name == "t"

    def test_non_object_arguments(self):
        with pytest.raises(ToolArgumentsError):
            ToolInvocationRequest(name="t", arguments='"text"').parsed_arguments()


class TestToolSpecification:

    def test_wire_format(self):
        spec = ToolSpecification(name="t", description="Does things.", parameters={"type": "object", "properties": {}})
        assert spec.to_wire() == {"name": "t", "description": "Does things.", "parameters": {"type": "object", "properties": {}}}

    def test_description_is_mandatory(self):
        with pytest.raises(ValidationError):
            ToolSpecification(name="t", description="", parameters={})

    def test_parameter_schema(self):
        schema = build_parameter_schema([
            ToolParameter(name="q", type=ToolParameterType.STRING, description="Query", required=True),
            ToolParameter(name="tags", type=ToolParameterType.ARRAY,
                          items=[ToolParameter(name="key", type=ToolParameterType.STRING)]),
        ])
        assert schema["required"] == ["q"]
        assert schema["properties"]["q"] == {"type": "string", "description": "Query"}
        assert schema["properties"]["tags"]["items"]["properties"] == {"key": {"type": "string"}}


class TestActionDefinition:

    def test_discriminated_on_kind(self):
        adapter = TypeAdapter(ActionDefinition)
        assert isinstance(adapter.validate_python({"kind": "task", "id": "a", "type": "core.Return"}), TaskDefinition)
        assert isinstance(adapter.validate_python({"kind": "flow", "namespace": "n", "flow_id": "f"}), FlowReference)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            TypeAdapter(ActionDefinition).validate_python({"kind": "script", "id": "a"})
