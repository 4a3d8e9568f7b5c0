import json
from unittest.mock import MagicMock

import pytest

from bridge.exceptions import ToolArgumentsError, ToolConfigurationError, ToolExecutionError
from tools.flow_tool import FlowToolProvider
from tools.llama_tools import RegistryTool, to_llama_tools
from tools.task_tool import TaskToolProvider
from tools.tool_models import FlowReference, TaskDefinition, ToolInvocationRequest
from tools.tool_registry import ToolRegistry, providers_for_actions


@pytest.fixture
def registry(task_registry, run_context):
    provider = TaskToolProvider(tasks=[
        TaskDefinition(id="greet", type="test.Greet"),
        TaskDefinition(id="failing", type="test.Failing"),
    ]).with_registry(task_registry)
    return ToolRegistry.from_providers(
        [provider, FlowToolProvider(flows=[FlowReference(namespace="company.team", flow_id="cleanup")])],
        run_context,
    )


class TestToolRegistry:
    """Tests for the per-turn tool registry."""

    def test_tools_of_every_provider_are_registered(self, registry):
        assert registry.list_tools() == ["workflow_task_greet", "workflow_task_failing", "workflow_flow_company_team_cleanup"]
        assert registry.get_registry_stats()["providers"] == ["TaskToolProvider", "FlowToolProvider"]

    def test_wire_specifications(self, registry):
        wire = registry.to_wire()
        assert [tool["name"] for tool in wire] == registry.list_tools()
        assert wire[0]["parameters"]["required"] == ["name"]

    def test_duplicate_names_across_providers(self, task_registry, run_context):
        registry = ToolRegistry(run_context)
        registry.register_provider(TaskToolProvider(tasks=[TaskDefinition(id="greet", type="test.Greet")]).with_registry(task_registry))
        with pytest.raises(ToolConfigurationError):
            registry.register_provider(
                TaskToolProvider(tasks=[TaskDefinition(id="greet", type="test.Silent")]).with_registry(task_registry)
            )

    def test_execute(self, registry):
        result = registry.execute(ToolInvocationRequest(id="1", name="workflow_task_greet", arguments={"name": "Ada"}))
        assert json.loads(result) == {"value": "Hello Ada!"}

    def test_unknown_tool(self, registry):
        with pytest.raises(ToolArgumentsError) as exc_info:
            registry.execute(ToolInvocationRequest(id="1", name="workflow_task_nope", arguments={}))
        assert "workflow_task_greet" in str(exc_info.value)

    def test_execution_errors_propagate(self, registry):
        with pytest.raises(ToolExecutionError):
            registry.execute(ToolInvocationRequest(id="1", name="workflow_task_failing", arguments={}))

    def test_close_closes_every_provider(self, run_context):
        provider = MagicMock()
        provider.tools.return_value = {}
        registry = ToolRegistry.from_providers([provider], run_context)
        registry.close()
        provider.close.assert_called_once_with(run_context)

    def test_from_actions(self, run_context):
        registry = ToolRegistry.from_actions(
            [
                TaskDefinition(id="answer", type="core.Return", properties={"format": "42"}),
                FlowReference(namespace="company.team", flow_id="cleanup"),
            ],
            run_context,
        )
        assert registry.list_tools() == ["workflow_task_answer", "workflow_flow_company_team_cleanup"]
        result = registry.execute(ToolInvocationRequest(name="workflow_task_answer", arguments={}))
        assert json.loads(result) == {"value": "42"}

    def test_providers_for_actions_groups_by_kind(self):
        providers = providers_for_actions([
            FlowReference(),
            TaskDefinition(id="a", type="core.Return"),
            TaskDefinition(id="b", type="core.Log"),
        ])
        assert [type(provider) for provider in providers] == [TaskToolProvider, FlowToolProvider]
        assert [task.id for task in providers[0].tasks] == ["a", "b"]

    def test_unsupported_action(self):
        with pytest.raises(ToolConfigurationError):
            providers_for_actions([object()])


class TestLlamaTools:
    """Tests for the llama_index view of the registry."""

    def test_metadata_carries_projected_schema(self, registry):
        tools = to_llama_tools(registry)
        assert [tool.metadata.name for tool in tools] == registry.list_tools()
        assert tools[0].metadata.get_parameters_dict() == registry.get_specification("workflow_task_greet").parameters

    def test_invoke_records_executions(self, registry):
        executions = []
        tool = RegistryTool(registry, registry.get_specification("workflow_task_greet"), executions)

        output = tool.invoke("call-7", {"name": "Ada"})

        assert json.loads(output.raw_output) == {"value": "Hello Ada!"}
        assert len(executions) == 1
        assert executions[0].request_id == "call-7"
        assert executions[0].request_name == "workflow_task_greet"
        assert executions[0].request_arguments == {"name": "Ada"}

    def test_call_uses_keyword_arguments(self, registry):
        tool = RegistryTool(registry, registry.get_specification("workflow_task_greet"))
        assert json.loads(tool.call(name="Grace").raw_output) == {"value": "Hello Grace!"}

    def test_failures_are_not_recorded(self, registry):
        executions = []
        tool = RegistryTool(registry, registry.get_specification("workflow_task_failing"), executions)
        with pytest.raises(ToolExecutionError):
            tool.invoke("call-1", {})
        assert executions == []

    @pytest.mark.asyncio
    async def test_acall(self, registry):
        tool = RegistryTool(registry, registry.get_specification("workflow_task_greet"))
        output = await tool.acall(name="Ada")
        assert json.loads(output.raw_output) == {"value": "Hello Ada!"}
