"""
Tool Registry for Workflow Action Tools

This module provides the per-turn registry of bound tools. Tool providers
(task tools, flow tools) are bound once when the chat turn is built; the chat
loop then dispatches every tool call through the registry.

Key Features:
- Unique tool names within one registration set
- Wire-ready tool specifications for the chat loop
- Dispatch of tool calls to the executor serving the tool
- Fail-fast error policy: every failure aborts the current tool call
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from bridge.exceptions import BridgeError, ToolArgumentsError, ToolConfigurationError
from tools.flow_tool import FlowToolProvider
from tools.task_tool import TaskToolProvider
from tools.tool_models import (
    ActionDefinition,
    BoundTool,
    FlowReference,
    TaskDefinition,
    ToolInvocationRequest,
    ToolSpecification,
)

logger = logging.getLogger(__name__)


def providers_for_actions(actions: Iterable[ActionDefinition]) -> List[Any]:
    """Group action definitions by kind into the tool providers binding them."""
    tasks: List[TaskDefinition] = []
    flows: List[FlowReference] = []
    for action in actions:
        if isinstance(action, TaskDefinition):
            tasks.append(action)
        elif isinstance(action, FlowReference):
            flows.append(action)
        else:
            raise ToolConfigurationError(f"Unsupported action kind: {type(action).__name__}")

    providers: List[Any] = []
    if tasks:
        providers.append(TaskToolProvider(tasks=tasks))
    if flows:
        providers.append(FlowToolProvider(flows=flows))
    return providers


class ToolRegistry:
    """
    Registry of the tools bound for one chat turn.

    The registry is built once per turn and discarded with it. Executors are
    stateless with respect to call arguments, so the registry may be used by
    concurrent tool calls.
    """

    def __init__(self, run_context):
        self.run_context = run_context
        self._tools: Dict[str, BoundTool] = {}
        self._providers: List[Any] = []

    @classmethod
    def from_providers(cls, providers: Iterable[Any], run_context) -> "ToolRegistry":
        registry = cls(run_context)
        for provider in providers:
            registry.register_provider(provider)
        return registry

    @classmethod
    def from_actions(cls, actions: Iterable[ActionDefinition], run_context) -> "ToolRegistry":
        return cls.from_providers(providers_for_actions(actions), run_context)

    def register_provider(self, provider: Any) -> List[str]:
        """
        Bind every tool of a provider and register them.

        Args:
            provider: Object exposing ``tools(run_context)`` and ``close(run_context)``

        Returns:
            Names of the registered tools

        Raises:
            ToolConfigurationError: If a tool name is already registered
        """
        bound = provider.tools(self.run_context)
        self._providers.append(provider)
        for tool in bound.values():
            self.register_tool(tool)
        logger.info(f"Registered {len(bound)} tool(s) from {type(provider).__name__}: {list(bound)}")
        return list(bound)

    def register_tool(self, tool: BoundTool) -> None:
        if tool.name in self._tools:
            raise ToolConfigurationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> Optional[BoundTool]:
        return self._tools.get(name)

    def get_specification(self, name: str) -> Optional[ToolSpecification]:
        tool = self._tools.get(name)
        return tool.specification if tool else None

    def list_tools(self) -> List[str]:
        return list(self._tools.keys())

    def specifications(self) -> List[ToolSpecification]:
        return [tool.specification for tool in self._tools.values()]

    def to_wire(self) -> List[Dict[str, Any]]:
        return [spec.to_wire() for spec in self.specifications()]

    def execute(self, request: ToolInvocationRequest) -> str:
        """
        Execute a tool call.

        Raises:
            ToolArgumentsError: If the tool is unknown or its arguments are unusable
            ToolExecutionError: If the action failed or could not be submitted
        """
        tool = self._tools.get(request.name)
        if tool is None:
            raise ToolArgumentsError(
                f"Tool not found. Available tools: {self.list_tools()}", tool_name=request.name
            )

        logger.debug(f"Executing tool '{request.name}' (request ID {request.id})")
        try:
            result = tool.executor.execute(request)
        except BridgeError as e:
            logger.error(
                f"An error occurred during tool execution for tool {request.name} with request ID {request.id}: {e}",
                exc_info=True,
            )
            raise
        logger.debug(f"Tool '{request.name}' execution completed: {result[:200]}")
        return result

    def close(self) -> None:
        for provider in self._providers:
            provider.close(self.run_context)

    def get_registry_stats(self) -> Dict[str, Any]:
        return {
            "total_tools": len(self._tools),
            "providers": [type(provider).__name__ for provider in self._providers],
            "all_tools": self.list_tools(),
        }
