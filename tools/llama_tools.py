"""
llama_index Tool Adapter

Exposes the tools of a ToolRegistry as llama_index tools so the function
calling LLMs of llama_index can select and call them. The parameters sent to
the model are the projected schema of each bound tool, unchanged.

Errors raised by the registry propagate unchanged, so a failing tool call
aborts the chat turn.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llama_index.core.tools import AsyncBaseTool, ToolMetadata, ToolOutput

from bridge.models import ToolExecution
from tools.tool_models import ToolInvocationRequest, ToolSpecification
from tools.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProjectedToolMetadata(ToolMetadata):
    """Tool metadata whose parameters are a ready-made JSON schema instead of a pydantic model."""

    parameters: Dict[str, Any] = field(default_factory=dict)

    def get_parameters_dict(self) -> dict:
        return self.parameters


class RegistryTool(AsyncBaseTool):
    """One bound tool of a registry, callable by a llama_index LLM."""

    def __init__(self, registry: ToolRegistry, specification: ToolSpecification, executions: Optional[List[ToolExecution]] = None):
        self._registry = registry
        self._metadata = ProjectedToolMetadata(
            name=specification.name,
            description=specification.description,
            parameters=specification.parameters,
        )
        self._executions = executions if executions is not None else []

    @property
    def metadata(self) -> ToolMetadata:
        return self._metadata

    def invoke(self, request_id: Optional[str], arguments: Dict[str, Any]) -> ToolOutput:
        """Execute the tool for a tool call issued by the model."""
        request = ToolInvocationRequest(id=request_id or uuid.uuid4().hex, name=self._metadata.name, arguments=dict(arguments))
        logger.info(f"Calling tool '{request.name}' (request ID {request.id})")
        result = self._registry.execute(request)

        self._executions.append(
            ToolExecution(
                request_id=request.id,
                request_name=request.name,
                request_arguments=request.parsed_arguments(),
                result=result,
            )
        )
        return ToolOutput(content=result, tool_name=request.name, raw_input=dict(arguments), raw_output=result)

    def call(self, *args: Any, **kwargs: Any) -> ToolOutput:
        return self.invoke(None, kwargs)

    async def acall(self, *args: Any, **kwargs: Any) -> ToolOutput:
        return await asyncio.to_thread(self.call, *args, **kwargs)


def to_llama_tools(registry: ToolRegistry, executions: Optional[List[ToolExecution]] = None) -> List[RegistryTool]:
    return [RegistryTool(registry, specification, executions) for specification in registry.specifications()]

