"""
Tool Data Models for Workflow Action Tools

This module defines the Pydantic models shared by the tool binders and the
tool executors: the static action definitions written by the workflow
author, the LLM-facing tool specification, the tool call request sent back by
the chat loop, and the executor contract.

Key Design Principles:
- Action kinds form a closed, discriminated union (task or flow)
- A tool specification is a plain value; its executor holds the action
- Executors are stateless with respect to call arguments
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

from bridge.exceptions import ToolArgumentsError
from bridge.models import Label

logger = logging.getLogger(__name__)

# Literal tool response sent when an action succeeded without producing output,
# so the model knows the call worked and does not call it again.
SUCCESS = "Success"

# Preset value marking a parameter the model must supply.
LLM_PLACEHOLDER = "..."


class ToolParameterType(str, Enum):
    """Enumeration of supported tool parameter types."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ToolParameter(BaseModel):
    """
    Definition of a fixed tool parameter, used by tools whose schema is not
    derived from a task class.
    """
    name: str = Field(..., description="Parameter name")
    type: ToolParameterType = Field(..., description="Parameter data type")
    description: Optional[str] = Field(None, description="Human-readable description of the parameter")
    required: bool = Field(False, description="Whether this parameter is required")
    items: Optional[List["ToolParameter"]] = Field(
        None, description="Object properties of each array item, for array parameters"
    )

    def to_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type.value}
        if self.description:
            schema["description"] = self.description
        if self.type == ToolParameterType.ARRAY:
            schema["items"] = build_parameter_schema(self.items or [])
        return schema


def build_parameter_schema(parameters: List[ToolParameter]) -> Dict[str, Any]:
    """Generate an object JSON schema from a list of tool parameters."""
    return {
        "type": "object",
        "properties": {param.name: param.to_schema() for param in parameters},
        "required": [param.name for param in parameters if param.required],
    }


class ToolSpecification(BaseModel):
    """LLM-facing description of a bound tool."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique tool name within one registration set")
    description: str = Field(..., min_length=1, description="What the tool does, used by the model to pick it")
    parameters: Dict[str, Any] = Field(..., description="Projected JSON schema of the tool arguments")

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    def exposed_parameters(self) -> List[str]:
        return list(self.parameters.get("properties", {}).keys())


class ToolInvocationRequest(BaseModel):
    """A tool call issued by the chat loop."""
    id: Optional[str] = Field(None, description="Identifier of the tool call")
    name: str = Field(..., description="Name of the called tool")
    arguments: Union[str, Dict[str, Any]] = Field(default_factory=dict, description="Arguments as JSON text or object")

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the call arguments into a dictionary."""
        if isinstance(self.arguments, dict):
            return dict(self.arguments)
        if not self.arguments.strip():
            return {}
        try:
            decoded = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise ToolArgumentsError(f"Malformed arguments JSON: {e.msg}", tool_name=self.name) from e
        if not isinstance(decoded, dict):
            raise ToolArgumentsError("Arguments must be a JSON object", tool_name=self.name)
        return decoded


@runtime_checkable
class ToolExecutor(Protocol):
    """Executes a tool call and returns the tool response for the model."""

    def execute(self, request: ToolInvocationRequest) -> str:
        ...


class BoundTool(BaseModel):
    """Pairing of a tool specification with the executor serving it."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    specification: ToolSpecification
    executor: Any

    @property
    def name(self) -> str:
        return self.specification.name


class TaskDefinition(BaseModel):
    """A runnable task preconfigured by the workflow author."""
    kind: Literal["task"] = "task"
    id: str = Field(..., description="Task identifier, used to derive the tool name")
    type: str = Field(..., description="Registered task type name")
    description: Optional[str] = Field(None, description="Explicit tool description, overrides the task type's one")
    properties: Dict[str, Any] = Field(
        default_factory=dict,
        description=f"Preset task properties; use '{LLM_PLACEHOLDER}' for properties the model must set",
    )


class FlowReference(BaseModel):
    """A sub-flow exposed as a tool, either fixed (namespace and flow_id set) or chosen by the model."""
    kind: Literal["flow"] = "flow"
    namespace: Optional[str] = Field(None, description="Namespace of the flow that should be called")
    flow_id: Optional[str] = Field(None, description="Identifier of the flow that should be called")
    revision: Optional[int] = Field(None, description="Revision of the flow that should be called")
    description: Optional[str] = Field(
        None, description="Description of the flow if not already provided inside the flow itself"
    )
    inputs: Dict[str, Any] = Field(
        default_factory=dict, description="Input values passed to the execution; model inputs override them"
    )
    labels: List[Label] = Field(
        default_factory=list, description="Labels added to the execution; model labels override them"
    )
    inherit_labels: bool = Field(
        False, description="Whether the execution inherits the labels of the execution calling the tool"
    )
    schedule_date: Optional[datetime] = Field(
        None, description="Schedule the execution at a later date; a date set by the model overrides it"
    )


ActionDefinition = Annotated[Union[TaskDefinition, FlowReference], Field(discriminator="kind")]
