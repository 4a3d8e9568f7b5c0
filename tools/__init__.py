"""
Workflow Actions as LLM Tools

This package turns preconfigured workflow actions into tools a chat model can
call. Runnable tasks run in-process; flows are triggered as new executions.

Key Components:
- Tool Models: Tool specifications, invocation requests and action definitions
- Schema Projection: Removes the parameters fixed by the workflow author
- Task Tool / Flow Tool: Binders and invokers for both action kinds
- Tool Registry: Per-turn collection and dispatch of bound tools
- llama_index Adapter: Bound tools as llama_index tools

Design Principles:
- Bind once per turn, execute many times
- Every failure aborts the tool call with a typed error
- No state kept between tool calls
"""

from .tool_models import (
    LLM_PLACEHOLDER,
    SUCCESS,
    ActionDefinition,
    BoundTool,
    FlowReference,
    TaskDefinition,
    ToolInvocationRequest,
    ToolParameter,
    ToolSpecification,
)
from .schema_projection import project_schema
from .task_tool import TaskToolProvider
from .flow_tool import FlowToolProvider
from .tool_registry import ToolRegistry

__all__ = [
    "LLM_PLACEHOLDER",
    "SUCCESS",
    "ActionDefinition",
    "BoundTool",
    "FlowReference",
    "TaskDefinition",
    "ToolInvocationRequest",
    "ToolParameter",
    "ToolSpecification",
    "project_schema",
    "TaskToolProvider",
    "FlowToolProvider",
    "ToolRegistry",
]
