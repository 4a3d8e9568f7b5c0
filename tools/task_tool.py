"""
Task Tool - Runnable Tasks as LLM Tools

Binds preconfigured runnable tasks as tools. The tool schema is the task
parameter schema minus every property the workflow author already set; a
property preset to the placeholder ``"..."`` stays open for the model.

When the tool is called, the model arguments are overlaid on the presets, the
task is rebuilt from the merged parameters and run in-process. A non-empty
output is returned as JSON, otherwise the literal ``Success``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from bridge.exceptions import (
    ToolArgumentsError,
    ToolConfigurationError,
    ToolExecutionError,
    UnsupportedActionError,
)
from bridge.workflow.task_registry import TaskRegistry, task_registry
from bridge.workflow.tasks import RunnableTask, TaskOutput
from tools.schema_projection import is_placeholder, project_schema, to_tool_schema
from tools.tool_models import (
    SUCCESS,
    BoundTool,
    TaskDefinition,
    ToolInvocationRequest,
    ToolSpecification,
)

logger = logging.getLogger(__name__)

TASK_TOOL_PREFIX = "workflow_task_"


def tool_name_part(value: str) -> str:
    """Make a value usable inside a tool name (letters, digits, ``_`` and ``-`` only)."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", value)


def task_tool_name(task_id: str) -> str:
    return f"{TASK_TOOL_PREFIX}{tool_name_part(task_id)}"


def normalize_output(output: Any) -> str:
    """Turn a task output into the tool response sent to the model."""
    if output is None:
        return SUCCESS
    if isinstance(output, TaskOutput):
        output_map = output.to_map()
    elif isinstance(output, BaseModel):
        output_map = output.model_dump(mode="json", exclude_none=True)
    elif isinstance(output, dict):
        output_map = output
    else:
        raise TypeError(f"Unsupported task output type: {type(output).__name__}")

    if not output_map:
        return SUCCESS
    return json.dumps(output_map, default=str)


class TaskToolExecutor:
    """Runs one preconfigured task for each tool call."""

    def __init__(
        self,
        specification: ToolSpecification,
        task_class: Type[RunnableTask],
        definition: TaskDefinition,
        run_context,
    ):
        self.specification = specification
        self.task_class = task_class
        self.definition = definition
        self.run_context = run_context
        self._required = task_class.parameter_schema().get("required", [])

    def merge_parameters(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overlay the model arguments on the task presets.

        Arguments for parameters the tool does not expose are ignored, so the
        model can never override a value fixed by the workflow author.
        """
        exposed = set(self.specification.exposed_parameters())
        accepted = {key: value for key, value in arguments.items() if key in exposed}
        ignored = sorted(set(arguments) - exposed)
        if ignored:
            logger.debug(f"Tool '{self.specification.name}' ignored unexposed arguments: {ignored}")

        merged = {**self.definition.properties, **accepted}

        for name, value in merged.items():
            if is_placeholder(value):
                raise ToolArgumentsError(
                    f"You need to provide a value for the parameter '{name}'.",
                    tool_name=self.specification.name,
                    field=name,
                )
        for name in self._required:
            if name not in merged:
                raise ToolArgumentsError(
                    f"You need to provide a value for the parameter '{name}'.",
                    tool_name=self.specification.name,
                    field=name,
                )
        return merged

    def build_task(self, merged: Dict[str, Any]) -> RunnableTask:
        payload = {**merged, "id": self.definition.id, "type": self.task_class.type_name()}
        try:
            return self.task_class.model_validate(payload)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error.get("loc", ())) or None
            raise ToolArgumentsError(
                f"Invalid value for parameter '{field}': {error.get('msg')}",
                tool_name=self.specification.name,
                field=field,
            ) from e

    def execute(self, request: ToolInvocationRequest) -> str:
        self.run_context.logger.debug(f"Tool execution request: {request}")
        merged = self.merge_parameters(request.parsed_arguments())
        task = self.build_task(merged)

        try:
            return normalize_output(task.run(self.run_context))
        except Exception as e:
            raise ToolExecutionError(
                f"Task '{self.definition.id}' failed: {e}", tool_name=self.specification.name
            ) from e
        finally:
            self.close_task(task)

    def close_task(self, task: RunnableTask) -> None:
        """Release the task resources, logging a failing release."""
        try:
            task.close()
        except Exception as e:
            self.run_context.logger.error(f"Failed to close task '{self.definition.id}': {e}", exc_info=True)


class TaskToolProvider(BaseModel):
    """Tool provider exposing a list of preconfigured runnable tasks, one tool per task."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["tools.TaskTool"] = "tools.TaskTool"
    tasks: List[TaskDefinition] = Field(..., min_length=1, description="List of runnable tasks")

    _registry: TaskRegistry = PrivateAttr(default_factory=lambda: task_registry)

    def with_registry(self, registry: TaskRegistry) -> "TaskToolProvider":
        self._registry = registry
        return self

    def bind(self, definition: TaskDefinition, run_context) -> BoundTool:
        """Build the tool specification and executor of one task definition."""
        task_class = self._registry.get_task(definition.type)
        if task_class is None:
            raise ToolConfigurationError(f"Unknown task type '{definition.type}' for task '{definition.id}'")
        if not issubclass(task_class, RunnableTask):
            raise UnsupportedActionError(definition.id, definition.type)

        description = definition.description or task_class.task_description or task_class.__doc__
        if not description or not description.strip():
            raise ToolConfigurationError(
                f"The task '{definition.id}' has no description, provide one in the tool definition "
                f"so the LLM knows when to call it"
            )

        schema = to_tool_schema(task_class.parameter_schema())
        unknown = sorted(set(definition.properties) - set(schema.get("properties", {})))
        if unknown:
            raise ToolConfigurationError(f"Unknown properties {unknown} for task '{definition.id}' ({definition.type})")

        parameters = project_schema(schema, definition.properties)
        run_context.logger.debug(f"Generated JSON schema for task '{definition.id}': {parameters}")

        specification = ToolSpecification(
            name=task_tool_name(definition.id),
            description=description.strip(),
            parameters=parameters,
        )
        executor = TaskToolExecutor(specification, task_class, definition, run_context)
        return BoundTool(specification=specification, executor=executor)

    def tools(self, run_context) -> Dict[str, BoundTool]:
        bound: Dict[str, BoundTool] = {}
        for definition in self.tasks:
            tool = self.bind(definition, run_context)
            if tool.name in bound:
                raise ToolConfigurationError(f"Duplicate tool name '{tool.name}'")
            bound[tool.name] = tool
        return bound

    def close(self, run_context) -> None:
        """Task tools hold no resource beyond a single call."""
        return None
