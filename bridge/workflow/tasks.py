"""
Task Data Models for Workflow Actions

A task class is a pydantic model describing the parameters of one kind of
action. Its JSON schema is what the tool binder projects for the LLM, and a
task instance is rebuilt from merged parameters every time a tool is called.

Two families exist:
- RunnableTask: a leaf action executed in-process, producing an optional output map
- FlowableTask: a control-flow action wrapping other tasks; never callable as a tool
"""

from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

# Fields carried by every task that identify it rather than parameterize it.
TASK_IDENTITY_FIELDS = ("id", "type", "description")


class TaskOutput(BaseModel):
    """Base class for structured task outputs."""

    def to_map(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Task(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Type name used in workflow definitions; defaults to the dotted class path.
    task_type: ClassVar[Optional[str]] = None
    # Human readable purpose of the task type, shown to the LLM when the task is bound as a tool.
    task_description: ClassVar[Optional[str]] = None

    id: str = Field(..., description="Unique identifier of the task inside its flow")
    type: str = Field(..., description="Registered type name of the task")
    description: Optional[str] = Field(None, description="Free-form description of this task instance")

    @classmethod
    def type_name(cls) -> str:
        return cls.task_type or f"{cls.__module__}.{cls.__name__}"

    @classmethod
    def parameter_schema(cls) -> Dict[str, Any]:
        """Return the JSON schema of the task parameters, identity fields excluded."""
        schema = cls.model_json_schema()
        properties = {
            name: prop for name, prop in schema.get("properties", {}).items()
            if name not in TASK_IDENTITY_FIELDS
        }
        required = [name for name in schema.get("required", []) if name not in TASK_IDENTITY_FIELDS]
        projected: Dict[str, Any] = {"type": "object", "properties": properties, "required": required}
        if "$defs" in schema:
            projected["$defs"] = schema["$defs"]
        return projected


class RunnableTask(Task):
    """A leaf task that can be executed directly."""

    def run(self, run_context) -> Optional[TaskOutput]:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources opened by ``run``; called even when ``run`` raised."""


class FlowableTask(Task):
    """A control-flow task grouping child tasks; only the flow executor can run it."""

    tasks: List[Dict[str, Any]] = Field(default_factory=list, description="Child task definitions")


TaskClass = Type[Task]
