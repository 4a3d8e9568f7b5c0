"""
Flow Tool - Sub-flows as LLM Tools

Exposes flows as tools that trigger a new execution. Two binding modes exist:

- explicit: namespace and flow id are fixed in the tool definition, one tool
  per flow, named after the flow identity
- open: a single generic tool where the model chooses namespace and flow id

Calling the tool submits an execution to the execution queue and returns the
execution descriptor immediately; the flow itself runs asynchronously.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from bridge.exceptions import ToolArgumentsError, ToolConfigurationError, ToolExecutionError
from bridge.models import Label
from bridge.workflow.flows import Execution, FlowDefinition
from tools.labels import effective_labels
from tools.task_tool import tool_name_part
from tools.tool_models import (
    BoundTool,
    FlowReference,
    ToolInvocationRequest,
    ToolParameter,
    ToolParameterType,
    ToolSpecification,
    build_parameter_schema,
)

logger = logging.getLogger(__name__)

OPEN_FLOW_TOOL_NAME = "workflow_flow"
FLOW_TOOL_PREFIX = "workflow_flow_"

DATETIME_ADAPTER = TypeAdapter(datetime)

OPEN_FLOW_TOOL_DESCRIPTION = (
    "This tool allows to execute a workflow also called a flow. "
    "This tool will respond with the flow execution information. "
    "The namespace and the id of the flow must be passed as tool parameters."
)

LABELS_PARAMETER = ToolParameter(
    name="labels",
    type=ToolParameterType.ARRAY,
    description="The list of labels.",
    items=[
        ToolParameter(name="key", type=ToolParameterType.STRING, description="The label key."),
        ToolParameter(name="value", type=ToolParameterType.STRING, description="The label value."),
    ],
)

SCHEDULE_DATE_PARAMETER = ToolParameter(
    name="scheduleDate",
    type=ToolParameterType.STRING,
    description=(
        "The scheduled date of the flow. Use it only if the flow needs to be executed later and not immediately. "
        "It should be an ISO8601 formatted zoned date time."
    ),
)

INPUTS_PARAMETER = ToolParameter(
    name="inputs",
    type=ToolParameterType.ARRAY,
    description="The list of inputs.",
    items=[
        ToolParameter(name="id", type=ToolParameterType.STRING, description="The input id."),
        ToolParameter(name="value", type=ToolParameterType.STRING, description="The input value."),
    ],
)


def flow_tool_name(namespace: str, flow_id: str) -> str:
    return f"{FLOW_TOOL_PREFIX}{tool_name_part(namespace.replace('.', '_'))}_{tool_name_part(flow_id)}"


class FlowToolExecutor:
    """
    Submits one execution per tool call.

    In explicit mode ``flow`` is the flow resolved at bind time; in open mode it
    is None and the flow is looked up from the call arguments.
    """

    def __init__(
        self,
        specification: ToolSpecification,
        reference: FlowReference,
        run_context,
        flow: Optional[FlowDefinition] = None,
    ):
        self.specification = specification
        self.reference = reference
        self.run_context = run_context
        self.flow = flow

    def _argument_error(self, message: str, field: Optional[str] = None) -> ToolArgumentsError:
        return ToolArgumentsError(message, tool_name=self.specification.name, field=field)

    def resolve_flow(self, arguments: Dict[str, Any]) -> FlowDefinition:
        if self.flow is not None:
            return self.flow

        namespace = arguments.get("namespace")
        flow_id = arguments.get("flowId")
        if not namespace:
            raise self._argument_error("You need to provide the 'namespace' of the flow.", field="namespace")
        if not flow_id:
            raise self._argument_error("You need to provide the 'flowId' of the flow.", field="flowId")

        revision = arguments.get("revision")
        if revision is not None:
            try:
                revision = int(revision)
            except (TypeError, ValueError) as e:
                raise self._argument_error(f"Invalid revision '{revision}'.", field="revision") from e

        flow = self.run_context.flow_repository.find_by_id(
            namespace, flow_id, revision, tenant_id=self.run_context.flow_info.tenant_id
        )
        if flow is None:
            raise self._argument_error(f"Unable to find flow '{flow_id}' in namespace '{namespace}'.", field="flowId")
        return flow

    def parse_schedule_date(self, arguments: Dict[str, Any]) -> Optional[datetime]:
        value = arguments.get("scheduleDate")
        if not value:
            return self.reference.schedule_date
        try:
            return DATETIME_ADAPTER.validate_python(value)
        except ValidationError as e:
            raise self._argument_error(f"Invalid ISO8601 scheduleDate '{value}'.", field="scheduleDate") from e

    def parse_labels(self, arguments: Dict[str, Any]) -> List[Label]:
        labels: List[Label] = []
        for raw in arguments.get("labels") or []:
            try:
                label = Label.model_validate(raw)
            except ValidationError as e:
                raise self._argument_error(f"Invalid label {raw!r}, expected an object with 'key' and 'value'.", field="labels") from e
            if label.is_system():
                raise self._argument_error(f"The label key '{label.key}' is reserved.", field="labels")
            labels.append(label)
        return labels

    def parse_inputs(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        raw_inputs = arguments.get("inputs") or []
        if isinstance(raw_inputs, dict):
            return dict(raw_inputs)

        inputs: Dict[str, Any] = {}
        for raw in raw_inputs:
            if not isinstance(raw, dict) or "id" not in raw:
                raise self._argument_error(f"Invalid input {raw!r}, expected an object with 'id' and 'value'.", field="inputs")
            inputs[raw["id"]] = raw.get("value")
        return inputs

    def execute(self, request: ToolInvocationRequest) -> str:
        self.run_context.logger.debug(f"Tool execution request: {request}")
        arguments = request.parsed_arguments()

        flow = self.resolve_flow(arguments)
        schedule_date = self.parse_schedule_date(arguments)

        labels = effective_labels(
            self.run_context.labels,
            flow.label_keys(),
            self.reference.inherit_labels,
            self.reference.labels,
            self.parse_labels(arguments),
        )

        inputs = {**self.reference.inputs, **self.parse_inputs(arguments)}
        # fail the tool call instead of triggering a flow that would fail anyway
        for flow_input in flow.inputs:
            if flow_input.is_mandatory() and flow_input.id not in inputs:
                raise self._argument_error(
                    f"You need to provide an input with the id '{flow_input.id}'.", field=flow_input.id
                )

        execution = Execution.new_execution(flow, inputs, labels, schedule_date)
        try:
            self.run_context.execution_queue.emit(execution)
        except Exception as e:
            raise ToolExecutionError(
                f"Unable to submit an execution of flow '{flow.namespace}.{flow.id}': {e}",
                tool_name=self.specification.name,
            ) from e

        self.run_context.logger.info(f"Submitted execution {execution.id} of flow {flow.namespace}.{flow.id}")
        return execution.model_dump_json()


class FlowToolProvider(BaseModel):
    """Tool provider exposing flows, one tool per flow reference."""

    type: Literal["tools.FlowTool"] = "tools.FlowTool"
    flows: List[FlowReference] = Field(..., min_length=1, description="Flows callable as tools")

    def bind(self, reference: FlowReference, run_context) -> BoundTool:
        if reference.namespace is not None and reference.flow_id is None:
            raise ToolConfigurationError("Flow ID must be specified when you set the namespace")
        if reference.namespace is None and reference.flow_id is not None:
            raise ToolConfigurationError("Namespace must be specified when you set the flow ID")

        reserved = [label.key for label in reference.labels if label.is_system()]
        if reserved:
            raise ToolConfigurationError(f"System labels cannot be set on a flow tool: {reserved}")
        if run_context.execution_queue is None:
            raise ToolConfigurationError("No execution queue is available to submit flow executions")
        if run_context.flow_repository is None:
            raise ToolConfigurationError("No flow repository is available to resolve flows")

        if reference.namespace is not None:
            return self._bind_defined(reference, run_context)
        return self._bind_open(reference, run_context)

    def _bind_defined(self, reference: FlowReference, run_context) -> BoundTool:
        flow = run_context.flow_repository.find_by_id(
            reference.namespace, reference.flow_id, reference.revision, tenant_id=run_context.flow_info.tenant_id
        )
        if flow is None:
            raise ToolConfigurationError(
                f"Unable to find flow at '{reference.flow_id}' in namespace '{reference.namespace}'"
            )

        description = reference.description or flow.description
        if not description:
            raise ToolConfigurationError(
                "You must provide a description in the tool's description property or in the flow description"
            )

        parameters = [LABELS_PARAMETER, SCHEDULE_DATE_PARAMETER]
        if flow.inputs:
            inputs_required = any(
                flow_input.is_mandatory() and flow_input.id not in reference.inputs for flow_input in flow.inputs
            )
            parameters.append(INPUTS_PARAMETER.model_copy(update={"required": inputs_required}))

        specification = ToolSpecification(
            name=flow_tool_name(flow.namespace, flow.id),
            description=description,
            parameters=build_parameter_schema(parameters),
        )
        run_context.logger.debug(f"Tool specification: {specification}")
        return BoundTool(
            specification=specification,
            executor=FlowToolExecutor(specification, reference, run_context, flow=flow),
        )

    def _bind_open(self, reference: FlowReference, run_context) -> BoundTool:
        parameters = [
            ToolParameter(name="namespace", type=ToolParameterType.STRING, description="The namespace of the flow.", required=True),
            ToolParameter(name="flowId", type=ToolParameterType.STRING, description="The id of the flow.", required=True),
            ToolParameter(name="revision", type=ToolParameterType.INTEGER, description="The revision of the flow."),
            INPUTS_PARAMETER,
            LABELS_PARAMETER,
            SCHEDULE_DATE_PARAMETER,
        ]
        specification = ToolSpecification(
            name=OPEN_FLOW_TOOL_NAME,
            description=reference.description or OPEN_FLOW_TOOL_DESCRIPTION,
            parameters=build_parameter_schema(parameters),
        )
        run_context.logger.debug(f"Tool specification: {specification}")
        return BoundTool(
            specification=specification,
            executor=FlowToolExecutor(specification, reference, run_context),
        )

    def tools(self, run_context) -> Dict[str, BoundTool]:
        bound: Dict[str, BoundTool] = {}
        for reference in self.flows:
            tool = self.bind(reference, run_context)
            if tool.name in bound:
                raise ToolConfigurationError(f"Duplicate tool name '{tool.name}'")
            bound[tool.name] = tool
        return bound

    def close(self, run_context) -> None:
        """Flow tools hold no resource: each call is a single queue submission."""
        return None
