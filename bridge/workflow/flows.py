"""
Flow Data Models and Runtime Collaborators

Defines the flow definition as stored by the platform, the execution record
submitted when a flow is triggered, and the two boundary collaborators the
flow tool talks to: the flow repository (definition lookup) and the
execution queue (fire-and-forget intake).
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from bridge.models import Label

logger = logging.getLogger(__name__)


class FlowInputType(str, Enum):
    STRING = "STRING"
    INT = "INT"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"
    DATETIME = "DATETIME"


class FlowInput(BaseModel):
    id: str = Field(..., description="Input identifier")
    type: FlowInputType = Field(FlowInputType.STRING, description="Input type")
    description: Optional[str] = Field(None, description="Human-readable description of the input")
    required: bool = Field(True, description="Whether a value must be provided")
    defaults: Optional[Any] = Field(None, description="Default value used when none is provided")

    def is_mandatory(self) -> bool:
        """An input is mandatory when it is required and has no default value."""
        return self.required and self.defaults is None


class FlowDefinition(BaseModel):
    namespace: str = Field(..., description="Namespace of the flow")
    id: str = Field(..., description="Identifier of the flow inside its namespace")
    revision: int = Field(1, description="Revision of the flow definition")
    description: Optional[str] = Field(None, description="Description of what the flow does")
    inputs: List[FlowInput] = Field(default_factory=list, description="Declared flow inputs")
    labels: List[Label] = Field(default_factory=list, description="Labels statically declared on the flow")
    tenant_id: Optional[str] = Field(None, description="Tenant owning the flow")

    def label_keys(self) -> set:
        return {label.key for label in self.labels}


class ExecutionState(str, Enum):
    CREATED = "CREATED"


class Execution(BaseModel):
    """Execution record submitted to the execution queue."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Execution identifier")
    tenant_id: Optional[str] = Field(None, description="Tenant owning the execution")
    namespace: str = Field(..., description="Namespace of the executed flow")
    flow_id: str = Field(..., description="Identifier of the executed flow")
    flow_revision: Optional[int] = Field(None, description="Revision of the executed flow")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Effective execution inputs")
    labels: List[Label] = Field(default_factory=list, description="Effective execution labels")
    schedule_date: Optional[datetime] = Field(None, description="Date at which the execution must start")
    state: ExecutionState = Field(ExecutionState.CREATED, description="Current execution state")
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new_execution(
        cls,
        flow: FlowDefinition,
        inputs: Dict[str, Any],
        labels: List[Label],
        schedule_date: Optional[datetime] = None,
    ) -> "Execution":
        return cls(
            tenant_id=flow.tenant_id,
            namespace=flow.namespace,
            flow_id=flow.id,
            flow_revision=flow.revision,
            inputs=inputs,
            labels=labels,
            schedule_date=schedule_date,
        )


class FlowRepository(ABC):
    """Lookup of flow definitions by identity."""

    @abstractmethod
    def find_by_id(
        self,
        namespace: str,
        flow_id: str,
        revision: Optional[int] = None,
        tenant_id: Optional[str] = None,
    ) -> Optional[FlowDefinition]:
        ...


class InMemoryFlowRepository(FlowRepository):
    """Flow repository backed by a dictionary, keeping every revision."""

    def __init__(self, flows: Optional[List[FlowDefinition]] = None):
        self._flows: Dict[Tuple[Optional[str], str, str], Dict[int, FlowDefinition]] = {}
        for flow in flows or []:
            self.save(flow)

    def save(self, flow: FlowDefinition) -> FlowDefinition:
        self._flows.setdefault((flow.tenant_id, flow.namespace, flow.id), {})[flow.revision] = flow
        return flow

    def find_by_id(self, namespace, flow_id, revision=None, tenant_id=None):
        revisions = self._flows.get((tenant_id, namespace, flow_id))
        if not revisions:
            return None
        if revision is None:
            return revisions[max(revisions)]
        return revisions.get(revision)


class ExecutionQueue(ABC):
    """Fire-and-forget intake for new executions."""

    @abstractmethod
    def emit(self, execution: Execution) -> None:
        ...


class InMemoryExecutionQueue(ExecutionQueue):
    """Execution queue keeping emitted executions in memory, in emission order."""

    def __init__(self):
        self._lock = threading.Lock()
        self._executions: List[Execution] = []

    def emit(self, execution: Execution) -> None:
        with self._lock:
            self._executions.append(execution)
        logger.info(f"Execution {execution.id} queued for flow {execution.namespace}.{execution.flow_id}")

    @property
    def executions(self) -> List[Execution]:
        with self._lock:
            return list(self._executions)
