# Execution context handed to tasks and tool binders, plus the turn-scoped resource holder.

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from bridge.models import Label

logger = logging.getLogger(__name__)


class FlowInfo(BaseModel):
    """Identity of the flow execution the current task runs in."""
    tenant_id: Optional[str] = Field(None, description="Tenant owning the execution")
    namespace: str = Field(..., description="Namespace of the running flow")
    flow_id: str = Field(..., description="Identifier of the running flow")
    execution_id: Optional[str] = Field(None, description="Identifier of the running execution")


@runtime_checkable
class Closeable(Protocol):
    def close(self) -> None:
        ...


class TurnScope:
    """
    Holds every resource opened during one conversation turn.

    Resources are released in reverse registration order when the scope exits,
    whether the turn completed or raised. A failing release is logged and the
    remaining releases still run.
    """

    def __init__(self):
        self._stack = ExitStack()

    def register(self, resource: Closeable, name: Optional[str] = None) -> Closeable:
        label = name or type(resource).__name__
        self._stack.callback(self._release, resource.close, label)
        return resource

    def callback(self, release: Callable[[], Any], name: str) -> None:
        self._stack.callback(self._release, release, name)

    @staticmethod
    def _release(release: Callable[[], Any], name: str) -> None:
        try:
            release()
            logger.debug(f"Released turn resource: {name}")
        except Exception as e:
            logger.error(f"Failed to release turn resource '{name}': {e}", exc_info=True)

    def close(self) -> None:
        self._stack.close()

    def __enter__(self) -> "TurnScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RunContext:
    """
    Runtime collaborators available to a task while it runs.

    The flow repository and the execution queue are only needed by the flow
    tool; tasks that never bind flows can leave them unset.
    """

    def __init__(
        self,
        flow_info: FlowInfo,
        labels: Optional[List[Label]] = None,
        flow_repository: Any = None,
        execution_queue: Any = None,
        working_dir: Optional[Path] = None,
    ):
        self.flow_info = flow_info
        self.labels = list(labels or [])
        self.flow_repository = flow_repository
        self.execution_queue = execution_queue
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.logger = logging.LoggerAdapter(
            logging.getLogger("bridge.run"),
            {"namespace": flow_info.namespace, "flow_id": flow_info.flow_id, "execution_id": flow_info.execution_id},
        )

    def resolve_path(self, path: str) -> Path:
        """Resolve a path inside the working directory, refusing to escape it."""
        root = self.working_dir.resolve()
        resolved = (root / path).resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f"Path '{path}' is outside of the working directory")
        return resolved
