"""Pytest configuration and fixtures."""

import os

import pytest
from pydantic import Field

# Keep tests independent from a developer .env
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TAVILY_API_KEY", "test-tavily-key")

from bridge.core.run_context import FlowInfo, RunContext
from bridge.models import Label
from bridge.workflow.builtin_tasks import ValueOutput
from bridge.workflow.flows import FlowDefinition, FlowInput, InMemoryExecutionQueue, InMemoryFlowRepository
from bridge.workflow.task_registry import TaskRegistry
from bridge.workflow.tasks import FlowableTask, RunnableTask


class Greet(RunnableTask):
    task_type = "test.Greet"
    task_description = "Greet someone by name."

    name: str = Field(..., description="Who to greet")
    greeting: str = Field("Hello", description="Greeting word")
    punctuation: str = Field("!", description="Trailing punctuation")

    def run(self, run_context) -> ValueOutput:
        return ValueOutput(value=f"{self.greeting} {self.name}{self.punctuation}")


class Silent(RunnableTask):
    task_type = "test.Silent"
    task_description = "Do something without output."

    def run(self, run_context) -> None:
        return None


class Failing(RunnableTask):
    task_type = "test.Failing"
    task_description = "Always fails."

    reason: str = Field("boom", description="Failure message")

    def run(self, run_context):
        raise RuntimeError(self.reason)


class Numeric(RunnableTask):
    task_type = "test.Numeric"
    task_description = "Return a bare number."

    def run(self, run_context):
        return 42


class Undocumented(RunnableTask):
    task_type = "test.Undocumented"

    value: str = Field("", description="Any value")

    def run(self, run_context) -> None:
        return None


class Group(FlowableTask):
    task_type = "test.Group"
    task_description = "Group child tasks."


@pytest.fixture
def task_registry():
    registry = TaskRegistry()
    for task_class in (Greet, Silent, Failing, Numeric, Undocumented, Group):
        registry.register_task(task_class)
    return registry


@pytest.fixture
def execution_labels():
    return [
        Label(key="system.correlationId", value="corr-1"),
        Label(key="team", value="data"),
        Label(key="env", value="prod"),
    ]


@pytest.fixture
def flow_repository():
    return InMemoryFlowRepository([
        FlowDefinition(
            namespace="company.team",
            id="report",
            description="Build the weekly report.",
            inputs=[
                FlowInput(id="week"),
                FlowInput(id="format", required=False),
                FlowInput(id="audience", defaults="internal"),
            ],
            labels=[Label(key="env", value="dev")],
        ),
        FlowDefinition(namespace="company.team", id="cleanup", description="Remove temporary files."),
        FlowDefinition(namespace="company.team", id="undescribed"),
    ])


@pytest.fixture
def execution_queue():
    return InMemoryExecutionQueue()


@pytest.fixture
def run_context(execution_labels, flow_repository, execution_queue, tmp_path):
    return RunContext(
        FlowInfo(namespace="company.team", flow_id="caller", execution_id="exec-0"),
        labels=execution_labels,
        flow_repository=flow_repository,
        execution_queue=execution_queue,
        working_dir=tmp_path,
    )
