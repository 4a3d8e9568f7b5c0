# Built-in tasks available to every workflow definition.

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from pydantic import Field

from bridge.config import settings
from bridge.workflow.tasks import FlowableTask, RunnableTask, TaskOutput

logger = logging.getLogger(__name__)


class ValueOutput(TaskOutput):
    value: Any = Field(None, description="The returned value")


class Return(RunnableTask):
    task_type = "core.Return"
    task_description = "Return a value. Useful to expose a computed or templated value to the caller."

    format: str = Field(..., description="The value to return")

    def run(self, run_context) -> ValueOutput:
        return ValueOutput(value=self.format)


class LogLevel(str, Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


_PYTHON_LEVELS = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class Log(RunnableTask):
    task_type = "core.Log"
    task_description = "Log a message in the execution logs."

    message: str = Field(..., description="The message to log")
    level: LogLevel = Field(LogLevel.INFO, description="The log level")

    def run(self, run_context) -> None:
        run_context.logger.log(_PYTHON_LEVELS[self.level], self.message)
        return None


class HttpResponseOutput(TaskOutput):
    code: int = Field(..., description="HTTP status code")
    headers: Dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: Optional[str] = Field(None, description="Response body")


class HttpRequest(RunnableTask):
    task_type = "core.HttpRequest"
    task_description = "Make an HTTP request to a server and return the response status, headers and body."

    uri: str = Field(..., description="The fully-qualified URI to call")
    method: str = Field("GET", description="The HTTP method")
    body: Optional[str] = Field(None, description="The request body")
    headers: Dict[str, str] = Field(default_factory=dict, description="The request headers")
    timeout: float = Field(default_factory=lambda: settings.web_search_timeout, description="Request timeout in seconds")

    def run(self, run_context) -> HttpResponseOutput:
        run_context.logger.debug(f"HTTP {self.method} {self.uri}")
        with httpx.Client(timeout=self.timeout) as client:
            response = client.request(self.method, self.uri, content=self.body, headers=self.headers)
            response.raise_for_status()
        return HttpResponseOutput(code=response.status_code, headers=dict(response.headers), body=response.text)


class Sequential(FlowableTask):
    task_type = "core.Sequential"
    task_description = "Run child tasks one after the other."


BUILTIN_TASKS = [Return, Log, HttpRequest, Sequential]
