"""
Error taxonomy shared by the tool binders, the invokers and the retrieval composer.

Configuration errors are raised while tools and retrievers are being built and
are never retried. Argument and execution errors are raised while a bound tool
is being called; all of them terminate the current tool call and propagate to
the chat loop.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for every error raised by this package."""


class ToolConfigurationError(BridgeError):
    """Raised at bind time when an action cannot be exposed as a tool."""


class UnsupportedActionError(ToolConfigurationError):
    """Raised when an action is not a directly runnable leaf action."""

    def __init__(self, action_id: str, action_type: str):
        self.action_id = action_id
        self.action_type = action_type
        super().__init__(
            f"Only runnable tasks can be called as tools but '{action_id}' ({action_type}) is not a runnable task."
        )


class RetrievalConfigurationError(ToolConfigurationError):
    """Raised when a retriever cannot be composed from the configured sources."""


class ToolArgumentsError(BridgeError):
    """Raised when the arguments of a tool call cannot be used to run the action."""

    def __init__(self, message: str, *, tool_name: str, field: Optional[str] = None):
        self.tool_name = tool_name
        self.field = field
        self.message = message
        super().__init__(f"Tool '{tool_name}': {message}")


class ToolExecutionError(BridgeError):
    """Raised when the underlying action fails or its submission is rejected."""

    def __init__(self, message: str, *, tool_name: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"Tool '{tool_name}': {message}")


class ProviderConfigurationError(BridgeError):
    """Raised when a model provider or an embedding store cannot be set up."""


class RetrievalError(BridgeError):
    """Raised when a retrieval source fails to answer a query."""
