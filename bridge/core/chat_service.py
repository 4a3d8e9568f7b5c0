# Service for RAG chat completion: retrieval, tool calls, and LLM interaction for one conversation turn.

import logging
import time
from typing import Dict, List, Optional, Union

from pydantic import Field, field_validator
from typing_extensions import Annotated
from llama_index.core.llms import ChatMessage as LlamaChatMessage, MessageRole
from llama_index.core.retrievers import BaseRetriever

from bridge.config import settings
from bridge.core.run_context import Closeable, TurnScope
from bridge.exceptions import ProviderConfigurationError, ToolArgumentsError
from bridge.models import ChatMessage, ChatMessageType, RetrievedContent, ToolExecution
from bridge.providers.embedding_stores import EmbeddingStoreConfig
from bridge.providers.models import ModelProviderConfig, embedding_dimension
from bridge.workflow.tasks import RunnableTask, TaskOutput
from retrievers import ContentRetrieverConfig, EmbeddingStoreRetriever, MergePolicy, compose_retriever, to_retrieved_contents
from tools.flow_tool import FlowToolProvider
from tools.llama_tools import RegistryTool, to_llama_tools
from tools.task_tool import TaskToolProvider
from tools.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

ToolProviderConfig = Annotated[Union[TaskToolProvider, FlowToolProvider], Field(discriminator="type")]

CONTEXT_PROMPT_TEMPLATE = "{question}\n\nAnswer using the following information:\n{context}"

_ROLES = {
    ChatMessageType.SYSTEM: MessageRole.SYSTEM,
    ChatMessageType.USER: MessageRole.USER,
    ChatMessageType.AI: MessageRole.ASSISTANT,
}


def augment_prompt(question: str, sources: List[RetrievedContent]) -> str:
    if not sources:
        return question
    context = "\n\n".join(source.content for source in sources)
    return CONTEXT_PROMPT_TEMPLATE.format(question=question, context=context)


class ChatCompletionOutput(TaskOutput):
    text_output: str = Field(..., description="Answer generated by the chat model")
    sources: List[RetrievedContent] = Field(default_factory=list, description="Retrieved content used as context")
    tool_executions: List[ToolExecution] = Field(default_factory=list, description="Tool calls made during the turn")
    request_duration: float = Field(..., description="Duration of the turn in seconds")


class ChatCompletion(RunnableTask):
    """
    Answer the last user message with retrieval augmented generation.

    Content is retrieved from the embedding store and the content retrievers,
    appended to the user message, and sent to the chat model together with
    the conversation and the configured tools. Every resource opened for the
    turn is released when it ends, whether it succeeded or failed.
    """

    task_type = "rag.ChatCompletion"

    messages: List[ChatMessage] = Field(..., description="Conversation, the last message must come from the user")
    chat_provider: ModelProviderConfig = Field(..., description="Provider of the chat model")
    embedding_provider: Optional[ModelProviderConfig] = Field(
        None, description="Provider of the embedding model, defaults to the chat provider"
    )
    embeddings: Optional[EmbeddingStoreConfig] = Field(
        None, description="Embedding store, optional when at least one content retriever is set"
    )
    content_retriever_configuration: EmbeddingStoreRetriever = Field(default_factory=EmbeddingStoreRetriever)
    content_retrievers: List[ContentRetrieverConfig] = Field(default_factory=list, description="Additional retrieval sources")
    merge_policy: MergePolicy = Field(MergePolicy.CONCATENATE, description="How results of several sources are merged")
    tools: List[ToolProviderConfig] = Field(default_factory=list, description="Tools the model may call")
    max_tool_rounds: int = Field(default_factory=lambda: settings.max_tool_rounds, ge=1)

    @field_validator("messages")
    @classmethod
    def _check_messages(cls, messages: List[ChatMessage]) -> List[ChatMessage]:
        if not messages:
            raise ValueError("At least one user message must be provided.")
        if messages[-1].type != ChatMessageType.USER:
            raise ValueError("The last message must be a user message.")
        if sum(1 for message in messages if message.type == ChatMessageType.SYSTEM) > 1:
            raise ValueError("There can be only one system message.")
        return messages

    def build_retriever(self, run_context, scope: TurnScope) -> BaseRetriever:
        content_retrievers = []
        for provider in self.content_retrievers:
            retriever = provider.content_retriever(run_context)
            # sources holding a connection pool are released with the turn
            if isinstance(retriever, Closeable):
                scope.register(retriever, provider.type)
            content_retrievers.append(retriever)

        embedding_retriever = None
        if self.embeddings is not None:
            provider = self.embedding_provider or self.chat_provider
            embed_model = provider.embedding_model(run_context)
            dimension = embedding_dimension(embed_model)
            store = scope.register(self.embeddings.embedding_store(run_context, dimension, False), "embedding store")
            embedding_retriever = self.content_retriever_configuration.build(store, embed_model)

        return compose_retriever(embedding_retriever, content_retrievers, self.merge_policy)

    def build_history(self, sources: List[RetrievedContent]) -> List[LlamaChatMessage]:
        history = [LlamaChatMessage(role=_ROLES[message.type], content=message.content) for message in self.messages[:-1]]
        history.append(LlamaChatMessage(role=MessageRole.USER, content=augment_prompt(self.messages[-1].content, sources)))
        return history

    def complete(self, run_context, llm, history: List[LlamaChatMessage], tools: List[RegistryTool]) -> str:
        if not tools:
            return llm.chat(history).message.content or ""

        if not getattr(llm.metadata, "is_function_calling_model", False):
            raise ProviderConfigurationError(f"The chat model '{llm.metadata.model_name}' does not support tool calling")

        tools_by_name: Dict[str, RegistryTool] = {tool.metadata.name: tool for tool in tools}
        for _ in range(self.max_tool_rounds):
            response = llm.chat_with_tools(tools, chat_history=list(history), allow_parallel_tool_calls=True)
            tool_calls = llm.get_tool_calls_from_response(response, error_on_no_tool_call=False)
            if not tool_calls:
                return response.message.content or ""

            history.append(response.message)
            for tool_call in tool_calls:
                tool = tools_by_name.get(tool_call.tool_name)
                if tool is None:
                    raise ToolArgumentsError(
                        f"Tool not found. Available tools: {list(tools_by_name)}", tool_name=tool_call.tool_name
                    )
                output = tool.invoke(tool_call.tool_id, tool_call.tool_kwargs)
                history.append(
                    LlamaChatMessage(
                        role=MessageRole.TOOL,
                        content=str(output.content),
                        additional_kwargs={"tool_call_id": tool_call.tool_id, "name": tool_call.tool_name},
                    )
                )

        run_context.logger.warning(f"Reached {self.max_tool_rounds} tool round(s), asking for a final answer")
        return llm.chat(history).message.content or ""

    def run(self, run_context) -> ChatCompletionOutput:
        started = time.monotonic()
        tool_executions: List[ToolExecution] = []

        with TurnScope() as scope:
            retriever = self.build_retriever(run_context, scope)

            registry = ToolRegistry.from_providers(self.tools, run_context)
            scope.callback(registry.close, "tool registry")
            tools = to_llama_tools(registry, tool_executions)

            llm = self.chat_provider.chat_model(run_context)

            question = self.messages[-1].content
            sources = to_retrieved_contents(retriever.retrieve(question))
            run_context.logger.info(f"Retrieved {len(sources)} content(s) for the user message")

            text_output = self.complete(run_context, llm, self.build_history(sources), tools)

        run_context.logger.debug(f"Generated RAG completion: {text_output}")
        return ChatCompletionOutput(
            text_output=text_output,
            sources=sources,
            tool_executions=tool_executions,
            request_duration=time.monotonic() - started,
        )
