# Base class of the external retrieval sources (web search, keyword search).

from abc import ABC, abstractmethod

from pydantic import BaseModel
from llama_index.core.retrievers import BaseRetriever


class ContentRetrieverProvider(BaseModel, ABC):
    """Capability to build a retriever for one run."""

    type: str

    @abstractmethod
    def content_retriever(self, run_context) -> BaseRetriever:
        ...
