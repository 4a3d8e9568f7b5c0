"""
Retrieval sources and their composition.

This package exposes the retrieval sources that can feed a RAG chat turn and
the composer merging them into the single retriever the chat pipeline uses.
"""

from typing import Union

from pydantic import Field
from typing_extensions import Annotated

from .base import ContentRetrieverProvider
from .composer import FanOutRetriever, MergePolicy, compose_retriever, to_retrieved_contents
from .embedding_store import EmbeddingStoreRetriever, MinScoreRetriever
from .keyword import BM25Search
from .sql_database import DatabaseType, SqlDatabaseContentRetriever, SqlDatabaseRetriever
from .web_search import GoogleCustomWebSearch, TavilyWebSearch

ContentRetrieverConfig = Annotated[
    Union[TavilyWebSearch, GoogleCustomWebSearch, BM25Search, SqlDatabaseRetriever], Field(discriminator="type")
]

__all__ = [
    "ContentRetrieverProvider",
    "ContentRetrieverConfig",
    "FanOutRetriever",
    "MergePolicy",
    "compose_retriever",
    "to_retrieved_contents",
    "EmbeddingStoreRetriever",
    "MinScoreRetriever",
    "BM25Search",
    "TavilyWebSearch",
    "GoogleCustomWebSearch",
    "DatabaseType",
    "SqlDatabaseContentRetriever",
    "SqlDatabaseRetriever",
]
