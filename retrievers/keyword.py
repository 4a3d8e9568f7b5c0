# Keyword retrieval source: BM25 ranking over documents given inline in the configuration.

import logging
from typing import List, Literal

from pydantic import Field
from llama_index.core.retrievers import BaseRetriever
from llama_index.core.schema import TextNode
from llama_index.retrievers.bm25 import BM25Retriever

from bridge.config import settings
from bridge.models import InlineDocument
from retrievers.base import ContentRetrieverProvider

logger = logging.getLogger(__name__)


class BM25Search(ContentRetrieverProvider):
    type: Literal["BM25Search"] = "BM25Search"
    documents: List[InlineDocument] = Field(..., min_length=1, description="Documents searched by keyword")
    max_results: int = Field(default_factory=lambda: settings.keyword_max_results, ge=1)

    def content_retriever(self, run_context) -> BaseRetriever:
        nodes = [TextNode(text=document.content, metadata=dict(document.metadata)) for document in self.documents]
        # the BM25 engine refuses to return more results than it has documents
        top_k = min(self.max_results, len(nodes))
        retriever = BM25Retriever.from_defaults(nodes=nodes, similarity_top_k=top_k)
        run_context.logger.info(f"BM25Retriever created from {len(nodes)} document(s) with similarity_top_k={top_k}")
        return retriever
