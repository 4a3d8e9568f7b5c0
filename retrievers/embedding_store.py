# Retriever over an embedding store, bounded by a result count and a minimum similarity score.

import logging
from typing import List

from pydantic import BaseModel, Field
from llama_index.core.base.embeddings.base import BaseEmbedding
from llama_index.core.retrievers import BaseRetriever
from llama_index.core.schema import NodeWithScore, QueryBundle

from bridge.config import settings
from bridge.providers.embedding_stores import ScopedVectorStore

logger = logging.getLogger(__name__)


class MinScoreRetriever(BaseRetriever):
    """Drops the nodes of a wrapped retriever scoring below ``min_score``."""

    def __init__(self, retriever: BaseRetriever, min_score: float, **kwargs):
        self._retriever = retriever
        self.min_score = min_score
        super().__init__(**kwargs)

    def _filter(self, nodes: List[NodeWithScore]) -> List[NodeWithScore]:
        kept = [node for node in nodes if node.score is None or node.score >= self.min_score]
        if len(kept) != len(nodes):
            logger.debug(f"Dropped {len(nodes) - len(kept)} node(s) scoring below {self.min_score}")
        return kept

    def _retrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        return self._filter(self._retriever.retrieve(query_bundle))

    async def _aretrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        return self._filter(await self._retriever.aretrieve(query_bundle))


class EmbeddingStoreRetriever(BaseModel):
    """Configuration of the embedding-backed retrieval source. The store is never modified by retrieval."""

    max_results: int = Field(default_factory=lambda: settings.retriever_max_results, ge=1)
    min_score: float = Field(default_factory=lambda: settings.retriever_min_score, ge=0.0, le=1.0)

    def build(self, store: ScopedVectorStore, embed_model: BaseEmbedding) -> BaseRetriever:
        index = store.index(embed_model)
        retriever = index.as_retriever(similarity_top_k=self.max_results)
        logger.info(f"Embedding store retriever created on {store.name} (max_results={self.max_results}, min_score={self.min_score})")
        return MinScoreRetriever(retriever, self.min_score)
