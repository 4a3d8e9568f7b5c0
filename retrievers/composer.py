"""
Retrieval Composer

Combines the configured retrieval sources into the single retriever handed to
the chat pipeline. The embedding-backed source (when configured) always comes
first, followed by the external content retrievers in configuration order.

- no source: configuration error
- one source: returned as-is
- two or more: a FanOutRetriever sending the query to every source
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence

from llama_index.core.retrievers import BaseRetriever
from llama_index.core.schema import NodeWithScore, QueryBundle

from bridge.exceptions import RetrievalConfigurationError
from bridge.models import RetrievedContent

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    CONCATENATE = "CONCATENATE"
    DEDUPLICATE = "DEDUPLICATE"


def merge_results(results: Sequence[List[NodeWithScore]], policy: MergePolicy) -> List[NodeWithScore]:
    """Flatten per-source results in source order, optionally dropping repeated content."""
    merged: List[NodeWithScore] = [node for nodes in results for node in nodes]
    if policy == MergePolicy.CONCATENATE:
        return merged

    seen = set()
    unique: List[NodeWithScore] = []
    for node in merged:
        content = node.node.get_content()
        if content in seen:
            continue
        seen.add(content)
        unique.append(node)
    return unique


class FanOutRetriever(BaseRetriever):
    """
    Broadcasts a query to several retrievers and merges their results.

    Results keep the order of the sources; no re-ranking happens. A failing
    source fails the whole retrieval.
    """

    def __init__(
        self,
        retrievers: List[BaseRetriever],
        merge_policy: MergePolicy = MergePolicy.CONCATENATE,
        **kwargs,
    ):
        if len(retrievers) < 2:
            raise RetrievalConfigurationError("A fan-out retriever needs at least two retrievers")
        self._retrievers = list(retrievers)
        self.merge_policy = merge_policy
        super().__init__(**kwargs)

    @property
    def retrievers(self) -> List[BaseRetriever]:
        return list(self._retrievers)

    def _retrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        results = [retriever.retrieve(query_bundle) for retriever in self._retrievers]
        logger.debug(f"Fan-out retrieval returned {[len(nodes) for nodes in results]} node(s) per source")
        return merge_results(results, self.merge_policy)

    async def _aretrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        results = await asyncio.gather(*(retriever.aretrieve(query_bundle) for retriever in self._retrievers))
        logger.debug(f"Fan-out retrieval returned {[len(nodes) for nodes in results]} node(s) per source")
        return merge_results(results, self.merge_policy)


def compose_retriever(
    embedding_retriever: Optional[BaseRetriever],
    content_retrievers: Optional[List[BaseRetriever]] = None,
    merge_policy: MergePolicy = MergePolicy.CONCATENATE,
) -> BaseRetriever:
    """
    Build the retriever used for one chat turn.

    Args:
        embedding_retriever: Retriever backed by the embedding store, if any
        content_retrievers: External retrievers (web search, keyword search)
        merge_policy: How fan-out results are merged

    Returns:
        The single configured retriever, or a FanOutRetriever over all of them

    Raises:
        RetrievalConfigurationError: If no retriever is configured
    """
    sources: List[BaseRetriever] = []
    if embedding_retriever is not None:
        sources.append(embedding_retriever)
    sources.extend(content_retrievers or [])

    if not sources:
        raise RetrievalConfigurationError(
            "No retriever is configured: set an embedding store or at least one content retriever"
        )
    if len(sources) == 1:
        return sources[0]

    logger.info(f"Composing {len(sources)} retrievers: {[type(source).__name__ for source in sources]}")
    return FanOutRetriever(sources, merge_policy=merge_policy)


def to_retrieved_contents(nodes: List[NodeWithScore]) -> List[RetrievedContent]:
    return [
        RetrievedContent(content=node.node.get_content(), score=node.score, metadata=dict(node.node.metadata or {}))
        for node in nodes
    ]
