"""
Web search retrieval sources.

Each search hit becomes one text node whose content is the page title followed
by the result snippet; the URL and title are kept as node metadata. Search
engines are queried over HTTP with httpx.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import Field
from llama_index.core.retrievers import BaseRetriever
from llama_index.core.schema import NodeWithScore, QueryBundle, TextNode

from bridge.config import settings
from bridge.exceptions import ProviderConfigurationError, RetrievalError
from retrievers.base import ContentRetrieverProvider

logger = logging.getLogger(__name__)

# Google Custom Search returns at most 10 results per request.
GOOGLE_MAX_RESULTS = 10


def search_result_node(title: Optional[str], url: Optional[str], snippet: Optional[str], score: Optional[float] = None) -> NodeWithScore:
    content = "\n".join(part for part in (title, snippet) if part)
    metadata = {"url": url, "title": title}
    return NodeWithScore(node=TextNode(text=content, metadata={k: v for k, v in metadata.items() if v}), score=score)


class WebSearchRetriever(BaseRetriever):
    """Base retriever sending one search request per query."""

    engine_name = "web"

    def __init__(
        self,
        max_results: int,
        timeout: float,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        self.max_results = max_results
        self.timeout = timeout
        self._transport = transport
        self._async_transport = async_transport
        super().__init__(**kwargs)

    def build_request(self, client, query: str) -> httpx.Request:
        raise NotImplementedError

    def parse_results(self, payload: Dict[str, Any]) -> List[NodeWithScore]:
        raise NotImplementedError

    def _handle(self, response: httpx.Response) -> List[NodeWithScore]:
        response.raise_for_status()
        nodes = self.parse_results(response.json())[: self.max_results]
        logger.info(f"{self.engine_name} search returned {len(nodes)} result(s)")
        return nodes

    def _retrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.send(self.build_request(client, query_bundle.query_str))
                return self._handle(response)
        except httpx.RequestError as e:
            logger.error(f"Request error for {self.engine_name} search: {e}")
            raise RetrievalError(f"{self.engine_name} search request failed: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP {e.response.status_code} error for {self.engine_name} search: {e.response.text}")
            raise RetrievalError(f"{self.engine_name} search failed with HTTP {e.response.status_code}") from e

    async def _aretrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._async_transport) as client:
                response = await client.send(self.build_request(client, query_bundle.query_str))
                return self._handle(response)
        except httpx.RequestError as e:
            logger.error(f"Request error for {self.engine_name} search: {e}")
            raise RetrievalError(f"{self.engine_name} search request failed: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP {e.response.status_code} error for {self.engine_name} search: {e.response.text}")
            raise RetrievalError(f"{self.engine_name} search failed with HTTP {e.response.status_code}") from e


class TavilyRetriever(WebSearchRetriever):
    engine_name = "Tavily"

    def __init__(self, api_key: str, base_url: str, **kwargs):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        super().__init__(**kwargs)

    def build_request(self, client, query: str) -> httpx.Request:
        return client.build_request(
            "POST",
            f"{self.base_url}/search",
            json={"api_key": self.api_key, "query": query, "max_results": self.max_results},
        )

    def parse_results(self, payload: Dict[str, Any]) -> List[NodeWithScore]:
        return [
            search_result_node(result.get("title"), result.get("url"), result.get("content"), result.get("score"))
            for result in payload.get("results", [])
        ]


class GoogleCustomSearchRetriever(WebSearchRetriever):
    engine_name = "Google Custom Search"

    def __init__(self, api_key: str, cx: str, base_url: str, **kwargs):
        self.api_key = api_key
        self.cx = cx
        self.base_url = base_url
        super().__init__(**kwargs)

    def build_request(self, client, query: str) -> httpx.Request:
        params = {"key": self.api_key, "cx": self.cx, "q": query, "num": min(self.max_results, GOOGLE_MAX_RESULTS)}
        return client.build_request("GET", self.base_url, params=params)

    def parse_results(self, payload: Dict[str, Any]) -> List[NodeWithScore]:
        return [
            search_result_node(item.get("title"), item.get("link"), item.get("snippet"))
            for item in payload.get("items", [])
        ]


class TavilyWebSearch(ContentRetrieverProvider):
    type: Literal["TavilyWebSearch"] = "TavilyWebSearch"
    api_key: Optional[str] = Field(None, description="Tavily API key, defaults to TAVILY_API_KEY")
    max_results: int = Field(default_factory=lambda: settings.web_search_max_results, ge=1)

    def content_retriever(self, run_context) -> BaseRetriever:
        api_key = self.api_key or settings.tavily_api_key
        if not api_key:
            raise ProviderConfigurationError("Tavily API key is not configured (set TAVILY_API_KEY or api_key)")
        return TavilyRetriever(
            api_key=api_key,
            base_url=settings.tavily_base_url,
            max_results=self.max_results,
            timeout=settings.web_search_timeout,
        )


class GoogleCustomWebSearch(ContentRetrieverProvider):
    type: Literal["GoogleCustomWebSearch"] = "GoogleCustomWebSearch"
    api_key: Optional[str] = Field(None, description="Google API key, defaults to GOOGLE_SEARCH_API_KEY")
    csi: Optional[str] = Field(None, description="Custom search engine ID (cx), defaults to GOOGLE_SEARCH_CX")
    max_results: int = Field(default_factory=lambda: settings.web_search_max_results, ge=1)

    def content_retriever(self, run_context) -> BaseRetriever:
        api_key = self.api_key or settings.google_search_api_key
        cx = self.csi or settings.google_search_cx
        if not api_key or not cx:
            raise ProviderConfigurationError("Google Custom Search needs both an API key and a search engine ID (csi)")
        return GoogleCustomSearchRetriever(
            api_key=api_key,
            cx=cx,
            base_url=settings.google_search_base_url,
            max_results=self.max_results,
            timeout=settings.web_search_timeout,
        )
