# Model providers: build the llama_index chat LLM and embedding model used by a run.

import logging
from abc import ABC, abstractmethod
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated
from llama_index.core.base.embeddings.base import BaseEmbedding
from llama_index.core.llms import LLM
from llama_index.embeddings.huggingface import HuggingFaceEmbedding
from llama_index.embeddings.openai import OpenAIEmbedding
from llama_index.llms.openai import OpenAI as LlamaIndexOpenAI

from bridge.config import settings
from bridge.exceptions import ProviderConfigurationError

logger = logging.getLogger(__name__)

# Last-resort dimensions for well-known local embedding models.
KNOWN_EMBEDDING_DIMENSIONS = {
    "bge-large": 1024,
    "bge-base": 768,
    "bge-small": 384,
}

DIMENSION_PROBE_TEXT = "dimension probe"


class ModelProvider(BaseModel, ABC):
    """Capability to build the chat model and the embedding model of a run."""
    model_config = ConfigDict(protected_namespaces=())

    type: str

    @abstractmethod
    def chat_model(self, run_context) -> LLM:
        ...

    @abstractmethod
    def embedding_model(self, run_context) -> BaseEmbedding:
        ...


class OpenAIProvider(ModelProvider):
    type: Literal["OpenAI"] = "OpenAI"
    api_key: Optional[str] = Field(None, description="OpenAI API key, defaults to OPENAI_API_KEY")
    model_name: str = Field(default_factory=lambda: settings.llm_model_name, description="Chat model name")
    embedding_model_name: str = Field(
        default_factory=lambda: settings.openai_embedding_model_name, description="Embedding model name"
    )
    base_url: Optional[str] = Field(None, description="Alternative OpenAI compatible endpoint")
    temperature: float = Field(default_factory=lambda: settings.temperature)
    max_tokens: int = Field(default_factory=lambda: settings.max_tokens)
    system_prompt: Optional[str] = None

    def _api_key(self) -> str:
        api_key = self.api_key or settings.openai_api_key
        if not api_key:
            raise ProviderConfigurationError("OpenAI API key is not configured (set OPENAI_API_KEY or api_key)")
        return api_key

    def chat_model(self, run_context) -> LLM:
        run_context.logger.info(f"Configuring OpenAI chat model: {self.model_name}")
        return LlamaIndexOpenAI(
            model=self.model_name,
            temperature=self.temperature,
            api_key=self._api_key(),
            api_base=self.base_url,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
        )

    def embedding_model(self, run_context) -> BaseEmbedding:
        run_context.logger.info(f"Configuring OpenAI embedding model: {self.embedding_model_name}")
        return OpenAIEmbedding(model=self.embedding_model_name, api_key=self._api_key(), api_base=self.base_url)


class HuggingFaceProvider(ModelProvider):
    """Local sentence-transformers embeddings; this provider has no chat model."""

    type: Literal["HuggingFace"] = "HuggingFace"
    embedding_model_name: str = Field(default_factory=lambda: settings.embedding_model_name)

    def chat_model(self, run_context) -> LLM:
        raise ProviderConfigurationError("The HuggingFace provider only supports embedding models")

    def embedding_model(self, run_context) -> BaseEmbedding:
        run_context.logger.info(f"Loading local embedding model: {self.embedding_model_name}")
        return HuggingFaceEmbedding(model_name=self.embedding_model_name)


def embedding_dimension(embed_model: BaseEmbedding) -> int:
    """
    Determine the vector dimension produced by an embedding model.

    The model is asked directly when it exposes its dimension; otherwise a
    single probe text is embedded. Well-known model names are only used when
    the probe fails.
    """
    inner = getattr(embed_model, "_model", None)
    if inner is not None and hasattr(inner, "get_sentence_embedding_dimension"):
        dimension = inner.get_sentence_embedding_dimension()
        if dimension:
            logger.info(f"Embedding dimension {dimension} reported by {embed_model.model_name}")
            return dimension

    dimensions = getattr(embed_model, "dimensions", None)
    if dimensions:
        logger.info(f"Embedding dimension {dimensions} configured on {embed_model.model_name}")
        return dimensions

    try:
        dimension = len(embed_model.get_text_embedding(DIMENSION_PROBE_TEXT))
        logger.info(f"Embedding dimension {dimension} probed from {embed_model.model_name}")
        return dimension
    except Exception as e:
        model_name = (embed_model.model_name or "").lower()
        for hint, dimension in KNOWN_EMBEDDING_DIMENSIONS.items():
            if hint in model_name:
                logger.warning(f"Could not probe embedding dimension ({e}), falling back to {dimension} for {model_name}")
                return dimension
        raise ProviderConfigurationError(f"Unable to determine the embedding dimension of '{model_name}'") from e


ModelProviderConfig = Annotated[Union[OpenAIProvider, HuggingFaceProvider], Field(discriminator="type")]
