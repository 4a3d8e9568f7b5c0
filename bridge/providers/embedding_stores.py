"""
Embedding Store Providers

An embedding store provider opens a vector store for one run and hands it back
as a ScopedVectorStore. The caller registers the scoped store on the turn
scope, which persists pending changes and releases the handle when the turn
ends. Providers themselves never keep a live handle.

Two stores are available:
- Faiss: a FAISS index persisted with its docstore and index store
- InMemory: llama_index SimpleVectorStore, snapshot to JSON files on close
"""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Union

import faiss
from pydantic import BaseModel, Field
from typing_extensions import Annotated
from llama_index.core import StorageContext, VectorStoreIndex, load_index_from_storage
from llama_index.core.base.embeddings.base import BaseEmbedding
from llama_index.core.storage.docstore import SimpleDocumentStore
from llama_index.core.storage.index_store import SimpleIndexStore
from llama_index.core.vector_stores import SimpleVectorStore
from llama_index.vector_stores.faiss import FaissVectorStore

from bridge.config import settings
from bridge.exceptions import ProviderConfigurationError

logger = logging.getLogger(__name__)

FAISS_INDEX_FILENAME = "default__vector_store.faiss"
VECTOR_STORE_SUBDIR = "vector_store"
DOCSTORE_FILENAME = "docstore.json"
INDEX_STORE_FILENAME = "index_store.json"


class ScopedVectorStore:
    """
    A vector store opened for the duration of one turn.

    ``persist`` is called on close only when the store was modified, so a
    read-only chat turn never rewrites the snapshot on disk.
    """

    def __init__(
        self,
        name: str,
        storage_context: StorageContext,
        dimension: int,
        persist: Optional[Callable[[StorageContext], None]] = None,
    ):
        self.name = name
        self.storage_context = storage_context
        self.dimension = dimension
        self._persist = persist
        self._modified = False
        self._closed = False

    @property
    def vector_store(self):
        return self.storage_context.vector_store

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_modified(self) -> None:
        self._modified = True

    def index(self, embed_model: BaseEmbedding) -> VectorStoreIndex:
        """Load the index held by the store, or start an empty one."""
        if self._closed:
            raise ProviderConfigurationError(f"Embedding store '{self.name}' is already closed")
        if self.storage_context.index_store.index_structs():
            return load_index_from_storage(self.storage_context, embed_model=embed_model)
        return VectorStoreIndex(nodes=[], storage_context=self.storage_context, embed_model=embed_model)

    def outputs(self) -> Dict[str, Any]:
        return {"store": self.name, "dimension": self.dimension, "documents": len(self.storage_context.docstore.docs)}

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._modified and self._persist is not None:
            self._persist(self.storage_context)
            logger.info(f"Persisted embedding store '{self.name}'")


class EmbeddingStoreProvider(BaseModel, ABC):
    """Capability to open a vector store of a given dimension."""

    type: str

    @abstractmethod
    def embedding_store(self, run_context, dimension: int, drop: bool) -> ScopedVectorStore:
        """
        Open the store for one turn.

        Args:
            run_context: Context of the running task
            dimension: Vector dimension produced by the embedding model
            drop: Discard every stored embedding before use
        """


class FaissEmbeddingStore(EmbeddingStoreProvider):
    type: Literal["Faiss"] = "Faiss"
    path: str = Field(default_factory=lambda: settings.vector_store_path, description="Directory of the persisted index")

    def _paths(self, run_context):
        root = Path(self.path)
        if not root.is_absolute():
            root = run_context.resolve_path(self.path)
        return root, root / VECTOR_STORE_SUBDIR / FAISS_INDEX_FILENAME

    def embedding_store(self, run_context, dimension: int, drop: bool) -> ScopedVectorStore:
        root, faiss_binary_path = self._paths(run_context)

        if drop and root.exists():
            run_context.logger.info(f"Dropping FAISS store at {root}")
            shutil.rmtree(root)

        if faiss_binary_path.exists():
            run_context.logger.info(f"Loading FAISS index from {faiss_binary_path}")
            faiss_index = faiss.read_index(str(faiss_binary_path))
            if faiss_index.d != dimension:
                raise ProviderConfigurationError(
                    f"FAISS index at {root} has dimension {faiss_index.d} but the embedding model produces {dimension}"
                )
            storage_context = StorageContext.from_defaults(
                vector_store=FaissVectorStore(faiss_index=faiss_index),
                docstore=SimpleDocumentStore.from_persist_dir(str(root)),
                index_store=SimpleIndexStore.from_persist_dir(str(root)),
            )
        else:
            run_context.logger.info(f"Creating FAISS index of dimension {dimension} at {root}")
            # inner product over normalized embeddings, so scores are cosine similarities
            storage_context = StorageContext.from_defaults(
                vector_store=FaissVectorStore(faiss_index=faiss.IndexFlatIP(dimension))
            )

        def persist(context: StorageContext) -> None:
            faiss_binary_path.parent.mkdir(parents=True, exist_ok=True)
            context.vector_store.persist(persist_path=str(faiss_binary_path))
            context.docstore.persist(persist_path=str(root / DOCSTORE_FILENAME))
            context.index_store.persist(persist_path=str(root / INDEX_STORE_FILENAME))

        return ScopedVectorStore(f"faiss:{root}", storage_context, dimension, persist=persist)


class InMemoryEmbeddingStore(EmbeddingStoreProvider):
    """Embeddings kept in memory; an optional snapshot directory makes them survive between runs."""

    type: Literal["InMemory"] = "InMemory"
    snapshot_path: Optional[str] = Field(None, description="Snapshot directory, nothing is persisted when unset")

    def embedding_store(self, run_context, dimension: int, drop: bool) -> ScopedVectorStore:
        snapshot = run_context.resolve_path(self.snapshot_path) if self.snapshot_path else None

        if drop and snapshot is not None and snapshot.exists():
            run_context.logger.info(f"Dropping embedding snapshot at {snapshot}")
            shutil.rmtree(snapshot)

        if snapshot is not None and (snapshot / DOCSTORE_FILENAME).exists():
            run_context.logger.info(f"Loading embedding snapshot from {snapshot}")
            storage_context = StorageContext.from_defaults(persist_dir=str(snapshot))
        else:
            storage_context = StorageContext.from_defaults(vector_store=SimpleVectorStore())

        persist = None
        if snapshot is not None:
            def persist(context: StorageContext) -> None:
                context.persist(persist_dir=str(snapshot))

        name = f"memory:{snapshot}" if snapshot else "memory"
        return ScopedVectorStore(name, storage_context, dimension, persist=persist)


EmbeddingStoreConfig = Annotated[Union[FaissEmbeddingStore, InMemoryEmbeddingStore], Field(discriminator="type")]
