# Service for document ingestion: loading, chunking, embedding, and storing in an embedding store.

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field
from llama_index.core import Document, SimpleDirectoryReader
from llama_index.core.node_parser import SentenceSplitter, TokenTextSplitter

from bridge.config import settings
from bridge.core.run_context import TurnScope
from bridge.models import InlineDocument
from bridge.providers.embedding_stores import EmbeddingStoreConfig
from bridge.providers.models import ModelProviderConfig, embedding_dimension
from bridge.workflow.tasks import RunnableTask, TaskOutput

logger = logging.getLogger(__name__)


class SplitterType(str, Enum):
    SENTENCE = "SENTENCE"
    TOKEN = "TOKEN"


class DocumentSplitter(BaseModel):
    splitter: SplitterType = Field(SplitterType.SENTENCE, description="How documents are cut into chunks")
    chunk_size: int = Field(default_factory=lambda: settings.chunk_size, ge=1, description="Maximum chunk size in tokens")
    chunk_overlap: int = Field(default_factory=lambda: settings.chunk_overlap, ge=0, description="Overlap between chunks in tokens")

    def build(self):
        if self.splitter == SplitterType.TOKEN:
            return TokenTextSplitter(chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)
        return SentenceSplitter(chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)


class IngestOutput(TaskOutput):
    ingested_documents: int = Field(..., description="Number of documents ingested")
    ingested_chunks: int = Field(..., description="Number of chunks embedded and stored")
    embedding_store_outputs: Dict[str, Any] = Field(default_factory=dict, description="State of the embedding store")


def load_documents_from_directory(directory: Path) -> List[Document]:
    """Load every supported document below a directory, recursively."""
    if not directory.is_dir():
        raise FileNotFoundError(f"Directory not found: {directory}")

    logger.info(f"Loading documents from: {directory}")
    documents = SimpleDirectoryReader(input_dir=str(directory), recursive=True).load_data()
    for doc in documents:
        if not doc.metadata.get("file_name") and doc.id_:
            file_path = Path(doc.id_)
            doc.metadata["file_name"] = file_path.name
            doc.metadata["file_path"] = str(file_path)
    logger.info(f"Successfully loaded {len(documents)} document(s).")
    return documents


def load_documents_from_urls(urls: List[str], timeout: float) -> List[Document]:
    documents = []
    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        for url in urls:
            response = client.get(url)
            response.raise_for_status()
            documents.append(Document(text=response.text, metadata={"url": url}))
            logger.info(f"Loaded document from {url} ({len(response.text)} characters)")
    return documents


class IngestDocument(RunnableTask):
    """Ingest documents into an embedding store."""

    task_type = "rag.IngestDocument"
    task_description = (
        "Split documents into chunks, embed them with the configured embedding model "
        "and store them into the configured embedding store."
    )

    provider: ModelProviderConfig = Field(..., description="Provider of the embedding model")
    embeddings: EmbeddingStoreConfig = Field(..., description="Embedding store receiving the chunks")
    from_path: Optional[str] = Field(None, description="Directory, relative to the working directory, to load documents from")
    from_documents: List[InlineDocument] = Field(default_factory=list, description="Inline documents")
    from_external_urls: List[str] = Field(default_factory=list, description="URLs of text documents to download")
    metadata: Dict[str, str] = Field(default_factory=dict, description="Metadata added to every document")
    document_splitter: DocumentSplitter = Field(default_factory=DocumentSplitter, description="Chunking configuration")
    drop: bool = Field(False, description="Drop every embedding already stored before ingesting")
    bulk_size: int = Field(default_factory=lambda: settings.ingest_bulk_size, ge=1, description="Documents embedded per batch")

    def load_documents(self, run_context) -> List[Document]:
        documents: List[Document] = []
        if self.from_path:
            # restricted to the working directory
            documents.extend(load_documents_from_directory(run_context.resolve_path(self.from_path)))
        for inline in self.from_documents:
            documents.append(Document(text=inline.content, metadata=dict(inline.metadata)))
        if self.from_external_urls:
            documents.extend(load_documents_from_urls(self.from_external_urls, settings.web_search_timeout))
        for doc in documents:
            doc.metadata.update(self.metadata)
        return documents

    def run(self, run_context) -> IngestOutput:
        documents = self.load_documents(run_context)
        if not documents:
            run_context.logger.warning("No documents provided for ingestion.")

        splitter = self.document_splitter.build()
        ingested_chunks = 0

        with TurnScope() as scope:
            embed_model = self.provider.embedding_model(run_context)
            dimension = embedding_dimension(embed_model)
            store = scope.register(self.embeddings.embedding_store(run_context, dimension, self.drop), "embedding store")
            if self.drop:
                store.mark_modified()
            index = store.index(embed_model)

            for start in range(0, len(documents), self.bulk_size):
                batch = documents[start:start + self.bulk_size]
                nodes = splitter.get_nodes_from_documents(batch)
                index.insert_nodes(nodes)
                store.mark_modified()
                ingested_chunks += len(nodes)
                run_context.logger.info(f"Ingested batch of {len(batch)} document(s) into {len(nodes)} chunk(s)")

            store_outputs = store.outputs()
            # a failing persist must fail the task
            store.close()

        run_context.logger.info(f"Ingestion completed: {len(documents)} document(s), {ingested_chunks} chunk(s)")
        return IngestOutput(
            ingested_documents=len(documents),
            ingested_chunks=ingested_chunks,
            embedding_store_outputs=store_outputs,
        )
