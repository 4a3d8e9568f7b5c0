"""
SQL database retrieval source.

The chat model turns the user question into a SQL query, the query runs
against the configured database, and the rows come back as a single text node
(the query and raw rows are kept as node metadata). Connections come from a
pooled SQLAlchemy engine that is disposed of when the chat turn ends.

The database user should only have read permissions: the generated query is
executed as-is.
"""

import logging
from enum import Enum
from typing import List, Literal, Optional

from pydantic import Field
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from llama_index.core import SQLDatabase
from llama_index.core.retrievers import BaseRetriever, NLSQLRetriever
from llama_index.core.schema import NodeWithScore, QueryBundle

from bridge.config import settings
from bridge.exceptions import ProviderConfigurationError, RetrievalError
from bridge.providers.models import ModelProviderConfig
from retrievers.base import ContentRetrieverProvider

logger = logging.getLogger(__name__)


class DatabaseType(str, Enum):
    POSTGRESQL = "POSTGRESQL"
    MYSQL = "MYSQL"
    SQLITE = "SQLITE"


# SQLAlchemy backend name expected in the connection URL of each database type.
BACKENDS = {
    DatabaseType.POSTGRESQL: "postgresql",
    DatabaseType.MYSQL: "mysql",
    DatabaseType.SQLITE: "sqlite",
}


class SqlDatabaseContentRetriever(BaseRetriever):
    """Text-to-SQL retriever owning the connection pool it queries."""

    def __init__(self, engine: Engine, retriever: NLSQLRetriever, **kwargs):
        self.engine = engine
        self._retriever = retriever
        super().__init__(**kwargs)

    def _retrieve(self, query_bundle: QueryBundle) -> List[NodeWithScore]:
        try:
            nodes = self._retriever.retrieve(query_bundle)
        except (SQLAlchemyError, NotImplementedError, ValueError) as e:
            logger.error(f"SQL retrieval failed on {self.engine.url.get_backend_name()}: {e}")
            raise RetrievalError(f"SQL retrieval failed: {e}") from e
        for node in nodes:
            logger.debug(f"Generated SQL query: {node.node.metadata.get('sql_query')}")
        return nodes

    def close(self) -> None:
        self.engine.dispose()
        logger.debug(f"Disposed connection pool of {self.engine.url.render_as_string(hide_password=True)}")


class SqlDatabaseRetriever(ContentRetrieverProvider):
    type: Literal["SqlDatabaseRetriever"] = "SqlDatabaseRetriever"
    database_type: DatabaseType = Field(..., description="Type of database to connect to")
    url: str = Field(..., description="SQLAlchemy connection URL, e.g. postgresql://host:5432/sales")
    username: Optional[str] = Field(None, description="Database username, overrides the one in the URL")
    password: Optional[str] = Field(None, description="Database password, overrides the one in the URL")
    driver: Optional[str] = Field(None, description="DBAPI driver, e.g. psycopg2 or pymysql; the SQLAlchemy default when unset")
    pool_size: int = Field(default_factory=lambda: settings.sql_pool_size, ge=1, description="Maximum number of pooled connections")
    tables: Optional[List[str]] = Field(None, description="Tables the model may query, every table when unset")
    provider: ModelProviderConfig = Field(..., description="Provider of the model writing the SQL queries")

    def connection_url(self):
        try:
            url = make_url(self.url)
        except ArgumentError as e:
            raise ProviderConfigurationError(f"Invalid database URL: {e}") from e

        backend = BACKENDS[self.database_type]
        if url.get_backend_name() != backend:
            raise ProviderConfigurationError(
                f"Database URL uses '{url.get_backend_name()}' but the database type is {self.database_type.value}"
            )
        if self.driver:
            url = url.set(drivername=f"{backend}+{self.driver}")
        if self.username is not None:
            url = url.set(username=self.username)
        if self.password is not None:
            url = url.set(password=self.password)
        return url

    def create_engine(self) -> Engine:
        url = self.connection_url()
        try:
            return create_engine(url, pool_size=self.pool_size, pool_pre_ping=True)
        except (NoSuchModuleError, ImportError) as e:
            raise ProviderConfigurationError(f"No database driver available for '{url.drivername}': {e}") from e

    def content_retriever(self, run_context) -> BaseRetriever:
        llm = self.provider.chat_model(run_context)
        engine = self.create_engine()
        try:
            database = SQLDatabase(engine, include_tables=self.tables)
            retriever = NLSQLRetriever(
                database,
                tables=self.tables,
                llm=llm,
                embed_model=self.provider.embedding_model(run_context),
                return_raw=True,
                handle_sql_errors=False,
            )
        except ValueError as e:
            engine.dispose()
            raise ProviderConfigurationError(f"Invalid SQL retriever configuration: {e}") from e
        except SQLAlchemyError as e:
            engine.dispose()
            raise RetrievalError(f"Cannot read the database schema: {e}") from e

        run_context.logger.info(
            f"SQL retriever created on {engine.url.render_as_string(hide_password=True)} with pool_size={self.pool_size}"
        )
        return SqlDatabaseContentRetriever(engine, retriever)
