from unittest.mock import patch

import pytest
from llama_index.core.base.llms.types import CompletionResponse
from llama_index.core.embeddings import MockEmbedding
from llama_index.core.llms import MockLLM
from llama_index.core.llms.callbacks import llm_completion_callback
from pydantic import ValidationError
from sqlalchemy import create_engine, text

from bridge.core.chat_service import ChatCompletion
from bridge.exceptions import ProviderConfigurationError, RetrievalError
from bridge.providers.models import OpenAIProvider
from retrievers.sql_database import DatabaseType, SqlDatabaseContentRetriever, SqlDatabaseRetriever

TOP_CUSTOMERS = "SELECT name, total FROM customers ORDER BY total DESC"


class SqlWritingLLM(MockLLM):
    """Mock model answering every prompt with the same SQL query."""

    query: str = TOP_CUSTOMERS

    def __init__(self, query: str = TOP_CUSTOMERS, **kwargs):
        super().__init__(**kwargs)
        self.query = query

    @llm_completion_callback()
    def complete(self, prompt, formatted=False, **kwargs):
        return CompletionResponse(text=self.query)


@pytest.fixture
def database_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'sales.db'}"
    engine = create_engine(url)
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE customers (name TEXT, total REAL)"))
        connection.execute(text("INSERT INTO customers VALUES ('Acme', 120.0), ('Globex', 80.0)"))
    engine.dispose()
    return url


@pytest.fixture
def sql_models():
    with patch.object(OpenAIProvider, "chat_model", return_value=SqlWritingLLM()) as chat_model, \
            patch.object(OpenAIProvider, "embedding_model", return_value=MockEmbedding(embed_dim=8)):
        yield chat_model


def sql_source(url, **properties):
    return SqlDatabaseRetriever.model_validate({
        "type": "SqlDatabaseRetriever",
        "database_type": "SQLITE",
        "url": url,
        "provider": {"type": "OpenAI", "api_key": "sk-test"},
        **properties,
    })


class TestSqlDatabaseRetriever:
    """Tests for the text-to-SQL retrieval source."""

    def test_rows_are_returned_as_content(self, run_context, database_url, sql_models):
        retriever = sql_source(database_url).content_retriever(run_context)
        try:
            nodes = retriever.retrieve("Who are the best customers?")
        finally:
            retriever.close()

        assert len(nodes) == 1
        assert "Acme" in nodes[0].node.get_content()
        assert "Globex" in nodes[0].node.get_content()
        assert nodes[0].node.metadata["sql_query"] == TOP_CUSTOMERS

    def test_pool_size(self, run_context, database_url, sql_models):
        retriever = sql_source(database_url, pool_size=4).content_retriever(run_context)
        assert isinstance(retriever, SqlDatabaseContentRetriever)
        assert retriever.engine.pool.size() == 4
        retriever.close()

    def test_close_disposes_the_pool(self, run_context, database_url, sql_models):
        retriever = sql_source(database_url).content_retriever(run_context)
        with patch.object(retriever.engine, "dispose") as dispose:
            retriever.close()
        dispose.assert_called_once()

    def test_invalid_query_is_a_retrieval_error(self, run_context, database_url):
        llm = SqlWritingLLM(query="SELECT * FROM invoices")
        with patch.object(OpenAIProvider, "chat_model", return_value=llm), \
                patch.object(OpenAIProvider, "embedding_model", return_value=MockEmbedding(embed_dim=8)):
            retriever = sql_source(database_url).content_retriever(run_context)
            with pytest.raises(RetrievalError):
                retriever.retrieve("How many invoices?")
        retriever.close()

    def test_unknown_table(self, run_context, database_url, sql_models):
        with pytest.raises(ProviderConfigurationError):
            sql_source(database_url, tables=["invoices"]).content_retriever(run_context)

    def test_url_must_match_the_database_type(self, run_context, database_url, sql_models):
        with pytest.raises(ProviderConfigurationError):
            sql_source(database_url, database_type="POSTGRESQL").content_retriever(run_context)

    def test_credentials_and_driver_override_the_url(self):
        source = sql_source("postgresql://reader@db.internal:5432/sales", database_type="POSTGRESQL",
                            username="analyst", password="s3cret", driver="psycopg2")
        url = source.connection_url()
        assert url.drivername == "postgresql+psycopg2"
        assert (url.username, url.password, url.database) == ("analyst", "s3cret", "sales")

    def test_database_type_is_closed(self, database_url):
        with pytest.raises(ValidationError):
            sql_source(database_url, database_type="ORACLE")
        assert {member.value for member in DatabaseType} == {"POSTGRESQL", "MYSQL", "SQLITE"}


class TestSqlSourceInChat:

    def test_pool_is_released_when_the_turn_ends(self, run_context, database_url, sql_models):
        task = ChatCompletion.model_validate({
            "id": "chat",
            "type": ChatCompletion.type_name(),
            "messages": [{"type": "USER", "content": "Who are the best customers?"}],
            "chat_provider": {"type": "OpenAI", "api_key": "sk-test"},
            "content_retrievers": [{
                "type": "SqlDatabaseRetriever",
                "database_type": "SQLITE",
                "url": database_url,
                "provider": {"type": "OpenAI", "api_key": "sk-test"},
            }],
        })

        with patch.object(SqlDatabaseContentRetriever, "close", autospec=True,
                          side_effect=SqlDatabaseContentRetriever.close) as close:
            output = task.run(run_context)

        close.assert_called_once()
        assert "Acme" in output.sources[0].content
        assert output.sources[0].metadata["sql_query"] == TOP_CUSTOMERS
