# Configuration settings for the tool bridge and the retrieval pipeline.

import os
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

# Suppress HuggingFace tokenizer parallelism warning
os.environ["TOKENIZERS_PARALLELISM"] = "false"

# Load environment variables from .env file
load_dotenv()

# Project root directory - this file lives in <root>/bridge/
ROOT_DIR = Path(__file__).resolve().parent.parent

class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ROOT_DIR / ".env", env_file_encoding='utf-8', extra='ignore')

    # API Keys
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    tavily_api_key: str = os.getenv("TAVILY_API_KEY", "")
    google_search_api_key: str = os.getenv("GOOGLE_SEARCH_API_KEY", "")
    google_search_cx: str = os.getenv("GOOGLE_SEARCH_CX", "")

    # Default chat LLM (can be overridden per provider)
    llm_model_name: str = "gpt-4o-mini"
    temperature: float = 0.1
    max_tokens: int = 2048

    # Embedding Model Configuration
    embedding_model_name: str = "BAAI/bge-small-en-v1.5"
    openai_embedding_model_name: str = "text-embedding-3-small"

    # Vector Store Configuration
    vector_store_path: str = str(ROOT_DIR / "local_db" / "faiss_index")
    embedding_snapshot_path: str = str(ROOT_DIR / "local_db" / "embeddings")

    # Retriever Configuration
    retriever_max_results: int = 3
    retriever_min_score: float = 0.0
    keyword_max_results: int = 3

    # SQL retriever Configuration
    sql_pool_size: int = 2

    # Web search Configuration
    web_search_max_results: int = 3
    web_search_timeout: float = 10.0
    tavily_base_url: str = "https://api.tavily.com"
    google_search_base_url: str = "https://www.googleapis.com/customsearch/v1"

    # Ingestion Configuration
    ingest_bulk_size: int = 500
    chunk_size: int = 1000
    chunk_overlap: int = 100

    # Chat Configuration
    max_tool_rounds: int = 5

    # Logging Configuration
    log_level: str = "INFO"

settings = AppSettings()
