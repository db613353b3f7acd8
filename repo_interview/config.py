import os
import tempfile

from pydantic_settings import BaseSettings, SettingsConfigDict
from repo_interview.utils.logging import logger


class Settings(BaseSettings):
    database_url: str
    jwt_secret: str
    jwt_algo: str = "HS256"
    agent_secret: str | None = None

    # Hosted models
    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 512
    embedding_batch_size: int = 100
    chat_model: str = "gpt-4o-mini"

    # Vector store
    vector_index_name: str = "code-chunks"
    upsert_batch_size: int = 100

    # Snapshot download
    github_api_url: str = "https://api.github.com"
    github_token: str | None = None
    snapshot_dir: str = os.path.join(tempfile.gettempdir(), "repo-interview")
    max_download_bytes: int = 100 * 1024 * 1024
    http_timeout_seconds: float = 60.0
    llm_timeout_seconds: float = 120.0

    # Chunking
    max_file_bytes: int = 10 * 1024 * 1024
    chunk_lines: int = 200
    chunk_overlap: int = 40
    max_chunk_chars: int = 10_000

    # Retrieval budgets
    retrieval_top_k: int = 10
    retrieval_max_top_k: int = 15
    retrieval_max_chunks: int = 8
    retrieval_max_chunk_chars: int = 4000
    retrieval_max_total_chars: int = 16_000

    indexing_workers: int = 2

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore any truly extra env vars
    )


settings = Settings()
logger.info("Settings loaded successfully from environment/.env")
