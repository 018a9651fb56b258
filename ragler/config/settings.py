"""Application settings loaded from environment variables via pydantic-settings.

Values come from (highest priority first) process environment variables,
then a local ``.env`` file, then the defaults below.  Field
``openai_api_key`` maps to env var ``OPENAI_API_KEY`` and so on.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragler application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === LLM / Embeddings ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible gateway; empty = api.openai.com
    llm_model: str = "gpt-4o-mini"
    agent_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_timeout: float = 60.0
    llm_max_retries: int = 2
    embedding_timeout: float = 30.0
    embedding_max_retries: int = 2
    embedding_batch_size: int = 100
    embedding_concurrency: int = 4

    # === Stores ===
    kv_backend: str = "redis"  # "redis" or "memory"
    redis_url: str = "redis://localhost:6379/0"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str = ""
    default_collection: str = "knowledge"

    # === Sessions / Chunking ===
    session_ttl: int = 86400
    chunk_size: int = 1000
    chunk_overlap: int = 0
    semantic_max_content_length: int = 30000
    merge_separator: str = ""
    publish_allow_draft: bool = False

    # === Agent ===
    chat_history_limit: int = 50
    agent_max_steps: int = 8

    # === Feature flags ===
    feature_web_ingest: bool = True
    feature_file_ingest: bool = True
    feature_agent: bool = True
    feature_semantic_chunking: bool = True

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_enabled_features(self) -> list[str]:
        """Return the names of feature flags that are switched on."""
        flags = {
            "web_ingest": self.feature_web_ingest,
            "file_ingest": self.feature_file_ingest,
            "agent": self.feature_agent,
            "semantic_chunking": self.feature_semantic_chunking,
        }
        return [name for name, enabled in flags.items() if enabled]
