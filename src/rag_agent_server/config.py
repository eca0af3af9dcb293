from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the agent server."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    google_api_key: str | None = Field(default=None, alias="GOOGLE_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    # Query classification can run on a smaller model; falls back to gemini_model
    gemini_router_model: str | None = Field(default=None, alias="GEMINI_ROUTER_MODEL")
    model_temperature: float = Field(default=0.2, alias="MODEL_TEMPERATURE")
    model_timeout_seconds: float = Field(default=60.0, alias="MODEL_TIMEOUT_SECONDS")
    model_max_retries: int = Field(default=2, alias="MODEL_MAX_RETRIES")
    include_thoughts: bool = Field(default=False, alias="INCLUDE_THOUGHTS")

    # Optional single-string override for the modular prompt sections
    system_prompt: str | None = Field(default=None, alias="SYSTEM_PROMPT")

    # Orchestration
    routing_enabled: bool = Field(default=True, alias="ROUTING_ENABLED")
    retrieval_limit: int = Field(default=5, alias="RETRIEVAL_LIMIT")
    max_iterations: int = Field(default=10, alias="MAX_ITERATIONS")
    tool_timeout_seconds: float = Field(default=30.0, alias="TOOL_TIMEOUT_SECONDS")
    parallel_tool_calls: bool = Field(default=True, alias="PARALLEL_TOOL_CALLS")

    # Conversation history persistence
    conversation_backend: Literal["memory", "postgres", "gcs"] = Field(
        default="memory", alias="CONVERSATION_BACKEND"
    )
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    google_cloud_storage_bucket: str | None = Field(default=None, alias="GOOGLE_CLOUD_STORAGE_BUCKET")
    conversation_prefix: str = Field(default="conversations", alias="CONVERSATION_PREFIX")

    # Knowledge base (Supabase pgvector)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    supabase_match_function: str = Field(default="match_documents", alias="SUPABASE_MATCH_FUNCTION")
    embedding_model: str = Field(default="models/text-embedding-004", alias="EMBEDDING_MODEL")

    # External tool credentials; tools without credentials are not registered
    firecrawl_api_key: str | None = Field(default=None, alias="FIRECRAWL_API_KEY")
    unsplash_access_key: str | None = Field(default=None, alias="UNSPLASH_ACCESS_KEY")
    google_maps_api_key: str | None = Field(default=None, alias="GOOGLE_MAPS_API_KEY")
    weather_api_key: str | None = Field(default=None, alias="WEATHER_API_KEY")

    # FastAPI configuration
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8080, alias="APP_PORT")
    debug: bool = Field(default=False, alias="DEBUG")

    @property
    def router_model(self) -> str:
        return self.gemini_router_model or self.gemini_model

    @property
    def retrieval_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key and self.google_api_key)


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings so multiple imports share a single instance."""

    return Settings()  # type: ignore[arg-type]
