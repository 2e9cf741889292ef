"""Configuration management using pydantic-settings."""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


# Ordered by priority: the first path that resolves to a non-empty string wins.
# Observed upstream payloads put the model under process_data on node_finished
# events; the rest are fallbacks for older or differently shaped payloads.
DEFAULT_MODEL_FIELD_PATHS = [
    "data.process_data.model_name",
    "data.process_data.model_provider",
    "process_data.model_name",
    "process_data.model_provider",
    "model_name",
    "model_provider",
    "data.model_name",
    "data.model_provider",
    "metadata.model_name",
    "metadata.model_provider",
    "execution_metadata.model_name",
    "execution_metadata.model_provider",
    "node_data.model_name",
    "node_data.model_provider",
    "metadata.usage.model",
    "metadata.model",
    "metadata.llm_model",
    "metadata.provider",
    "model",
    "llm_model",
    "provider",
    "usage.model",
    "data.model",
    "data.llm_model",
    "data.model_config.model",
    "data.model_config.provider",
    "data.model_config.model_name",
    "execution_metadata.model",
    "node_data.model",
    "data.execution_metadata.model_name",
    "data.execution_metadata.model_provider",
    "workflow_data.model_name",
    "workflow_data.model_provider",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Gateway Configuration
    host: str = Field(default="0.0.0.0", description="Gateway host")
    port: int = Field(default=7790, description="Gateway port")
    debug: bool = Field(default=False, description="Debug mode")

    # Workflow Service Configuration
    workflow_api_base: str = Field(default="http://localhost/v1", description="Workflow service base URL")
    workflow_api_key: Optional[str] = Field(default=None, description="Workflow service API key")
    chat_endpoint: str = Field(default="/chat-messages", description="Chat endpoint path")
    enable_streaming: bool = Field(default=True, description="Request streaming responses")
    enable_retry: bool = Field(default=True, description="Retry transient failures")
    max_retries: int = Field(default=3, description="Retry budget when retries are enabled")
    request_timeout: float = Field(default=60.0, description="Deadline (seconds) for plain chat turns")
    workflow_timeout: float = Field(default=180.0, description="Deadline (seconds) once a workflow is in progress")
    backoff_base: float = Field(default=1.0, description="First backoff delay in seconds")
    backoff_max: float = Field(default=10.0, description="Backoff delay cap in seconds")
    conversation_not_found_patterns: List[str] = Field(
        default_factory=lambda: ["Conversation Not Exists", "not a valid uuid"],
        description="Error texts that mark a 404 as an unknown conversation"
    )
    model_field_paths: List[str] = Field(
        default_factory=lambda: list(DEFAULT_MODEL_FIELD_PATHS),
        description="Dotted paths searched for the model name, in priority order"
    )

    # Durable Local Store
    state_db_path: str = Field(default="./data/chatflow_state.db", description="DuckDB file for session state")
    stable_id_min_length: int = Field(default=5, description="Stored ids longer than this are treated as stable")

    # History Configuration
    history_backend: str = Field(default="duckdb", description="History backend: duckdb or rest")
    history_db_path: str = Field(default="./data/chatflow_history.db", description="DuckDB file for history")
    history_api_base: Optional[str] = Field(default=None, description="REST history backend base URL")
    history_api_key: Optional[str] = Field(default=None, description="REST history backend API key")
    history_cache_ttl: float = Field(default=30.0, description="History list cache TTL in seconds")
    history_title_length: int = Field(default=30, description="Title truncation length")

    # Billing Configuration
    billing_endpoint: Optional[str] = Field(default=None, description="Usage reporting endpoint")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[str] = Field(default="./logs/chatflow.log", description="Log file path")

    def get_retry_budget(self) -> int:
        """Get the number of retries allowed for one send."""
        return self.max_retries if self.enable_retry else 0

    def get_timeout(self, workflow_active: bool) -> float:
        """Get the request deadline for the current workflow state."""
        return self.workflow_timeout if workflow_active else self.request_timeout

    def get_backoff_delay(self, attempt: int) -> float:
        """Get the exponential backoff delay before retry number ``attempt + 1``."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)


# Global settings instance
settings = Settings()
