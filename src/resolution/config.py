"""Configuration for the tool-use resolution stage.

Provides Pydantic settings for the LLM provider, API keys, the round cap,
worker concurrency, the resolution stream, and circuit breaker tuning. All
settings can be overridden via RESOLUTION_* environment variables.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ResolutionConfig(BaseSettings):
    """Configuration for resolving raw records into entity operations.

    Example:
        RESOLUTION_PROVIDER=openai
        RESOLUTION_OPENAI_API_KEY=sk-...
        RESOLUTION_MAX_CONCURRENCY=3
    """

    model_config = SettingsConfigDict(
        env_prefix="RESOLUTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider
    provider: Literal["anthropic", "openai"] = Field(
        default="anthropic",
        description="LLM provider used for the tool-use conversation",
    )
    anthropic_api_key: SecretStr | None = Field(default=None)
    openai_api_key: SecretStr | None = Field(default=None)
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")
    openai_model: str = Field(default="gpt-4o-mini")
    max_tokens: int = Field(default=4096, ge=256)
    llm_timeout: float = Field(
        default=60.0,
        ge=5.0,
        le=300.0,
        description="Timeout in seconds for a single model call",
    )

    # Conversation bounds
    max_rounds: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Model invocations per record before giving up on a report",
    )
    raw_data_preview_chars: int = Field(default=1500, ge=100)
    content_preview_chars: int = Field(default=2000, ge=100)
    related_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for an identified project to be linked",
    )

    # Queue
    stream_name: str = Field(default="resolution_queue")
    consumer_group: str = Field(default="resolution_workers")
    dlq_stream_name: str = Field(default="resolution_queue:dlq")
    max_stream_length: int = Field(default=50_000, ge=1000)
    idle_timeout_ms: int = Field(
        default=300_000,
        ge=10_000,
        description="Visibility timeout; must exceed the worst-case loop duration",
    )
    max_delivery_attempts: int = Field(default=3, ge=1)

    # Worker
    max_concurrency: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Records resolved concurrently by one worker",
    )

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout: float = Field(default=60.0, ge=5.0)
