"""Configuration for collectors and the ingestion coordinator."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectorsConfig(BaseSettings):
    """Transport defaults shared by every collector, plus coordinator pacing."""

    model_config = SettingsConfigDict(
        env_prefix="COLLECTOR_",
        case_sensitive=False,
        extra="ignore",
    )

    user_agent: str = Field(
        default="CryptoTracker/1.0",
        description="User-Agent sent when a source does not set its own",
    )
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Linear backoff unit in seconds (attempt * delay)",
    )
    max_rate_limit_wait: float = Field(
        default=60.0,
        ge=1.0,
        description="Upper bound for the forced wait after HTTP 429",
    )
    probe_timeout_seconds: float = Field(default=10.0, gt=0)

    # Coordinator pacing
    save_batch_size: int = Field(default=10, ge=1)
    inter_source_delay_seconds: float = Field(default=0.5, ge=0.0)
