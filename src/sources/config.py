"""Configuration for the sources service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourcesConfig(BaseSettings):
    """Settings for the source catalog."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCES_",
        case_sensitive=False,
        extra="ignore",
    )

    seed_on_init: bool = Field(
        default=True,
        description="Seed the default catalog on startup if the table is empty",
    )
    seed_file: str | None = Field(
        default=None,
        description="Alternative seed JSON path (defaults to the bundled catalog)",
    )
