"""Application settings using pydantic-settings.

Loads configuration from environment variables (``NDC_`` prefix) with
.env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NDC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Protocol configuration
    config_path: str = Field(
        default="ndc.yaml",
        description="Path to the YAML file mapping NDC methods to URLs and headers",
    )
    environment: str = Field(
        default="prod",
        description="Active environment; selects the server.url_<environment> key",
        validation_alias=AliasChoices("ndc_environment", "ndc_env"),
    )

    # Transport
    timeout: float = Field(
        default=300.0,
        gt=0,
        description="HTTP timeout in seconds (streaming sessions can be long)",
    )
    connect_timeout: float = Field(default=10.0, gt=0)

    # Streaming
    delimiter: str = Field(
        default="<!-- AG-EOM -->",
        min_length=1,
        description="Marker separating logical messages in a streamed body",
    )
    max_callback_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Cap on concurrently running frame callbacks (None = unbounded)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
