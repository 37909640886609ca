"""
Application settings using Pydantic Settings.

Loads configuration from environment variables and .env file.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SharedCredentials(BaseModel):
    """Per-provider credentials shared by every target that has no override."""

    api_key: str = ""
    base_url: str | None = None
    organization_id: str | None = None


class Settings(BaseSettings):
    """Application settings with validation and defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_file: str = Field(default="", description="Optional log file path")
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated CORS origins",
    )

    # Provider calls
    provider_connect_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Connect timeout for vendor calls"
    )
    provider_read_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Read timeout for vendor calls (unset waits indefinitely)",
    )
    default_temperature: float = Field(default=0.7, ge=0, le=2)
    default_max_tokens: int = Field(default=4096, ge=1)
    thinking_budget_tokens: int = Field(default=2048, ge=1)

    # Workflow providers
    workflow_user: str = Field(
        default="chat-panels-user", description="User identifier sent to workflow apps"
    )

    # Dispatch
    relay_url: str = Field(
        default="http://127.0.0.1:8000", description="Base URL of a running relay"
    )
    provider_credentials: dict[str, SharedCredentials] = Field(
        default_factory=dict,
        description="JSON map of provider id to shared credentials",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("provider_credentials")
    @classmethod
    def normalize_provider_ids(cls, v: dict[str, SharedCredentials]) -> dict[str, SharedCredentials]:
        return {key.strip().lower(): value for key, value in v.items() if key.strip()}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
