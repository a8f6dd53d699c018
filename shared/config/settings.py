"""
Kitchen feed settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Every field can be overridden with a KITCHEN_-prefixed environment
variable (e.g. KITCHEN_WS_URL) or from a local .env file.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Kitchen feed settings with defaults for local development."""

    model_config = SettingsConfigDict(
        env_prefix="KITCHEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend endpoints
    api_base_url: str = "http://localhost:3000/api/v1"
    ws_url: str = "ws://localhost:3000"

    # Restaurant whose kitchen this process serves (empty = must be passed explicitly)
    restaurant_id: str = ""
    auto_connect: bool = True

    # Bearer token for the REST API; also sent as ?token= on the event channel
    api_token: str = ""

    # Sound alerts
    sound_enabled: bool = True
    volume: float = Field(default=0.5, ge=0.0, le=1.0)

    # Environment
    environment: str = "development"
    debug: bool = False

    # WebSocket reconnection
    ws_reconnect_attempts: int = Field(default=5, ge=1)  # Attempts before giving up and surfacing the error
    ws_reconnect_delay: float = Field(default=3.0, gt=0)  # Initial delay in seconds, never retried faster
    ws_max_reconnect_delay: float = Field(default=30.0, gt=0)  # Backoff cap in seconds
    ws_open_timeout: float = Field(default=10.0, gt=0)  # Handshake timeout in seconds
    ws_max_message_size: int = Field(default=64 * 1024, gt=0)  # 64 KB

    # REST client
    http_timeout: float = Field(default=10.0, gt=0)

    # SLA ticker cadence in seconds
    sla_tick_interval: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def check_reconnect_delays(self) -> "Settings":
        if self.ws_max_reconnect_delay < self.ws_reconnect_delay:
            raise ValueError("ws_max_reconnect_delay must be >= ws_reconnect_delay")
        return self

    def validate_production(self) -> list[str]:
        """
        Validate settings that must be explicit outside development.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if self.ws_url.startswith("ws://"):
                errors.append("WS_URL must use wss:// in production")

            if self.api_base_url.startswith("http://"):
                errors.append("API_BASE_URL must use https:// in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
