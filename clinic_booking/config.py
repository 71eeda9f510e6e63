"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Clinic Booking API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Appointment store (system of record). Empty URL selects the in-process store.
    store_base_url: str = Field(default="", alias="STORE_BASE_URL")
    store_api_key: str = Field(default="", alias="STORE_API_KEY")
    store_timeout: float = Field(default=10.0, gt=0, alias="STORE_TIMEOUT")

    # Booking
    cache_stale_time: float = Field(
        default=120.0,
        ge=0,
        alias="CACHE_STALE_TIME",
        description="Seconds before the cached appointment list is considered stale",
    )
    default_appointment_duration: int = Field(
        default=30, gt=0, alias="DEFAULT_APPOINTMENT_DURATION"
    )
    temp_id_prefix: str = Field(default="temp-", min_length=1, alias="TEMP_ID_PREFIX")
    strict_status_transitions: bool = Field(
        default=False,
        alias="STRICT_STATUS_TRANSITIONS",
        description="Reject status changes that are not in the transition table",
    )

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def uses_remote_store(self) -> bool:
        """Check if a remote appointment store is configured."""
        return bool(self.store_base_url.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
