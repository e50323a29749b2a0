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
    )

    # Application
    app_name: str = Field(default="Cardiocare Clinical Workflow API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT (tokens are issued by the authentication service)
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Risk policy
    risk_alert_threshold: int = Field(default=20, ge=1, le=100, alias="RISK_ALERT_THRESHOLD")
    risk_level_moderate_min: int = Field(default=40, alias="RISK_LEVEL_MODERATE_MIN")
    risk_level_high_min: int = Field(default=70, alias="RISK_LEVEL_HIGH_MIN")

    # Scheduling
    scheduling_timezone: str = Field(default="UTC", alias="SCHEDULING_TIMEZONE")
    default_appointment_minutes: int = Field(default=30, alias="DEFAULT_APPOINTMENT_MINUTES")
    confirmation_token_ttl_hours: int = Field(default=48, alias="CONFIRMATION_TOKEN_TTL_HOURS")
    no_show_grace_minutes: int = Field(default=60, alias="NO_SHOW_GRACE_MINUTES")
    auto_promote_waiting_list: bool = Field(default=True, alias="AUTO_PROMOTE_WAITING_LIST")
    availability_cache_ttl: int = Field(default=300, alias="AVAILABILITY_CACHE_TTL")

    # Booking serialization
    booking_lock_backend: str = Field(
        default="local",
        alias="BOOKING_LOCK_BACKEND",
        description="'local' for in-process locks, 'redis' for distributed locks",
    )
    booking_lock_timeout_seconds: float = Field(default=30.0, alias="BOOKING_LOCK_TIMEOUT_SECONDS")
    booking_lock_wait_seconds: float = Field(default=10.0, alias="BOOKING_LOCK_WAIT_SECONDS")

    # Workflow events
    event_publisher: str = Field(
        default="log",
        alias="EVENT_PUBLISHER",
        description="'log' writes events to the structured log, 'redis' publishes them",
    )
    event_channel: str = Field(default="clinical-workflow-events", alias="EVENT_CHANNEL")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
