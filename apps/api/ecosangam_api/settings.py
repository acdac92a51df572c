"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_db: str = "ecosangam"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    sqlite_path: str = "./ecosangam.db"

    # Key-value store (sessions, offline measurement queues)
    kv_backend: str = "redis"  # redis, memory
    redis_url: str = "redis://localhost:6379/0"
    kv_key_prefix: str = "ecosangam"

    # API
    api_port: int = 8000
    api_host: str = "0.0.0.0"
    secret_key: str = "dev-secret-key-change-in-production"
    environment: str = "development"

    # Sessions and credentials
    session_ttl_hours: int = 24
    bcrypt_rounds: int = 12

    # Simulated remote services (seconds)
    ledger_confirmation_delay_seconds: float = 2.0
    record_submission_delay_seconds: float = 2.0

    # Credit issuance
    crediting_period_years: float = 1.0
    registry_country_code: str = "IN"
    credit_issuer: str = "NCCR"
    partial_retirement_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        if self.postgres_user and self.postgres_password:
            return (
                f"postgresql://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        return f"sqlite:///{self.sqlite_path}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() in ("development", "test", "dev")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.secret_key.startswith("dev-"):
            raise ValueError(
                "SECRET_KEY must be set in production. "
                "Do not use the development default."
            )
        if self.kv_backend == "memory":
            raise ValueError(
                "KV_BACKEND=memory is not allowed in production. "
                "Sessions and offline queues would be lost on restart. Use KV_BACKEND=redis."
            )
        if self.bcrypt_rounds < 10:
            raise ValueError("BCRYPT_ROUNDS below 10 is not allowed in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
