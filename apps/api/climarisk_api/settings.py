"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

DEV_ENVIRONMENTS = ("development", "dev", "test")


class Settings(BaseSettings):
    """ClimaRisk settings, read from the environment and an optional ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Store: DATABASE_URL wins; otherwise assembled from the POSTGRES_* parts
    database_url: Optional[str] = None
    postgres_user: str = "climarisk"
    postgres_password: str = "climarisk_dev_password"
    postgres_db: str = "climarisk"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Broker and refresh queue
    redis_url: str = "redis://localhost:6379/0"
    refresh_queue_name: str = "climarisk"

    # Ledger appends
    ledger_append_max_attempts: int = 5
    ledger_append_backoff_seconds: float = 0.05
    ledger_lock_key: int = 290_001  # pg_advisory_xact_lock key

    # OpenWeather sensor
    openweather_base_url: str = "https://api.openweathermap.org"
    openweather_api_key: Optional[str] = None
    openweather_api_key_file: str = "/run/secrets/owm_api_key"
    sensor_timeout_seconds: float = 10.0
    sensor_max_retries: int = 3

    # CORS for the dashboard
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Effective SQLAlchemy URL."""
        if self.database_url:
            return self.database_url
        url = URL.create(
            "postgresql",
            username=self.postgres_user,
            password=self.postgres_password,
            host=self.postgres_host,
            port=self.postgres_port,
            database=self.postgres_db,
        )
        return url.render_as_string(hide_password=False)

    @property
    def is_dev_environment(self) -> bool:
        return self.environment.lower() in DEV_ENVIRONMENTS

    def validate_production_settings(self):
        """Refuse to start outside development without sensor credentials."""
        if self.ledger_append_max_attempts < 1:
            raise ValueError("LEDGER_APPEND_MAX_ATTEMPTS must be at least 1.")
        if self.is_dev_environment:
            return
        if not self.openweather_api_key and not self.openweather_api_key_file:
            raise ValueError(
                "OPENWEATHER_API_KEY or OPENWEATHER_API_KEY_FILE is required outside development."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
