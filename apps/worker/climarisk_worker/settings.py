"""Worker settings: the API settings plus worker-only scheduling options."""

from functools import lru_cache

from climarisk_api.settings import Settings


class WorkerSettings(Settings):
    """Shares store, broker and sensor configuration with the API."""

    # Seconds between fan-out refreshes of every active entity; 0 disables beat
    refresh_interval_seconds: int = 0


@lru_cache()
def get_settings() -> WorkerSettings:
    """Get cached settings instance."""
    return WorkerSettings()
