"""Engine configuration with environment variables."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MIN_POLL_INTERVAL_SECONDS = 30
MAX_POLL_INTERVAL_SECONDS = 120


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    LOG_LEVEL: str = "INFO"

    # Persistence API (REST/JSON). Empty means the in-memory store is used.
    PERSISTENCE_API_URL: str = ""
    PERSISTENCE_API_TOKEN: str = ""

    # Bounded timeout applied to every persistence call (seconds)
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    # Attempts per persistence call; 1 disables automatic retries
    PERSISTENCE_MAX_ATTEMPTS: int = 1

    # Notification refresh cadence (seconds)
    NOTIFICATION_POLL_INTERVAL_SECONDS: int = 120

    # SLA derivation
    SLA_WARNING_MINUTES: int = 15
    SLA_WARNING_DEDUPE_MINUTES: int = 60
    SLA_OVERDUE_DEDUPE_MINUTES: int = 30

    # Overdue notifications reuse the step id shifted by this offset
    OVERDUE_NOTIFICATION_ID_OFFSET: int = 1000

    @field_validator("NOTIFICATION_POLL_INTERVAL_SECONDS")
    @classmethod
    def clamp_poll_interval(cls, value: int) -> int:
        """Keep polling within the supported 30s-120s window."""
        return max(MIN_POLL_INTERVAL_SECONDS, min(MAX_POLL_INTERVAL_SECONDS, value))

    @property
    def persistence_enabled(self) -> bool:
        """True when a remote persistence API is configured."""
        return bool(self.PERSISTENCE_API_URL.strip())

    @property
    def persistence_base_url(self) -> str:
        return self.PERSISTENCE_API_URL.strip().rstrip("/")


settings = Settings()
