"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./community_events.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Calendar days and HH:MM clock strings are interpreted in this zone
    EVENT_TIMEZONE: str = "Pacific/Auckland"

    PENCIL_HOLD_DEFAULT_HOURS: int = 48
    PENCIL_HOLD_EXTENSION_DAYS: int = 7
    CONFLICT_BUFFER_MINUTES: int = 60
    HOLD_ELIGIBLE_EVENT_STATUSES: str = "draft,pencil_hold"
    CITY_MATCH_NORMALIZE: bool = False

    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 300

    class Config:
        env_file = ".env"

    @property
    def hold_eligible_statuses(self) -> list[str]:
        return [s.strip() for s in self.HOLD_ELIGIBLE_EVENT_STATUSES.split(",") if s.strip()]


settings = Settings()
