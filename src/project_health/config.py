"""Runtime configuration for project health service."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    service_name: str = "project-health-service"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    metrics_enabled: bool = True
    event_produced_by: str = "services/project-health-service"

    database_url: str = "sqlite:///./project_health.db"
    sql_echo: bool = False

    window_days: int = 28
    recent_signal_limit: int = 4
    fallback_score: int = 50

    model_config = SettingsConfigDict(env_prefix="PROJECT_HEALTH_", extra="ignore")


def get_settings() -> Settings:
    """Return settings object."""

    return Settings()
