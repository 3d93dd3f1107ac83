# backoffice/core/config.py

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from backoffice.utils.logger import get_logger

logger = get_logger(__name__)


#
# =====================================================
#                    SETTINGS CLASS
# =====================================================
#


class Settings(BaseSettings):
    """
    Application Settings
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "local"
    allowed_cors_urls: str = "*"

    # Database
    database_url: str = "sqlite:///./backoffice.db"
    db_echo: bool = False
    db_pool_pre_ping: bool = True

    # Concurrency control for the payment engine
    # lock_timeout_ms is applied per transaction on PostgreSQL (SET LOCAL lock_timeout)
    lock_timeout_ms: int = 5000
    conflict_max_retries: int = 3

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "console"

    # Celery (audit record delivery)
    celery_broker: str = "redis://localhost:6379/0"
    celery_backend: Optional[str] = "redis://localhost:6379/1"
    audit_task_max_retries: int = 5

    #
    # ---------------------------
    #  DERIVED PROPERTIES
    # ---------------------------
    #
    @property
    def cors_origins(self) -> list[str]:
        return [url.strip() for url in self.allowed_cors_urls.split(",") if url.strip()]


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process."""
    loaded = Settings()
    logger.info(
        "Loaded settings",
        environment=loaded.environment,
        log_level=loaded.log_level,
        conflict_max_retries=loaded.conflict_max_retries,
    )
    return loaded


settings = get_settings()
