import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("leadmail.ingestion.config")


class EmailImportSettings(BaseSettings):
    """Settings for the Gmail lead import worker.

    Environment variables (examples):

    EMAIL_IMPORT_INTERVAL_MINUTES=30
    EMAIL_IMPORT_INITIAL_DELAY_SECONDS=30
    EMAIL_IMPORT_LOOKBACK_MINUTES=60
    EMAIL_IMPORT_WORKER_ENABLED=true
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_IMPORT_",
        env_file=".env",
        extra="ignore",
    )

    worker_enabled: bool = True
    interval_minutes: int = 30
    initial_delay_seconds: int = 30
    lookback_minutes: int = 60
    max_results: int = 50
    # Pages listed per source while looking for the previous watermark.
    max_pages: int = 5
    lead_validity_months: int = 3
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    request_timeout_seconds: float = 30.0

    @field_validator(
        "interval_minutes",
        "lookback_minutes",
        "max_results",
        "max_pages",
        "retry_attempts",
        mode="before",
    )
    @classmethod
    def validate_positive(cls, v, info):
        val = int(v)
        if val <= 0:
            raise ValueError(f"EMAIL_IMPORT_{info.field_name.upper()} must be > 0")
        return val

    @field_validator("max_results", mode="after")
    @classmethod
    def cap_page_size(cls, v):
        # Gmail rejects maxResults above 500.
        return min(v, 500)

    @field_validator("initial_delay_seconds", mode="before")
    @classmethod
    def validate_delay(cls, v):
        val = int(v)
        if val < 0:
            raise ValueError("EMAIL_IMPORT_INITIAL_DELAY_SECONDS must be >= 0")
        return val

    @property
    def interval_seconds(self) -> int:
        return self.interval_minutes * 60


@lru_cache(maxsize=1)
def get_email_import_settings() -> EmailImportSettings:
    settings = EmailImportSettings()
    logger.info(
        "EmailImportSettings loaded (enabled=%s, interval_minutes=%s, lookback_minutes=%s)",
        settings.worker_enabled,
        settings.interval_minutes,
        settings.lookback_minutes,
    )
    return settings


email_import_settings = get_email_import_settings()
