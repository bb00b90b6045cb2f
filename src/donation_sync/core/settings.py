"""Application settings and configuration.

This module defines all configuration options for the donation sync engine.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the donation sync engine.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Donation Sync", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local durable store
    database_url: str = Field(default="sqlite:///./donation_sync.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Remote donation receipt API
    donation_api_base_url: str = Field(
        default="http://localhost:5158",
        alias="DONATION_API_BASE_URL",
    )
    donation_api_submit_path: str = Field(
        default="/api/donorreceipts/quick-with-receipt",
        alias="DONATION_API_SUBMIT_PATH",
    )
    donation_api_token: str | None = Field(default=None, alias="DONATION_API_TOKEN")
    donation_api_timeout_seconds: float = Field(
        default=15.0,
        alias="DONATION_API_TIMEOUT_SECONDS",
    )
    donation_api_send_idempotency_key: bool = Field(
        default=True,
        alias="DONATION_API_SEND_IDEMPOTENCY_KEY",
    )

    # Connectivity monitoring
    connectivity_probe: str = Field(default="http", alias="CONNECTIVITY_PROBE")
    connectivity_probe_url: str | None = Field(default=None, alias="CONNECTIVITY_PROBE_URL")
    connectivity_probe_host: str | None = Field(default=None, alias="CONNECTIVITY_PROBE_HOST")
    connectivity_probe_port: int = Field(default=443, alias="CONNECTIVITY_PROBE_PORT")
    connectivity_poll_interval_seconds: float = Field(
        default=5.0,
        alias="CONNECTIVITY_POLL_INTERVAL_SECONDS",
    )
    connectivity_probe_timeout_seconds: float = Field(
        default=3.0,
        alias="CONNECTIVITY_PROBE_TIMEOUT_SECONDS",
    )
    connectivity_stable_samples: int = Field(
        default=2,
        ge=1,
        alias="CONNECTIVITY_STABLE_SAMPLES",
    )

    # Sync policy
    sync_interval_seconds: float = Field(default=300.0, alias="SYNC_INTERVAL_SECONDS")
    sync_max_attempts: int = Field(default=3, ge=1, alias="SYNC_MAX_ATTEMPTS")
    sync_inter_record_delay_seconds: float = Field(
        default=0.5,
        alias="SYNC_INTER_RECORD_DELAY_SECONDS",
    )

    # Donation records
    receipt_number_prefix: str = Field(default="OFF", alias="RECEIPT_NUMBER_PREFIX")
    cash_payment_method: str = Field(default="Cash", alias="CASH_PAYMENT_METHOD")
    synced_retention_days: int = Field(default=30, ge=0, alias="SYNCED_RETENTION_DAYS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def effective_probe_url(self) -> str:
        """Return the URL polled by the HTTP connectivity probe.

        Falls back to the remote API's ``/health`` endpoint.
        """
        if self.connectivity_probe_url:
            return self.connectivity_probe_url
        return self.donation_api_base_url.rstrip("/") + "/health"


settings = Settings()  # type: ignore[call-arg]
