from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "usdc-subscriptions"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_URL: str = "https://paylobster.com"  # Base URL of the customer approval page
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"
    LOG_LEVEL: str = "INFO"

    # Shared secret for the scheduler calling the charge endpoint
    INTERNAL_SERVICE_TOKEN: str = ""

    # Settlement service (executes USDC transferFrom on-chain)
    SETTLEMENT_API_URL: str = ""
    SETTLEMENT_API_KEY: str = ""
    SETTLEMENT_TIMEOUT_SECONDS: float = 30.0
    VERIFY_APPROVAL_ON_CHAIN: bool = False

    # Billing engine
    CHARGE_LEASE_SECONDS: int = 300
    PAST_DUE_RETRY_HOURS: int = 24
    PAST_DUE_MAX_RETRIES: int = 3
    MISSED_CYCLE_POLICY: str = "single"  # "single" or "skip_ahead"
    APPROVAL_HORIZON_MONTHS: int = 6
    BATCH_CRON_MINUTES: int = 5

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def settlement_enabled(self) -> bool:
        return bool(self.SETTLEMENT_API_URL)


settings = Settings()
