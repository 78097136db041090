# earnings_engine/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

from earnings_engine.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    # Values come from the process environment (Docker Compose / k8s secrets).
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Database URLs ---
    DATABASE_URL_PROD: str = ""
    DATABASE_URL_LOCAL: str = "sqlite:///./earnings_engine.db"

    # Auth
    JWT_SECRET: str = ""
    INTERNAL_API_KEY: str = ""

    # --- Payment provider ---
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_VERSION: str = "2023-10-16"
    STRIPE_MAX_NETWORK_RETRIES: int = 2
    PAYOUT_CURRENCY: str = "usd"

    # --- Engine tuning ---
    BATCH_PAYOUT_MIN_THRESHOLD: int = 10000
    FAILOVER_MAX_RETRIES: int = 5
    FAILOVER_QUEUE_CAPACITY: int = 10000
    AUDIT_LOG_CAPACITY: int = 10000
    TASK_LEASE_SECONDS: int = 3600
    SCHEDULER_ENABLED: bool = True

    LOG_LEVEL: str = "INFO"

    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )

    def require_payment_credentials(self) -> None:
        """
        Fail fast when the provider cannot be reached.

        Raises:
            ConfigurationError: If the Stripe secret key is not set
        """
        if not self.STRIPE_SECRET_KEY:
            raise ConfigurationError(
                code="STRIPE_NOT_CONFIGURED",
                message="STRIPE_SECRET_KEY is not set; payouts and payment verification are unavailable",
            )


# Create a single instance of the settings
settings = Settings()
