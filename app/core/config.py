from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    STORE_PROVIDER: str = "memory"  # "memory", "json", "firestore"
    DATA_DIR: str = "./data/documents"
    STORAGE_MAX_BATCH_SIZE: int = 500

    FIREBASE_PROJECT_ID: str | None = None
    FIREBASE_CREDENTIALS_PATH: str | None = None

    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_TIMEOUT_SECONDS: float = 10.0
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    CRON_SECRET: str | None = None

    GRACE_PERIOD_DAYS: int = 7
    TRIAL_WARNING_DAYS: int = 2

    RATE_LIMIT_MAX_REQUESTS: int = 30
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    REDIS_URL: str | None = None

    SIDE_EFFECT_WORKERS: int = 4

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in {"dev", "local"}


settings = Settings()
