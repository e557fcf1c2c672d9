from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://disputedesk:disputedesk_dev@db:5432/disputedesk"
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT_SECONDS: float = 5.0
    DB_COMMAND_TIMEOUT_SECONDS: float = 5.0

    # Redis (Celery broker / result backend)
    REDIS_URL: str = "redis://redis:6379/0"

    # Identity tokens issued by the auth provider
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    ALLOWED_ORIGINS: str = "*"

    # Payment / escrow collaborator
    ESCROW_API_URL: str = "https://escrow.internal/api/v1"
    ESCROW_API_KEY: str = "mock_escrow_key"
    SETTLEMENT_MAX_RETRIES: int = 8
    SETTLEMENT_RETRY_BACKOFF_SECONDS: int = 30

    # Booking lookup collaborator
    BOOKINGS_API_URL: str = "https://bookings.internal/api/v1"
    BOOKINGS_API_KEY: str = "mock_bookings_key"

    # Notification dispatcher
    NOTIFIER_API_URL: str = "https://notifier.internal/api/v1"
    NOTIFIER_API_KEY: str = "mock_notifier_key"

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
