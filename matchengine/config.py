from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://matchengine:matchengine_dev@db:5432/matchengine"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    ALLOWED_ORIGINS: str = "*"

    # SendGrid
    SENDGRID_API_KEY: str = "mock_sendgrid_key"
    FROM_EMAIL: str = "matches@matchengine.app"

    # Twilio
    TWILIO_ACCOUNT_SID: str = "mock_twilio_sid"
    TWILIO_AUTH_TOKEN: str = "mock_twilio_token"
    TWILIO_FROM_NUMBER: str = "+15555555555"

    # Matching
    MATCH_TOP_K: int = 5
    MATCH_MIN_SCORE: int = 40
    DEFAULT_PRIORITY_SCORE: int = 50
    AUTO_ROUTE_ON_CREATE: bool = False
    REQUEST_TTL_HOURS: int = 72

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "human"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
