from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = Field("sqlite:///./dev.db")

    # Redis / Celery
    REDIS_URL: str = Field("redis://localhost:6379/0")
    CELERY_BROKER_URL: str | None = Field(None)
    CELERY_TASK_ALWAYS_EAGER: bool = Field(False)

    # JWT / sessions
    JWT_SECRET_KEY: str = Field("replace-me-with-strong-secret")
    JWT_ALGORITHM: str = Field("HS256")
    ACCESS_TOKEN_EXPIRE_SECONDS: int = Field(60 * 60 * 24 * 7)
    COOKIE_SECURE: bool = Field(False)
    MAX_LOGIN_ATTEMPTS: int = Field(5)
    LOCKOUT_MINUTES: int = Field(15)

    # Providers
    SEVEN_IO_API_KEY: str = Field("")
    MILLIONVERIFIER_API_KEY: str = Field("")
    PROVIDER_TIMEOUT_SECONDS: int = Field(30)

    # Verification
    VERIFICATION_CACHE_TTL: int = Field(86400)
    COST_PER_LOOKUP: float = Field(0.01)
    COST_CURRENCY: str = Field("EUR")
    PROGRESS_UPDATE_EVERY: int = Field(10)

    # HTTP
    CORS_ALLOW_ORIGINS: str = Field("http://localhost:3000")


settings = Settings()


CACHE_LOOKUP_CHUNK: int = 500
EMAIL_BATCH_DELAY_SECONDS: float = 0.1
MIN_PASSWORD_LENGTH: int = 6
INVITE_CODE_LENGTH: int = 16
