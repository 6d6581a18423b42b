"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API and the worker.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins over the individual POSTGRES_* parts when set.
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="pulse")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # JWT Authentication - REQUIRED for token signing
    SECRET_KEY: str = Field(
        default=...,
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
    ACCESS_TOKEN_EXPIRE_DAYS: int = Field(default=30, ge=1, le=365)
    PASSWORD_RESET_TOKEN_TTL_MINUTES: int = Field(default=60, ge=5, le=1440)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # LLM gateway (OpenAI-compatible chat completions)
    LLM_GATEWAY_BASE_URL: str = Field(default="https://ai.gateway.lovable.dev/v1")
    LLM_API_KEY: Optional[str] = Field(default=None)
    LLM_MODEL: str = Field(default="google/gemini-2.5-flash")
    LLM_TIMEOUT_S: int = Field(default=60)

    # ExerciseDB (public exercise image API)
    EXERCISEDB_BASE_URL: str = Field(default="https://exercisedb.dev/api/v1")
    EXERCISEDB_MATCH_THRESHOLD: float = Field(default=0.3)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Email Configuration (SMTP relay of the transactional provider)
    EMAIL_ENABLED: bool = Field(default=False)
    SMTP_SERVER: str = Field(default="smtp.resend.com")
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: Optional[str] = Field(default="resend")
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    FROM_EMAIL: str = Field(default="noreply@notifications.pulse-ai.app")
    FROM_NAME: str = Field(default="Pulse-AI")
    SUPPORT_FROM_EMAIL: str = Field(default="support@notifications.pulse-ai.app")
    SUPPORT_INBOX_EMAIL: str = Field(default="support@pulse-ai.app")

    # Cache Configuration
    CACHE_TTL_DEFAULT: int = Field(default=300)  # 5 minutes
    PUBLIC_STATS_TTL_S: int = Field(default=3600)  # 1 hour

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Web app base URL (checkout redirects, recovery links, email CTAs).
    WEB_APP_BASE_URL: str = Field(default="http://localhost:5173")

    # Stripe (hosted checkout/portal)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    STRIPE_PRICE_WEEKLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_MONTHLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_YEARLY_ID: Optional[str] = Field(default=None)
    STRIPE_TRIAL_DAYS: int = Field(default=7, ge=0, le=30)
    STRIPE_PORTAL_RETURN_URL: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)


# Global settings instance
settings = Settings()
