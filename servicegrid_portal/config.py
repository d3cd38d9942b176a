from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/servicegrid"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Staff auth (JWT)
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Email (Resend)
    RESEND_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "noreply@resend.dev"
    EMAIL_FROM_NAME: str = "ServiceGrid"

    # Links embedded in emails
    PORTAL_BASE_URL: str = "http://localhost:5173"
    APP_BASE_URL: str = "http://localhost:5173"

    # Portal auth policy
    MAGIC_LINK_EXPIRE_MINUTES: int = 15
    PORTAL_SESSION_EXPIRE_DAYS: int = 30
    MAX_FAILED_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15

    # Request throttling for unauthenticated portal actions
    PORTAL_RATE_LIMIT_PER_MINUTE: int = 20
    REDIS_URL: str | None = None

    # Background jobs
    SCHEDULER_ENABLED: bool = False

    # Connection pool and query diagnostics
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    SLOW_QUERY_THRESHOLD_MS: int = 500

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SQL_ECHO: bool = False

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo prints bound parameters; never enabled in production."""
        return self.SQL_ECHO and not self.is_production

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
