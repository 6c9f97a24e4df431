"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Access Control Service"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, testing, staging, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./access_control.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Identity provider tokens
    # MUST be set in environment for production; the provider signs with the same secret
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Access control
    AUTO_PROVISION_USERS: bool = True
    DEFAULT_ROLE: str = "user"
    SEED_ON_STARTUP: bool = False

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def validate_secrets(self) -> None:
        """Validate that the token secret is configured in production.

        Raises:
            RuntimeError: If production environment has an empty JWT_SECRET
        """
        if self.is_production and not self.JWT_SECRET:
            raise RuntimeError(
                "CRITICAL: JWT_SECRET environment variable must be set in production. "
                "Do not use default values."
            )

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
