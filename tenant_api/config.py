"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Note: We use lru_cache on get_settings() to ensure we only load
    configuration once. Tests that need different values must call
    get_settings.cache_clear().
    """

    # Platform database holding the tenant directory
    DATABASE_URL: str = "postgresql://sa:sa@localhost:5432/platform_db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Maintenance database used to ask the server which databases exist
    CATALOG_DATABASE_URL: str = "postgresql://sa:sa@localhost:5432/postgres"

    # Per-tenant store location. {db_name} comes from the directory record.
    TENANT_DATABASE_URL_TEMPLATE: str = "postgresql://sa:sa@localhost:5432/{db_name}"
    TENANT_POOL_SIZE: int = 5
    TENANT_MAX_OVERFLOW: int = 10

    # Access token signing
    SECRET_KEY: str = "your-256-bit-secret-key-here-must-be-at-least-32-characters-long"
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "HrSaaS"
    JWT_AUDIENCE: str = "HrSaaS"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Password hashing
    # "sha256" keeps hashes compatible with stores created by the provisioning
    # service; "bcrypt" switches new hashes to passlib's bcrypt.
    PASSWORD_HASH_SECRET: str = "default-salt"
    PASSWORD_HASH_SCHEME: str = "sha256"

    # Lockout after repeated failures. 0 disables lockout.
    MAX_FAILED_LOGIN_ATTEMPTS: int = 0
    LOCKOUT_MINUTES: int = 15

    # Redis for per-tenant rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 600

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    def tenant_database_url(self, db_name: str) -> str:
        """Build the connection URL for a tenant store."""
        return self.TENANT_DATABASE_URL_TEMPLATE.format(db_name=db_name)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    """
    return Settings()
