from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Database: DATABASE_URL wins, otherwise POSTGRES_* when a host is given
    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "reverie"
    POSTGRES_USER: str = "reverie"
    POSTGRES_PASSWORD: str = "reverie"
    RUN_MIGRATIONS: bool = False

    REDIS_URL: Optional[str] = None
    CART_TTL_SECONDS: int = 60 * 60 * 24 * 30

    FREE_SHIPPING_THRESHOLD: int = 2000
    STANDARD_SHIPPING_FEE: int = 150
    ORDER_NUMBER_PREFIX: str = "RR"

    ADMIN_JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    ADMIN_TOKEN_TTL_MINUTES: int = 60

    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def database_url(self) -> Optional[str]:
        """Resolved connection string, or None when no database is configured."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.POSTGRES_HOST:
            return (
                f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return None

@lru_cache
def get_settings() -> Settings:
    return Settings()
