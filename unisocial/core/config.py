# unisocial/core/config.py

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./unisocial.db"

    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Paginated list endpoints
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    CORS_ORIGINS: List[str] = ["*"]

    # .env is looked up in the directory the server is started from
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
