from pydantic_settings import BaseSettings
from typing import List
import logging
import os


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "firepit"
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./firepit.db"
    )

    # JWT
    JWT_SECRET: str = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # Permission lookups
    ROLE_QUERY_LIMIT: int = 100
    OVERRIDE_QUERY_LIMIT: int = 1000

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1"]

    class Config:
        env_file = ".env"


settings = Settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(settings.APP_NAME)
