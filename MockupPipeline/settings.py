# settings.py
import os
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "Mockup Pipeline"
    API_V1_PREFIX: str = "/api"

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./dev.db"  # default local SQLite
    )

    # Printful
    PRINTFUL_API_KEY: str = os.getenv("PRINTFUL_API_KEY", "")
    PRINTFUL_API_URL: str = "https://api.printful.com"
    PRINTFUL_TIMEOUT: float = 30.0  # Seconds

    # Mockup generation
    MOCKUP_MARKER_ARTWORK_URL: str = os.getenv(
        "MOCKUP_MARKER_ARTWORK_URL",
        "https://storage.example.com/placeholder-templates/magenta-placeholder-4000x4000.png",
    )
    MOCKUP_PLACEMENT: str = "default"
    MOCKUP_FORMAT: str = "png"
    MOCKUP_POLL_INTERVAL_SECONDS: float = 2.0
    MOCKUP_POLL_MAX_ATTEMPTS: int = 30
    MOCKUP_GROUP_COOLDOWN_SECONDS: float = 60.0  # Printful rate limit is strict
    MOCKUP_ERROR_LOG_LIMIT: int = 10
    # SQL ILIKE patterns for template URLs that must be regenerated
    MOCKUP_INVALID_URL_PATTERNS: List[str] = ["%placeholder%"]

    # Cloudinary (optional re-hosting of rendered templates)
    CLOUDINARY_CLOUD_NAME: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
    CLOUDINARY_API_KEY: str = os.getenv("CLOUDINARY_API_KEY", "")
    CLOUDINARY_API_SECRET: str = os.getenv("CLOUDINARY_API_SECRET", "")
    CLOUDINARY_MOCKUP_FOLDER: str = "mockup_templates"

    # Frontend URL (CORS)
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    class Config:
        env_file = ".env"
        case_sensitive = True


# ✅ Instantiate settings globally
settings = Settings()
