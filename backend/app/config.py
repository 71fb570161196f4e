"""
backend/app/config.py

Purpose:
    Central settings loading for the tips backend and CLI tools.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "dailytips"
    # Multi-document transactions need a replica set; disable for a standalone dev mongod.
    MONGO_TRANSACTIONS_ENABLED: bool = True

    # Shared key for admin write endpoints (X-Admin-Key header). Empty = writes disabled.
    ADMIN_API_KEY: str = ""
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Tips are published per calendar day in this zone
    TIPS_TIMEZONE: str = "Europe/Lisbon"
    TIPS_DEFAULT_PAGE_SIZE: int = 20
    TIPS_PUBLIC_MAX_LIMIT: int = 100
    TIPS_INTERNAL_MAX_LIMIT: int = 10000

    LOG_LEVEL: str = "INFO"
    EXPORT_DIR: str = "export"

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
