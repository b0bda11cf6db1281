# config.py
"""Application configuration"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Screenshot Memory Search settings, overridable through the environment."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App metadata
    APP_TITLE: str = "Screenshot Memory Search"
    APP_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # Storage
    DATABASE_PATH: str = "screenshot_memory_search.db"
    UPLOAD_DIR: str = "uploads"

    # Logger configuration
    LOGGER_NAME: str = "screenshot_search"
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: Optional[str] = None

    # Vision descriptions
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    VISION_MAX_TOKENS: int = 150

    # OCR
    OCR_LANGUAGE: str = "eng"
    OCR_TIMEOUT_SECONDS: float = 30.0

    # Uploads
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: List[str] = ["image/png", "image/jpg", "image/jpeg", "image/webp"]
    MAX_UPLOAD_FILES: int = 50
    UPLOAD_BATCH_SIZE: int = 3
    UPLOAD_BATCH_DELAY_SECONDS: float = 0.1

    # ============= Search Quality Controls =============
    DEFAULT_SEARCH_LIMIT: int = 5
    MAX_SEARCH_LIMIT: int = 50
    MAX_QUERY_LENGTH: int = 500
    SEARCH_MIN_CONFIDENCE: float = 0.05
    SEARCH_TIE_EPSILON: float = 0.01
    SEARCH_FILENAME_FALLBACK: bool = True
    SEARCH_FILENAME_CONFIDENCE: float = 0.5


settings = Settings()
