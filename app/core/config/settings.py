from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: str = "sqlite:///./formbuilder.db"

    # API settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Form Builder API"
    DEBUG: bool = True
    CORS_ORIGINS: list = ["*"]

    # Logging settings
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # Form settings
    DEFAULT_LANGUAGE: str = "en"
    SUPPORTED_LANGUAGES: list = ["en", "fr", "es", "it", "de"]

    # Stop a submission rewrite batch at the first failed save
    REWRITE_FAIL_FAST: bool = True

    # Seconds to wait for another save of the same form to finish
    FORM_LOCK_TIMEOUT: Optional[float] = None

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    """
    Get settings instance with caching
    Returns:
        Settings instance
    """
    return Settings()
