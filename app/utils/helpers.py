from datetime import datetime, timezone
from typing import Optional

from app.core.config.settings import get_settings

# Full language names accepted from older clients
LANGUAGE_ALIASES = {
    "spanish": "es",
    "french": "fr",
    "italian": "it",
    "german": "de",
    "english": "en",
}

def get_utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)

def normalize_language(language: Optional[str]) -> str:
    """
    Map a language name or code onto a supported language code

    Unknown or missing values fall back to the default language.
    """
    settings = get_settings()
    if not language:
        return settings.DEFAULT_LANGUAGE
    value = language.strip().lower()
    value = LANGUAGE_ALIASES.get(value, value)
    if value in settings.SUPPORTED_LANGUAGES:
        return value
    return settings.DEFAULT_LANGUAGE
