"""photoqueue configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from photoqueue.config import get_settings

    settings = get_settings()
    print(settings.max_retries)
    print(settings.load_default_attributes())
"""

from functools import lru_cache

from photoqueue.config.settings import Settings

__all__ = ["Settings", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are process-wide and read once at startup; the cached instance
    is shared by every module. To reload settings, call
    get_settings.cache_clear() first.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()
