"""
Environment-specific configurations for the chat widget
"""

import os
from config.app_config import AppConfig


def get_environment_config() -> AppConfig:
    """
    Get configuration based on APP_ENV

    'development' and 'production' (case-insensitive) select their override
    classes; any other value falls back to the base configuration.
    """
    env = os.getenv("APP_ENV", "development").lower()

    if env == "production":
        from .production import get_production_config
        return get_production_config()

    if env == "development":
        from .development import get_development_config
        return get_development_config()

    return AppConfig.load()
