"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Development environment configuration"""

    def __post_init__(self):
        # First load the base configuration (including API keys)
        base_config = AppConfig.load()
        self.api = base_config.api
        self.rate_limit = base_config.rate_limit

        # Development-specific overrides
        self.environment = "development"
        self.debug = True

        # More verbose logging in development
        self.logging.level = "DEBUG"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/dev-app.log"

        # Development UI changes
        self.ui.window_title = "AI Support (DEV)"

        # Shorter cooldowns make the throttle easier to exercise by hand
        self.rate_limit.interval = 5
        self.rate_limit.min_time_between_messages = 500

        # Let local tooling (curl, httpie) through the bot check
        self.security.enable_bot_detection = False


def get_development_config() -> DevelopmentConfig:
    """Get development-specific configuration"""
    return DevelopmentConfig()
