"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class ProductionConfig(AppConfig):
    """Production environment configuration"""

    def __post_init__(self):
        base_config = AppConfig.load()
        self.api = base_config.api
        self.rate_limit = base_config.rate_limit

        # Production-specific overrides
        self.environment = "production"
        self.debug = False

        # Production logging - less verbose, focus on errors
        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-app.log"

        # Production security settings
        self.security.enable_bot_detection = True
        self.security.enable_shield = True
        self.security.content_filtering.enabled = True

        # Production LLM settings - more conservative
        self.api.temperature = 0.3


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
