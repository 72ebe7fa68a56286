"""
Unified Configuration System for the support chatbot widget

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import streamlit as st
import os


RATE_LIMIT_STRATEGIES = ("token-bucket", "sliding-window", "fixed-window")


@dataclass
class APIConfig:
    """LLM backend configuration settings"""
    model: str = "gpt-4o-mini"
    system_prompt: str = (
        "You are a helpful customer support assistant. Answer concisely. "
        "You may offer follow-up options with {{choice:Option}} and point to pages "
        "with {{link:https://example.com|Label}}."
    )
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: int = 30000  # ms
    streaming: bool = True

    openai_api_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "https://cloud.langfuse.com"

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls._from_mapping(os.environ)

        try:
            return cls._from_mapping(st.secrets)
        except Exception:
            # Fallback to environment variables if secrets not available
            return cls._from_mapping(os.environ)

    @classmethod
    def _from_mapping(cls, source) -> 'APIConfig':
        return cls(
            model=source.get("CHATBOT_MODEL", cls.model),
            openai_api_key=source.get("OPENAI_API_KEY", ""),
            langfuse_secret_key=source.get("LANGFUSE_SECRET_KEY", ""),
            langfuse_public_key=source.get("LANGFUSE_PUBLIC_KEY", ""),
            langfuse_host=source.get("LANGFUSE_HOST", "https://cloud.langfuse.com")
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to keyword arguments for the LangChain chat model"""
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout / 1000,
            "streaming": self.streaming
        }


@dataclass
class RateLimitConfig:
    """Client throttle and server token bucket settings"""
    capacity: int = 5
    refill_rate: int = 2
    interval: int = 10  # seconds, also the client cooldown after a 429
    min_time_between_messages: int = 1000  # ms
    max_message_length: int = 1000  # chars
    strategy: str = "token-bucket"
    burst_allowance: int = 2
    grace_period: int = 5


@dataclass
class ContentFilteringConfig:
    """Content filtering settings"""
    enabled: bool = True
    strict_mode: bool = False
    custom_filters: List[str] = field(default_factory=list)


@dataclass
class SecurityConfig:
    """Request protection settings"""
    enable_bot_detection: bool = True
    enable_shield: bool = True
    allowed_bots: List[str] = field(default_factory=list)
    content_filtering: ContentFilteringConfig = field(default_factory=ContentFilteringConfig)


@dataclass
class UIConfig:
    """User interface configuration"""
    window_title: str = "AI Support"
    input_placeholder: str = "Ask me anything..."
    rate_limited_placeholder: str = "Rate limited, please wait..."
    welcome_message: str = """👋 **Hi there!**

I'm the support assistant. Ask me a question or pick one of the topics below.

{{choice:What can you do?}}
{{choice:How do I get started?}}"""


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = True
    log_file: str = "logs/app.log"
    enable_langfuse_tracing: bool = True


# (field, minimum, maximum) bounds checked by AppConfig.validate
_RATE_LIMIT_BOUNDS = (
    ("capacity", 1, 100),
    ("refill_rate", 1, 50),
    ("interval", 1, 300),
    ("min_time_between_messages", 100, 10000),
    ("max_message_length", 10, 10000),
    ("burst_allowance", 0, 10),
    ("grace_period", 0, 60),
)

_API_BOUNDS = (
    ("temperature", 0, 2),
    ("max_tokens", 10, 8192),
    ("timeout", 1000, 60000),
)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @property
    def welcome_message(self) -> str:
        return self.ui.welcome_message

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        # Load API configuration from secrets/environment
        config.api = APIConfig.from_secrets()

        rate_limit = config.rate_limit
        rate_limit.interval = _env_int("CHATBOT_RATE_LIMIT_INTERVAL", rate_limit.interval)
        rate_limit.min_time_between_messages = _env_int(
            "CHATBOT_MIN_TIME_BETWEEN_MESSAGES", rate_limit.min_time_between_messages
        )
        rate_limit.max_message_length = _env_int(
            "CHATBOT_MAX_MESSAGE_LENGTH", rate_limit.max_message_length
        )

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        # Check required API keys
        if not self.api.openai_api_key:
            errors.append("OpenAI API key is required")

        if not self.api.model:
            errors.append("api.model must not be empty")

        if len(self.api.system_prompt or "") < 10:
            errors.append("api.system_prompt must be at least 10 characters")

        for name, low, high in _API_BOUNDS:
            value = getattr(self.api, name)
            if not low <= value <= high:
                errors.append(f"api.{name} must be between {low} and {high} (got {value})")

        for name, low, high in _RATE_LIMIT_BOUNDS:
            value = getattr(self.rate_limit, name)
            if not low <= value <= high:
                errors.append(f"rate_limit.{name} must be between {low} and {high} (got {value})")

        if self.rate_limit.strategy not in RATE_LIMIT_STRATEGIES:
            errors.append(f"rate_limit.strategy must be one of {', '.join(RATE_LIMIT_STRATEGIES)}")

        if not self.ui.window_title or len(self.ui.window_title) > 100:
            errors.append("ui.window_title must be between 1 and 100 characters")

        if not self.ui.input_placeholder or len(self.ui.input_placeholder) > 200:
            errors.append("ui.input_placeholder must be between 1 and 200 characters")

        if not self.ui.welcome_message.strip():
            errors.append("ui.welcome_message must not be empty")

        return errors

    def get_langfuse_config(self) -> Dict[str, str]:
        """Get Langfuse configuration"""
        return {
            "secret_key": self.api.langfuse_secret_key,
            "public_key": self.api.langfuse_public_key,
            "host": self.api.langfuse_host
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = AppConfig.load()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
