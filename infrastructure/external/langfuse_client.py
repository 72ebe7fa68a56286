"""
Optional Langfuse tracing for chat completions.
"""

from typing import Optional

from langfuse import Langfuse
from langfuse.langchain import CallbackHandler

from config.app_config import AppConfig, get_config
from utils.logging_config import get_logger


class LangfuseClient:
    """
    Builds the Langfuse client and LangChain callback handler on first use.
    Without both keys, or if Langfuse fails to start, tracing is off and
    ``get_callback_handler`` returns None.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._client: Optional[Langfuse] = None
        self._callback_handler: Optional[CallbackHandler] = None
        self._disabled = False

    def is_configured(self) -> bool:
        keys = self.config.get_langfuse_config()
        return bool(keys["secret_key"] and keys["public_key"])

    def get_client(self) -> Optional[Langfuse]:
        if self._client is not None or self._disabled:
            return self._client

        if not self.is_configured():
            self.logger.debug("Langfuse keys missing, tracing disabled")
            self._disabled = True
            return None

        keys = self.config.get_langfuse_config()
        try:
            self._client = Langfuse(
                secret_key=keys["secret_key"],
                public_key=keys["public_key"],
                host=keys["host"]
            )
        except Exception as e:
            # Chat keeps working untraced
            self.logger.warning(f"Langfuse unavailable, tracing disabled: {e}")
            self._disabled = True
            return None

        self.logger.info(f"Langfuse tracing enabled ({keys['host']})")
        return self._client

    def get_callback_handler(self) -> Optional[CallbackHandler]:
        """LangChain callback handler bound to the configured client, or None"""
        if self._callback_handler is None and self.get_client() is not None:
            self._callback_handler = CallbackHandler(public_key=self.config.api.langfuse_public_key)
        return self._callback_handler
