"""
OpenAI chat backend for the widget.
Streams assistant replies through LangChain's ChatOpenAI.
"""

from langchain_openai import ChatOpenAI
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from typing import Iterator, List, Optional, Sequence
import openai

from config.app_config import AppConfig, get_config
from infrastructure.external.errors import BackendError
from infrastructure.external.langfuse_client import LangfuseClient
from utils.logging_config import get_logger


def to_langchain_messages(system_prompt: str, messages: Sequence[dict]) -> List[BaseMessage]:
    """
    Convert ``{"role", "content"}`` dicts to LangChain messages

    Args:
        system_prompt: Prompt placed before the conversation
        messages: Conversation in chronological order

    Returns:
        List of LangChain messages
    """
    converted: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "user":
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
    return converted


class OpenAIChatBackend:
    """
    Adapter for OpenAI chat completions with token streaming.
    Failures are re-raised as BackendError carrying the HTTP status when one exists.
    """

    def __init__(self, config: Optional[AppConfig] = None, langfuse_client: Optional[LangfuseClient] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.langfuse_client = langfuse_client or LangfuseClient(self.config)
        self._chat_client = None

    def get_chat_client(self) -> ChatOpenAI:
        """
        Get configured ChatOpenAI client

        Returns:
            ChatOpenAI: Configured chat client
        """
        if self._chat_client is None:
            api_key = self.config.api.openai_api_key
            if not api_key:
                raise BackendError("OpenAI API key not configured", status=500)

            self._chat_client = ChatOpenAI(api_key=api_key, **self.config.api.to_dict())
            self.logger.info(f"OpenAI chat client initialized: {self.config.api.model}")

        return self._chat_client

    def _callbacks(self) -> list:
        if not self.config.logging.enable_langfuse_tracing:
            return []
        handler = self.langfuse_client.get_callback_handler()
        return [handler] if handler is not None else []

    def stream_messages(self, messages: Sequence[dict]) -> Iterator[str]:
        """
        Stream the assistant reply for a conversation

        Args:
            messages: Conversation as ``{"role", "content"}`` dicts, newest last

        Yields:
            Text increments as they arrive
        """
        client = self.get_chat_client()
        prompt = to_langchain_messages(self.config.api.system_prompt, messages)

        try:
            for chunk in client.stream(prompt, config={"callbacks": self._callbacks()}):
                if isinstance(chunk.content, str) and chunk.content:
                    yield chunk.content
        except openai.APIStatusError as e:
            self.logger.warning(f"OpenAI returned {e.status_code}: {e.message}")
            raise BackendError(e.message, status=e.status_code) from e
        except openai.APIError as e:
            # Connection and timeout errors carry no status
            self.logger.warning(f"OpenAI request failed: {e.__class__.__name__}: {e.message}")
            raise BackendError(e.message) from e
