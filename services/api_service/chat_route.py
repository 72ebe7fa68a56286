"""
Chat route - server side of the widget.

Validates the request, runs it through the security gate and content
filter, then streams the model reply. Every failure becomes a status code
with a plain-text body, which is what the widget's error classifier sees.
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Literal, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from config.app_config import AppConfig
from infrastructure.external.errors import BackendError
from infrastructure.security.content_filter import ContentFilter
from infrastructure.security.gate import DenialReason, GateDecision, RequestDescriptor, SecurityGate
from services.chat_service.models import Message
from utils.logging_config import get_error_tracker, get_logger, log_execution_time


DENIAL_RESPONSES = {
    DenialReason.RATE_LIMIT: (429, "Too many requests. Please try again later."),
    DenialReason.BOT: (403, "Bot detected. Access denied."),
    DenialReason.SHIELD: (400, "Content filtered. Please modify your message."),
    DenialReason.OTHER: (403, "Access denied."),
}

RETRY_AFTER_SECONDS = "60"


class ChatMessagePayload(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Body posted by the widget"""
    messages: List[ChatMessagePayload] = Field(min_length=1)


@dataclass
class ChatResponse:
    """Status, headers and either a text body or a token stream"""
    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    stream: Optional[Iterator[str]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class MessageStreamer(Protocol):
    def stream_messages(self, messages: Sequence[dict]) -> Iterator[str]: ...


def denial_response(decision: GateDecision) -> ChatResponse:
    """Map a gate denial to the response the widget receives"""
    status, body = DENIAL_RESPONSES[decision.reason or DenialReason.OTHER]
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if status == 429 else {}
    return ChatResponse(status=status, body=body, headers=headers)


def backend_failure_response(error: Exception) -> ChatResponse:
    """Map an exception raised while starting the model stream"""
    message = str(error)
    if "API key" in message:
        return ChatResponse(status=500, body="AI service configuration error. Please check API keys.")
    if "quota" in message or "limit" in message:
        return ChatResponse(status=429, body="AI service quota exceeded. Please try again later.")
    return ChatResponse(status=500, body="Internal server error. Please try again.")


class ChatRoute:
    """Handles one chat request end to end"""

    def __init__(
        self,
        config: AppConfig,
        backend: MessageStreamer,
        gate: Optional[SecurityGate] = None,
        content_filter: Optional[ContentFilter] = None
    ):
        self.logger = get_logger(__name__)
        self.error_tracker = get_error_tracker()
        self.config = config
        self.backend = backend
        self.gate = gate or SecurityGate(config)
        self.content_filter = content_filter or ContentFilter(config.security.content_filtering)

    def handle(
        self,
        payload: Union[ChatRequest, Dict[str, Any]],
        client: Optional[RequestDescriptor] = None
    ) -> ChatResponse:
        """
        Process a chat request

        Args:
            payload: ChatRequest or its JSON-decoded dict
            client: Caller identity used by the security gate

        Returns:
            ChatResponse with status 200 and a token stream, or an error status
        """
        client = client or RequestDescriptor()
        if not client.body:
            client = replace(client, body=_raw_body(payload))

        decision = self.gate.protect(client, requested=1)
        if decision.is_denied:
            self.logger.info(f"Request denied by gate: {decision.reason.value}")
            return denial_response(decision)

        try:
            request = payload if isinstance(payload, ChatRequest) else ChatRequest.model_validate(payload)
        except ValidationError as e:
            self.logger.info(f"Invalid chat payload: {e.error_count()} validation errors")
            return ChatResponse(status=400, body="Invalid messages format")

        last_message = request.messages[-1]
        if self.content_filter.contains_inappropriate_content(last_message.content):
            self.logger.info("Message rejected by content filter")
            return ChatResponse(status=400, body="Message contains inappropriate content")

        messages = [message.model_dump() for message in request.messages]
        try:
            with log_execution_time(self.logger, "time to first token", message_count=len(messages)):
                stream = self.backend.stream_messages(messages)
                # Pull the first increment so setup failures become a status code
                first = next(stream, None)
        except Exception as e:
            self.error_tracker.track_error(e, "chat_route", message_count=len(messages))
            return backend_failure_response(e)

        return ChatResponse(status=200, stream=_prepend(first, stream))


def _raw_body(payload: Union[ChatRequest, Dict[str, Any]]) -> str:
    """Request body as the shield sees it, before any validation"""
    if isinstance(payload, ChatRequest):
        return payload.model_dump_json()
    return json.dumps(payload, ensure_ascii=False, default=str)


def _prepend(first: Optional[str], rest: Iterator[str]) -> Iterator[str]:
    if first is not None:
        yield first
    yield from rest


class RouteBackend:
    """
    Widget-side client of the chat route

    Turns non-2xx responses into BackendError so the widget can classify them.
    """

    def __init__(self, route: ChatRoute, client: Optional[RequestDescriptor] = None):
        self.route = route
        self.client = client or RequestDescriptor(user_agent="chat-widget")

    def stream(self, message: Message, history: Sequence[Message]) -> Iterator[str]:
        payload = {"messages": [m.to_dict() for m in history] + [message.to_dict()]}
        response = self.route.handle(payload, self.client)
        if not response.ok:
            raise BackendError(response.body, status=response.status)
        return response.stream or iter(())
