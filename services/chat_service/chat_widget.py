"""
Chat widget service - conversation state, send throttling and error cooldowns.

One ChatWidget per open chat window. It gates outbound messages (blank,
too long, rate limited, sent too soon), appends the user message before
dispatching it to the backend, and turns backend failures into a timed
cooldown.
"""

import threading
import time
import uuid
from enum import Enum
from typing import Callable, Iterator, List, Optional, Protocol, Sequence, Tuple

import streamlit as st

from config.app_config import AppConfig, get_config
from services.chat_service.cooldown import CooldownKind, CooldownTimer, Scheduler, ThreadingScheduler
from services.chat_service.directives import extract_directives
from services.chat_service.error_classifier import (
    GENERIC_ERROR_COOLDOWN_SECONDS,
    ErrorCategory,
    categorize_error,
    rate_limit_message
)
from services.chat_service.models import DirectiveExtraction, Message, Role, ThrottleState
from utils.logging_config import (
    get_error_tracker,
    get_logger,
    initialize_logging,
    log_conversation_event,
    log_user_interaction
)


class ChatBackend(Protocol):
    """Streams the assistant reply to ``message`` given the prior conversation"""

    def stream(self, message: Message, history: Sequence[Message]) -> Iterator[str]: ...


class WidgetStatus(Enum):
    """Request lifecycle as shown by the input controls"""
    READY = "ready"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    ERROR = "error"


TokenCallback = Callable[[str, str], None]


class ChatWidget:
    """
    Conversation owner for one chat window.

    Guards applied by ``submit`` in order, each a silent no-op on failure:
    blank text, active rate limit, text longer than ``max_message_length``,
    and less than ``min_time_between_messages`` since the last accepted send.
    """

    def __init__(
        self,
        config: AppConfig,
        backend: ChatBackend,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        conversation_id: Optional[str] = None
    ):
        self.logger = get_logger(__name__)
        self.error_tracker = get_error_tracker()
        self.config = config
        self.backend = backend
        self.clock = clock
        self.conversation_id = conversation_id or uuid.uuid4().hex

        self._lock = threading.RLock()
        self._cooldown = CooldownTimer(
            scheduler or ThreadingScheduler(),
            self._on_cooldown_expired,
            lock=self._lock,
            name=f"widget-{self.conversation_id[:8]}"
        )

        self.state = ThrottleState()
        self.status = WidgetStatus.READY
        self.in_flight = 0
        self._generation = 0
        self._messages: List[Message] = [self._welcome()]

    def _welcome(self) -> Message:
        return Message.welcome(self.config.welcome_message)

    @property
    def conversation(self) -> Tuple[Message, ...]:
        """Snapshot of the conversation, oldest first"""
        with self._lock:
            return tuple(self._messages)

    @property
    def rate_limited(self) -> bool:
        return self.state.rate_limited

    @property
    def cooldown_remaining_seconds(self) -> Optional[int]:
        return self.state.cooldown_remaining_seconds

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def submit(self, raw_text: str, on_token: Optional[TokenCallback] = None):
        """
        Send text typed by the user

        Args:
            raw_text: Input field contents
            on_token: Called with (increment, text so far) while the reply streams
        """
        if not raw_text.strip():
            self.logger.debug("Ignoring blank message")
            return

        if self.state.rate_limited:
            self.logger.debug("Ignoring message while rate limited")
            return

        if len(raw_text) > self.config.rate_limit.max_message_length:
            self.logger.debug(f"Ignoring message of {len(raw_text)} characters")
            return

        log_user_interaction(self.logger, "submit", conversation_id=self.conversation_id, length=len(raw_text))
        self._send_with_throttle(raw_text, on_token)

    def choose(self, label: str, on_token: Optional[TokenCallback] = None):
        """Send the label of a clicked choice directive"""
        if self.state.rate_limited:
            return

        log_user_interaction(self.logger, "choice_click", conversation_id=self.conversation_id, label=label)
        self._send_with_throttle(label, on_token)

    def _send_with_throttle(self, text: str, on_token: Optional[TokenCallback]):
        message = self._accept(text)
        if message is not None:
            self._dispatch(message, on_token)

    def _accept(self, text: str) -> Optional[Message]:
        """Apply the spam guard and append the user message; None when dropped"""
        with self._lock:
            now = self.clock()
            last = self.state.last_send_timestamp
            min_interval = self.config.rate_limit.min_time_between_messages / 1000

            if last is not None and now - last < min_interval:
                self.logger.debug(f"Dropping message sent {now - last:.3f}s after the previous one")
                return None

            if self.state.rate_limited:
                return None

            self.state.last_send_timestamp = now
            message = Message(role=Role.USER, text=text)
            self._messages.append(message)
            self.in_flight += 1
            self.status = WidgetStatus.SUBMITTED

        log_conversation_event(self.logger, "message_added", self.conversation_id, role=message.role.value)
        return message

    def _history_before(self, message: Message) -> List[Message]:
        with self._lock:
            for index, existing in enumerate(self._messages):
                if existing.id == message.id:
                    return self._messages[:index]
            return []

    def _dispatch(self, message: Message, on_token: Optional[TokenCallback] = None):
        """Stream the reply to an accepted message; failures go to classify_error"""
        generation = self._generation
        history = self._history_before(message)
        parts: List[str] = []

        try:
            for token in self.backend.stream(message, history):
                parts.append(token)
                with self._lock:
                    self.status = WidgetStatus.STREAMING
                if on_token is not None:
                    on_token(token, "".join(parts))
        except Exception as e:
            self.error_tracker.track_error(e, "chat_widget_dispatch", conversation_id=self.conversation_id)
            with self._lock:
                self.in_flight -= 1
                if generation != self._generation:
                    self.logger.debug("Ignoring failure of a request sent before the conversation was cleared")
                    return
                self.status = WidgetStatus.ERROR
            self.classify_error(e)
            return

        with self._lock:
            self.in_flight -= 1
            self.status = WidgetStatus.READY if self.in_flight == 0 else WidgetStatus.SUBMITTED

            if generation != self._generation:
                self.logger.debug("Discarding reply that finished after the conversation was cleared")
                return

            text = "".join(parts)
            if text:
                self._messages.append(Message(role=Role.ASSISTANT, text=text))

        log_conversation_event(self.logger, "message_added", self.conversation_id, role=Role.ASSISTANT.value)

    # ------------------------------------------------------------------
    # Errors and cooldowns
    # ------------------------------------------------------------------

    def classify_error(self, err):
        """
        React to a failed request

        Rate limits block sending for ``rate_limit.interval`` seconds. Other
        errors only show a 5 second cooldown notice; sending stays allowed.
        A generic error never shortens a running rate-limit cooldown.
        """
        category = categorize_error(err)

        with self._lock:
            if category is ErrorCategory.RATE_LIMIT:
                interval = self.config.rate_limit.interval
                self.state.rate_limited = True
                self.state.cooldown_remaining_seconds = interval
                self._cooldown.start(interval, CooldownKind.RATE_LIMIT)
            elif self.state.rate_limited:
                self.logger.debug("Generic error during rate-limit cooldown, keeping the longer cooldown")
                return
            else:
                self.state.cooldown_remaining_seconds = GENERIC_ERROR_COOLDOWN_SECONDS
                self._cooldown.start(GENERIC_ERROR_COOLDOWN_SECONDS, CooldownKind.GENERIC_ERROR)

        log_conversation_event(
            self.logger, "cooldown_started", self.conversation_id,
            category=category.value, seconds=self.state.cooldown_remaining_seconds
        )

    def _on_cooldown_expired(self, kind: CooldownKind):
        self.state.rate_limited = False
        self.state.cooldown_remaining_seconds = None
        log_conversation_event(self.logger, "cooldown_ended", self.conversation_id, kind=kind.value)

    # ------------------------------------------------------------------
    # Reset and presentation helpers
    # ------------------------------------------------------------------

    def clear(self):
        """Start over with the welcome message and no cooldown"""
        with self._lock:
            self._cooldown.cancel()
            self.state = ThrottleState()
            self.status = WidgetStatus.READY
            self._generation += 1
            self._messages = [self._welcome()]

        log_conversation_event(self.logger, "cleared", self.conversation_id)

    def is_input_valid(self, text: str) -> bool:
        """Whether the submit control should be enabled for ``text``"""
        return bool(text.strip()) and len(text) <= self.config.rate_limit.max_message_length

    def can_send(self, text: str) -> bool:
        return self.is_input_valid(text) and not self.state.rate_limited and self.status is not WidgetStatus.SUBMITTED

    def rate_limit_message(self) -> str:
        return rate_limit_message(self.state.cooldown_remaining_seconds)

    @property
    def placeholder(self) -> str:
        if self.state.rate_limited:
            return self.config.ui.rate_limited_placeholder
        return self.config.ui.input_placeholder

    @staticmethod
    def directives_for(message: Message) -> DirectiveExtraction:
        """Cleaned text plus choice and link buttons for rendering a message"""
        return extract_directives(message.text)


SESSION_KEY = "chat_widget"


@st.cache_resource
def get_chat_route():
    """Process-wide chat route, so the token bucket is shared across sessions"""
    from infrastructure.external.openai_client import OpenAIChatBackend
    from services.api_service.chat_route import ChatRoute

    config = get_config()
    initialize_logging(config)
    return ChatRoute(config, OpenAIChatBackend(config))


def get_chat_widget(config: Optional[AppConfig] = None, backend: Optional[ChatBackend] = None) -> ChatWidget:
    """Get the chat widget of the current Streamlit session, creating it on first use"""
    if SESSION_KEY not in st.session_state:
        from infrastructure.security.gate import RequestDescriptor
        from services.api_service.chat_route import RouteBackend

        if backend is None:
            conversation_client = RequestDescriptor(
                client_id=st.session_state.setdefault("client_id", uuid.uuid4().hex),
                user_agent=st.context.headers.get("User-Agent", "")
            )
            backend = RouteBackend(get_chat_route(), conversation_client)

        st.session_state[SESSION_KEY] = ChatWidget(config or get_config(), backend)

    return st.session_state[SESSION_KEY]
