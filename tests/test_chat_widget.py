"""
Tests for the chat widget: send guards, throttle, cooldowns and reset
"""

import pytest
from unittest.mock import Mock, patch

from infrastructure.external.errors import BackendError
from services.chat_service.chat_widget import ChatWidget, WidgetStatus, get_chat_widget
from services.chat_service.models import Role, ThrottleState


@pytest.fixture
def widget(app_config, backend, scheduler, clock):
    return ChatWidget(app_config, backend, scheduler=scheduler, clock=clock)


def user_texts(widget):
    return [m.text for m in widget.conversation if m.role is Role.USER]


class TestInitialState:
    """Test a freshly mounted widget"""

    def test_starts_with_welcome_message(self, widget):
        assert len(widget.conversation) == 1
        welcome = widget.conversation[0]
        assert welcome.role is Role.ASSISTANT
        assert welcome.text == "Welcome! {{choice:Pricing}}"
        assert welcome.id == "welcome"

    def test_throttle_state_is_initial(self, widget):
        assert widget.state == ThrottleState()
        assert widget.status is WidgetStatus.READY

    def test_first_message_is_not_throttled(self, widget):
        widget.submit("hello")

        assert user_texts(widget) == ["hello"]


class TestSubmitGuards:
    """Test the rejections that leave state untouched"""

    @pytest.mark.parametrize("text", ["", " ", "\n\t  "])
    def test_blank_text_is_ignored(self, widget, backend, text):
        before = (widget.conversation, ThrottleState(**vars(widget.state)))

        widget.submit(text)

        assert (widget.conversation, widget.state) == before
        assert backend.calls == []

    def test_too_long_text_is_ignored(self, widget, backend):
        widget.submit("x" * 51)

        assert len(widget.conversation) == 1
        assert widget.state.last_send_timestamp is None
        assert backend.calls == []

    def test_text_at_max_length_is_sent(self, widget):
        widget.submit("x" * 50)

        assert user_texts(widget) == ["x" * 50]

    def test_rate_limited_widget_ignores_valid_text(self, widget, backend):
        widget.classify_error({"status": 429})

        widget.submit("hello")

        assert len(widget.conversation) == 1
        assert backend.calls == []

    def test_second_message_too_soon_is_dropped(self, widget, clock, backend):
        widget.submit("first")
        clock.advance(0.5)
        widget.submit("second")

        assert user_texts(widget) == ["first"]
        assert len(backend.calls) == 1

    def test_dropped_message_does_not_move_last_send(self, widget, clock):
        widget.submit("first")
        sent_at = widget.state.last_send_timestamp
        clock.advance(0.5)
        widget.submit("second")

        assert widget.state.last_send_timestamp == sent_at

    def test_message_after_interval_is_sent(self, widget, clock):
        widget.submit("first")
        clock.advance(1.0)
        widget.submit("second")

        assert user_texts(widget) == ["first", "second"]

    def test_last_send_timestamp_never_decreases(self, widget, clock):
        stamps = []
        for text in ("a", "b", "c"):
            widget.submit(text)
            stamps.append(widget.state.last_send_timestamp)
            clock.advance(2)

        assert stamps == sorted(stamps)


class TestDispatch:
    """Test the append-then-dispatch flow"""

    def test_user_message_then_reply(self, widget, backend):
        widget.submit("hello")

        roles = [m.role for m in widget.conversation]
        assert roles == [Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert widget.conversation[-1].text == "Hello there"
        assert widget.status is WidgetStatus.READY
        assert widget.in_flight == 0

    def test_backend_receives_prior_history(self, widget, backend):
        widget.submit("hello")

        message, history = backend.calls[0]
        assert message.text == "hello"
        assert [m.id for m in history] == ["welcome"]

    def test_user_message_is_kept_when_backend_fails(self, app_config, scheduler, clock, make_backend):
        failing = make_backend(error=BackendError("network failure"))
        widget = ChatWidget(app_config, failing, scheduler=scheduler, clock=clock)

        widget.submit("hello")

        assert user_texts(widget) == ["hello"]
        assert widget.conversation[-1].role is Role.USER
        assert widget.status is WidgetStatus.ERROR
        assert widget.in_flight == 0

    def test_stream_callback_sees_increments(self, widget):
        seen = []

        widget.submit("hello", on_token=lambda token, text: seen.append((token, text)))

        assert seen == [("Hello", "Hello"), (" there", "Hello there")]

    def test_empty_reply_appends_nothing(self, app_config, scheduler, clock, make_backend):
        widget = ChatWidget(app_config, make_backend(tokens=()), scheduler=scheduler, clock=clock)

        widget.submit("hello")

        assert [m.role for m in widget.conversation] == [Role.ASSISTANT, Role.USER]

    def test_failure_mid_stream_is_classified(self, app_config, scheduler, clock):
        class BrokenStream:
            def stream(self, message, history):
                yield "partial"
                raise BackendError("Too many requests", status=429)

        widget = ChatWidget(app_config, BrokenStream(), scheduler=scheduler, clock=clock)
        widget.submit("hello")

        assert widget.rate_limited
        assert widget.conversation[-1].text == "hello"

    def test_reply_finishing_after_clear_is_discarded(self, app_config, scheduler, clock):
        holder = {}

        class ClearingBackend:
            def stream(self, message, history):
                yield "late"
                holder["widget"].clear()
                yield " reply"

        widget = ChatWidget(app_config, ClearingBackend(), scheduler=scheduler, clock=clock)
        holder["widget"] = widget

        widget.submit("hello")

        assert [m.id for m in widget.conversation] == ["welcome"]

    def test_failure_after_clear_does_not_rate_limit(self, app_config, scheduler, clock):
        holder = {}

        class ClearingThenFailingBackend:
            def stream(self, message, history):
                yield "partial"
                holder["widget"].clear()
                raise BackendError("Too many requests", status=429)

        widget = ChatWidget(app_config, ClearingThenFailingBackend(), scheduler=scheduler, clock=clock)
        holder["widget"] = widget

        widget.submit("hello")

        assert widget.state == ThrottleState()
        assert widget.status is WidgetStatus.READY
        assert widget.in_flight == 0
        assert scheduler.pending == []

    def test_choice_goes_through_throttle(self, widget, clock, backend):
        widget.choose("Pricing")
        clock.advance(0.1)
        widget.choose("Support")

        assert user_texts(widget) == ["Pricing"]

    def test_choice_ignored_while_rate_limited(self, widget, backend):
        widget.classify_error({"message": "rate limit"})

        widget.choose("Pricing")

        assert backend.calls == []


class TestClassifyError:
    """Test cooldown entry and expiry"""

    @pytest.mark.parametrize("err", [{"status": 429}, {"message": "Too Many Requests"}])
    def test_rate_limit_cooldown(self, widget, scheduler, err):
        widget.classify_error(err)

        assert widget.state.rate_limited is True
        assert widget.state.cooldown_remaining_seconds == 10

        scheduler.advance(9)
        assert widget.state.rate_limited is True

        scheduler.advance(1)
        assert widget.state.rate_limited is False
        assert widget.state.cooldown_remaining_seconds is None

    def test_generic_error_cooldown(self, widget, scheduler):
        widget.classify_error({"message": "network failure"})

        assert widget.state.rate_limited is False
        assert widget.state.cooldown_remaining_seconds == 5

        scheduler.advance(5)
        assert widget.state.cooldown_remaining_seconds is None

    def test_can_send_during_generic_cooldown(self, widget, clock):
        widget.classify_error({"message": "network failure"})
        clock.advance(1)

        widget.submit("retry")

        assert user_texts(widget) == ["retry"]

    def test_backend_429_sets_rate_limit(self, app_config, scheduler, clock, make_backend):
        failing = make_backend(error=BackendError("Too many requests. Please try again later.", status=429))
        widget = ChatWidget(app_config, failing, scheduler=scheduler, clock=clock)

        widget.submit("hello")

        assert widget.rate_limited
        assert widget.rate_limit_message() == "Rate limit exceeded. Please wait 10 seconds..."
        assert widget.placeholder == app_config.ui.rate_limited_placeholder

    def test_new_rate_limit_restarts_cooldown(self, widget, scheduler):
        widget.classify_error({"status": 429})
        scheduler.advance(6)
        widget.classify_error({"status": 429})

        scheduler.advance(6)
        assert widget.state.rate_limited is True

        scheduler.advance(4)
        assert widget.state.rate_limited is False

    def test_generic_error_does_not_shorten_rate_limit(self, widget, scheduler):
        widget.classify_error({"status": 429})
        widget.classify_error({"message": "network failure"})

        assert widget.state.cooldown_remaining_seconds == 10

        scheduler.advance(5)
        assert widget.state.rate_limited is True
        assert widget.state.cooldown_remaining_seconds == 10

        scheduler.advance(5)
        assert widget.state.rate_limited is False

    def test_rate_limit_during_generic_cooldown(self, widget, scheduler):
        widget.classify_error({"message": "network failure"})
        scheduler.advance(2)
        widget.classify_error({"status": 429})

        scheduler.advance(3)
        assert widget.state.rate_limited is True
        assert widget.state.cooldown_remaining_seconds == 10

        scheduler.advance(7)
        assert widget.state.rate_limited is False


class TestClear:
    """Test conversation reset"""

    def test_clear_resets_everything(self, widget, scheduler, clock):
        widget.submit("hello")
        widget.classify_error({"status": 429})

        widget.clear()

        assert len(widget.conversation) == 1
        assert widget.conversation[0].id == "welcome"
        assert widget.state == ThrottleState()
        assert widget.status is WidgetStatus.READY

    def test_clear_is_idempotent(self, widget):
        widget.clear()
        first = widget.conversation
        widget.clear()

        assert [(m.id, m.text) for m in widget.conversation] == [(m.id, m.text) for m in first]
        assert widget.state == ThrottleState()

    def test_stale_timer_does_not_end_newer_cooldown(self, widget, scheduler):
        widget.classify_error({"status": 429})
        scheduler.advance(5)
        widget.clear()
        widget.classify_error({"status": 429})

        # The first cooldown would have ended here
        scheduler.advance(5)
        assert widget.state.rate_limited is True

        scheduler.advance(5)
        assert widget.state.rate_limited is False


class TestPresentationHelpers:
    """Test helpers used by the UI layer"""

    def test_is_input_valid(self, widget):
        assert widget.is_input_valid("hi")
        assert not widget.is_input_valid("   ")
        assert not widget.is_input_valid("x" * 51)

    def test_can_send_respects_rate_limit(self, widget):
        assert widget.can_send("hi")
        widget.classify_error({"status": 429})
        assert not widget.can_send("hi")

    def test_placeholder(self, widget, app_config):
        assert widget.placeholder == app_config.ui.input_placeholder

    def test_directives_for_welcome(self, widget):
        result = widget.directives_for(widget.conversation[0])

        assert result.cleaned_text == "Welcome!"
        assert [c.label for c in result.choices] == ["Pricing"]


class MockSessionState(dict):
    """Mock Streamlit session state for testing"""


class TestGetChatWidget:
    """Test the per-session widget binding"""

    def test_widget_is_created_once_per_session(self, app_config, backend):
        mock_st = Mock()
        mock_st.session_state = MockSessionState()

        with patch('services.chat_service.chat_widget.st', mock_st):
            first = get_chat_widget(app_config, backend)
            second = get_chat_widget(app_config, backend)

        assert first is second
        assert mock_st.session_state["chat_widget"] is first

    def test_separate_sessions_get_separate_widgets(self, app_config, backend):
        widgets = []
        for _ in range(2):
            mock_st = Mock()
            mock_st.session_state = MockSessionState()
            with patch('services.chat_service.chat_widget.st', mock_st):
                widgets.append(get_chat_widget(app_config, backend))

        assert widgets[0] is not widgets[1]
