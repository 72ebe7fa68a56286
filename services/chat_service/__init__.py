"""
Chat service - widget conversation state, throttling, cooldowns and directives.
"""

from .models import Role, Message, ThrottleState, Choice, Link, DirectiveExtraction
from .directives import extract_directives
from .error_classifier import ErrorCategory, categorize_error, rate_limit_message
from .cooldown import CooldownKind, CooldownTimer, ThreadingScheduler
from .chat_widget import ChatWidget, WidgetStatus, get_chat_widget

__all__ = [
    'Role',
    'Message',
    'ThrottleState',
    'Choice',
    'Link',
    'DirectiveExtraction',
    'extract_directives',
    'ErrorCategory',
    'categorize_error',
    'rate_limit_message',
    'CooldownKind',
    'CooldownTimer',
    'ThreadingScheduler',
    'ChatWidget',
    'WidgetStatus',
    'get_chat_widget'
]
