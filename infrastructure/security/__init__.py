"""
Security infrastructure - request protection and content filtering for the chat route.
"""

from .gate import (
    SecurityGate,
    GateDecision,
    DenialReason,
    RequestDescriptor,
    TokenBucket,
    is_bot,
    triggers_shield
)
from .content_filter import ContentFilter

__all__ = [
    'SecurityGate',
    'GateDecision',
    'DenialReason',
    'RequestDescriptor',
    'TokenBucket',
    'is_bot',
    'triggers_shield',
    'ContentFilter'
]
