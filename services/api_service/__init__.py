"""
API service - the chat route the widget talks to.
"""

from .chat_route import ChatRequest, ChatResponse, ChatRoute, RouteBackend, denial_response

__all__ = [
    'ChatRequest',
    'ChatResponse',
    'ChatRoute',
    'RouteBackend',
    'denial_response'
]
