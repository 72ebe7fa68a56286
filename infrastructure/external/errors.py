"""
Errors raised by external collaborators (LLM backend, chat route client).
"""

from typing import Optional


class BackendError(Exception):
    """A chat request failed with an optional HTTP-like status"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __repr__(self) -> str:
        return f"BackendError(status={self.status!r}, message={self.message!r})"
