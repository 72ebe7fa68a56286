"""
Chat service data models for the widget conversation, throttle state and directives.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import uuid


class Role(str, Enum):
    """Author of a message"""
    USER = "user"
    ASSISTANT = "assistant"


WELCOME_MESSAGE_ID = "welcome"


@dataclass(frozen=True)
class Message:
    """Individual message in a conversation, never edited after creation"""
    role: Role
    text: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        """Shape expected by the chat route and the LLM backend"""
        return {"role": self.role.value, "content": self.text}

    @classmethod
    def welcome(cls, text: str) -> 'Message':
        return cls(role=Role.ASSISTANT, text=text, id=WELCOME_MESSAGE_ID)


@dataclass
class ThrottleState:
    """Client-side throttle and cooldown flags owned by one widget"""
    last_send_timestamp: Optional[float] = None  # seconds, from the widget clock
    rate_limited: bool = False
    cooldown_remaining_seconds: Optional[int] = None

    @property
    def cooling_down(self) -> bool:
        return self.cooldown_remaining_seconds is not None


@dataclass(frozen=True)
class Choice:
    """Quick reply offered by the assistant: {{choice:label}}"""
    label: str


@dataclass(frozen=True)
class Link:
    """External link button offered by the assistant: {{link:url|label}}"""
    url: str
    label: str


@dataclass(frozen=True)
class DirectiveExtraction:
    """Result of pulling directives out of assistant text"""
    cleaned_text: str
    choices: List[Choice] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)

    @property
    def has_directives(self) -> bool:
        return bool(self.choices or self.links)
