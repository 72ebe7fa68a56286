"""
Request protection for the chat route.

In-process stand-in for a hosted protection service: a per-client token
bucket, user-agent bot detection and a shield against obvious injection
payloads. Each check produces an allow/deny decision with a reason tag.
"""

import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from config.app_config import AppConfig, RateLimitConfig
from utils.logging_config import get_logger

logger = get_logger(__name__)


class DenialReason(Enum):
    """Why a request was refused"""
    RATE_LIMIT = "rate_limit"
    BOT = "bot"
    SHIELD = "shield"
    OTHER = "other"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of protecting one request"""
    allowed: bool
    reason: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> 'GateDecision':
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason) -> 'GateDecision':
        return cls(allowed=False, reason=reason)

    @property
    def is_denied(self) -> bool:
        return not self.allowed


@dataclass
class RequestDescriptor:
    """What the gate knows about an incoming request"""
    client_id: str = "anonymous"
    user_agent: str = ""
    body: str = ""


@dataclass
class _Bucket:
    tokens: float
    last: float


class TokenBucket:
    """
    Token bucket keyed by client

    ``refill_rate`` tokens are added every ``interval`` seconds, up to ``capacity``.
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: int,
        interval: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.capacity = capacity
        self.refill_per_sec = refill_rate / interval
        self.clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic) -> 'TokenBucket':
        return cls(config.capacity, config.refill_rate, config.interval, clock=clock)

    def _refill(self, key: str, now: float) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.capacity), last=now)
            self._buckets[key] = bucket

        elapsed = max(0.0, now - bucket.last)
        bucket.tokens = min(float(self.capacity), bucket.tokens + elapsed * self.refill_per_sec)
        bucket.last = now
        return bucket

    def consume(self, key: str, requested: float = 1.0) -> bool:
        """Take ``requested`` tokens if available; returns whether it succeeded"""
        with self._lock:
            bucket = self._refill(key, self.clock())
            if bucket.tokens >= requested:
                bucket.tokens -= requested
                return True
            return False

    def remaining(self, key: str) -> float:
        with self._lock:
            return self._refill(key, self.clock()).tokens

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


BOT_USER_AGENT = re.compile(
    r"bot|crawl|spider|slurp|scrape|curl|wget|httpie|python-requests|python-httpx|aiohttp|headless|phantomjs",
    re.IGNORECASE
)

SHIELD_PATTERNS = (
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bunion\s+(all\s+)?select\b", re.IGNORECASE),
    re.compile(r"'\s*or\s+'?\d+'?\s*=\s*'?\d+", re.IGNORECASE),
    re.compile(r";\s*drop\s+table\b", re.IGNORECASE),
    re.compile(r"\.\./\.\./"),
)


def is_bot(user_agent: str, allowed_bots: Iterable[str] = ()) -> bool:
    """
    Heuristic bot detection on the User-Agent header

    An empty user agent counts as a bot. Agents containing one of
    ``allowed_bots`` (case-insensitive) are let through.
    """
    if not user_agent or not user_agent.strip():
        return True

    lowered = user_agent.lower()
    if any(allowed.lower() in lowered for allowed in allowed_bots if allowed):
        return False

    return BOT_USER_AGENT.search(user_agent) is not None


def triggers_shield(body: str) -> bool:
    """Whether the payload looks like an injection attempt"""
    return any(pattern.search(body) for pattern in SHIELD_PATTERNS)


@dataclass
class SecurityGate:
    """Evaluates rate limit, bot and shield rules, first denial wins"""
    config: AppConfig
    clock: Callable[[], float] = time.monotonic
    bucket: Optional[TokenBucket] = field(default=None)

    def __post_init__(self):
        if self.bucket is None:
            self.bucket = TokenBucket.from_config(self.config.rate_limit, clock=self.clock)

    def protect(self, request: RequestDescriptor, requested: int = 1) -> GateDecision:
        """
        Decide whether a request may reach the LLM backend

        Args:
            request: Client identity, user agent and raw body
            requested: Tokens the request costs

        Returns:
            GateDecision
        """
        security = self.config.security

        if not self.bucket.consume(request.client_id, requested):
            logger.warning("Request rate limited", extra={"client_id": request.client_id})
            return GateDecision.deny(DenialReason.RATE_LIMIT)

        if security.enable_bot_detection and is_bot(request.user_agent, security.allowed_bots):
            logger.warning("Bot detected", extra={"client_id": request.client_id, "user_agent": request.user_agent})
            return GateDecision.deny(DenialReason.BOT)

        if security.enable_shield and triggers_shield(request.body):
            logger.warning("Shield blocked request", extra={"client_id": request.client_id})
            return GateDecision.deny(DenialReason.SHIELD)

        return GateDecision.allow()
