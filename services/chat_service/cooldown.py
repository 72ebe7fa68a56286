"""
One-shot cooldown timers for the chat widget.

A cooldown is entered when a request fails and left when its timer fires.
Every start or cancel bumps an epoch counter; a callback that fires for an
older epoch is ignored, so a stale timer can never end a newer cooldown.
"""

import threading
from enum import Enum
from functools import partial
from typing import Callable, Optional, Protocol

from utils.logging_config import get_logger

logger = get_logger(__name__)


class CooldownKind(Enum):
    """Why the widget is cooling down"""
    RATE_LIMIT = "rate_limit"
    GENERIC_ERROR = "generic_error"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Scheduler backed by daemon ``threading.Timer`` instances"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class CooldownTimer:
    """
    Epoch-guarded one-shot timer

    ``on_expire`` is called with the kind of the cooldown that ended, while
    holding ``lock``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_expire: Callable[[CooldownKind], None],
        lock: Optional[threading.RLock] = None,
        name: str = "cooldown"
    ):
        self.scheduler = scheduler
        self.on_expire = on_expire
        self.name = name
        self._lock = lock or threading.RLock()

        self.epoch = 0
        self.kind: Optional[CooldownKind] = None
        self.duration: Optional[float] = None
        self._handle: Optional[TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, seconds: float, kind: CooldownKind) -> int:
        """Start a cooldown, replacing any running one. Returns the new epoch."""
        with self._lock:
            self._cancel_handle()
            self.epoch += 1
            self.kind = kind
            self.duration = seconds
            self._handle = self.scheduler.call_later(seconds, partial(self._fire, self.epoch))
            logger.debug(f"{self.name}: {kind.value} cooldown of {seconds}s started (epoch {self.epoch})")
            return self.epoch

    def cancel(self):
        """Invalidate the running cooldown without calling ``on_expire``"""
        with self._lock:
            self._cancel_handle()
            self.epoch += 1
            self.kind = None
            self.duration = None

    def _cancel_handle(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, epoch: int):
        with self._lock:
            if epoch != self.epoch:
                logger.debug(f"{self.name}: ignoring stale timer (epoch {epoch}, current {self.epoch})")
                return

            kind = self.kind
            self._handle = None
            self.kind = None
            self.duration = None
            logger.debug(f"{self.name}: {kind.value} cooldown expired (epoch {epoch})")
            self.on_expire(kind)
