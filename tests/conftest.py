"""
Shared fixtures: a manual clock and scheduler so cooldowns run without sleeping.
"""

import pytest

from config.app_config import AppConfig


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ManualTimer:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers fire when the shared ManualClock is advanced through it"""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.timers = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.clock.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float):
        target = self.clock.now + seconds
        while True:
            due = sorted((t for t in self.pending if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.clock.now = timer.due
            timer.fired = True
            timer.callback()
        self.clock.now = target


class FakeBackend:
    """Chat backend that replays canned tokens or raises a canned error"""

    def __init__(self, tokens=("Hello", " there"), error=None):
        self.tokens = list(tokens)
        self.error = error
        self.calls = []

    def stream(self, message, history):
        self.calls.append((message, list(history)))
        if self.error is not None:
            raise self.error
        yield from self.tokens


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def app_config():
    config = AppConfig()
    config.rate_limit.interval = 10
    config.rate_limit.min_time_between_messages = 1000
    config.rate_limit.max_message_length = 50
    config.ui.welcome_message = "Welcome! {{choice:Pricing}}"
    config.logging.enable_file_logging = False
    return config


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_backend():
    return FakeBackend
