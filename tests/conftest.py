# tests/conftest.py
from pathlib import Path
from typing import Callable, List, Optional

import pytest
import requests

from tracker.client import AnalyticsTracker
from tracker.config import TrackerConfig
from tracker.db import make_session_factory
from tracker.delivery import Transport
from tracker.page import Page
from tracker.registry import ComponentRegistry, load_catalog
from tracker.scheduler import Scheduler, TimerHandle
from tracker.storage import CookieStore, DatabaseStore, KeyValueStore, MemoryStore, StorageTiers


ROOT = Path(__file__).resolve().parents[1]
CATALOG_PATH = ROOT / "catalog" / "components.json"
CHECKOUT_HTML = (ROOT / "demo" / "checkout.html").read_text(encoding="utf-8")

ENDPOINT = "http://ingest.test/ingest/analytics"


class ManualClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class _ManualTimer(TimerHandle):
    def __init__(self, due: float, seq: int, fn: Callable, interval: Optional[float]):
        self.due = due
        self.seq = seq
        self.fn = fn
        self.interval = interval
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Timer laufen erst bei advance(), in Fälligkeitsreihenfolge."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._timers: List[_ManualTimer] = []
        self._seq = 0

    def _add(self, delay, fn, interval):
        self._seq += 1
        timer = _ManualTimer(self.clock.now + delay, self._seq, fn, interval)
        self._timers.append(timer)
        return timer

    def call_later(self, delay, fn):
        return self._add(delay, fn, None)

    def call_every(self, interval, fn):
        return self._add(interval, fn, interval)

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float = 0.0):
        target = self.clock.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.now = max(self.clock.now, timer.due)
            if timer.interval is None:
                self._timers.remove(timer)
            else:
                timer.due += timer.interval
            timer.fn()
        self._timers = [t for t in self._timers if not t.cancelled]
        self.clock.now = target


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class FakeSession:
    """Nimmt POSTs entgegen; status/error steuern das Ergebnis."""

    def __init__(self):
        self.calls: List[dict] = []
        self.status = 200
        self.error: Optional[Exception] = None

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status)

    @property
    def sent_events(self) -> List[dict]:
        return [e for call in self.calls for e in call["json"]["events"]]

    def respond_with(self, status: int):
        self.status = status

    def go_offline(self):
        self.error = requests.ConnectionError("connection refused")


class RecordingStore(MemoryStore):
    def __init__(self, name: str):
        super().__init__()
        self.name = name
        self.reads: List[str] = []
        self.writes: List[str] = []

    def get(self, key):
        self.reads.append(key)
        return super().get(key)

    def set(self, key, value):
        self.writes.append(key)
        super().set(key, value)


class BrokenStore(KeyValueStore):
    name = "broken"

    def get(self, key):
        raise OSError("storage disabled")

    def set(self, key, value):
        raise OSError("storage disabled")

    def remove(self, key):
        raise OSError("storage disabled")


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def durable():
    return DatabaseStore(make_session_factory("sqlite://"))


@pytest.fixture
def tiers(durable):
    return StorageTiers(durable=durable, cookie=CookieStore(), ephemeral=MemoryStore())


@pytest.fixture
def catalog():
    return load_catalog(CATALOG_PATH)


@pytest.fixture
def registry(catalog):
    return ComponentRegistry(catalog)


@pytest.fixture
def make_config():
    def _make(**overrides) -> TrackerConfig:
        values = {"app_key": "test-app", "endpoint": ENDPOINT, "database_url": "sqlite://"}
        values.update(overrides)
        return TrackerConfig(**values)
    return _make


@pytest.fixture
def make_page():
    def _make(html: str = CHECKOUT_HTML, url: str = "https://app.test/checkout", **kwargs) -> Page:
        return Page(html, url, **kwargs)
    return _make


@pytest.fixture
def make_tracker(make_config, make_page, tiers, registry, http, scheduler, clock):
    def _make(page: Optional[Page] = None, *, start: bool = True, tiers=tiers, registry=registry, **config):
        tracker = AnalyticsTracker(
            make_config(**config),
            page or make_page(),
            tiers=tiers,
            registry=registry,
            transport=Transport(ENDPOINT, session=http),
            scheduler=scheduler,
            clock=clock,
        )
        if start:
            tracker.start()
        return tracker
    return _make


def events_of(tracker, event_type: str) -> List:
    return [e for e in tracker.delivery.snapshot() if e.event_type == event_type]
