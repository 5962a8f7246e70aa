# tracker/scheduler.py
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class TimerHandle:
    def cancel(self):
        raise NotImplementedError


class Scheduler:
    """Timer-Schnittstelle: Debounce-Fenster und Flush-Intervall laufen hierüber."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class _ThreadTimer(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self):
        self._timer.cancel()


class _IntervalThread(TimerHandle):
    def __init__(self, interval: float, fn: Callable[[], None]):
        self._stop = threading.Event()
        self._interval = interval
        self._fn = fn
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def _loop(self):
        # wartet interval Sekunden oder bis cancel()
        while not self._stop.wait(self._interval):
            try:
                self._fn()
            except Exception:
                logger.exception("interval callback failed")

    def cancel(self):
        self._stop.set()


class ThreadingScheduler(Scheduler):
    """Standard-Scheduler: Daemon-Threads, damit der Host-Prozess nie hängen bleibt."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return _ThreadTimer(timer)

    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        return _IntervalThread(interval, fn)
