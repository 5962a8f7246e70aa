# tracker/delivery.py
"""
Queue, Batching, Spillover und HTTP-Versand.

Zustellung ist at-least-once: ein fehlgeschlagener Batch kommt wieder vorne
in die Queue, die ganze Queue wird dauerhaft gespeichert und beim nächsten
Flush (oder nach einem Reload) erneut gesendet. Deduplizierung über die
Event-UUID macht der Ingest-Service.
"""
import json
import logging
import threading
import time
from typing import Callable, List, Optional

import requests
from pydantic import ValidationError

from .config import TrackerConfig
from .scheduler import Scheduler
from .schemas import Event, EventBatch
from .storage import KeyValueStore, safe_get, safe_remove, safe_set

logger = logging.getLogger(__name__)


def queue_key(app_key: str) -> str:
    return f"analytics_queue_{app_key}"


class Transport:
    """POST {app_key, events} an den Ingest-Endpoint. 2xx = angekommen."""

    def __init__(self, endpoint: str, timeout: float = 2.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, app_key: str, events: List[Event]) -> bool:
        batch = EventBatch(app_key=app_key, events=events)
        try:
            resp = self.session.post(
                self.endpoint,
                json=batch.model_dump(mode="json"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Backend unreachable while sending batch: %s", e)
            return False

        if not 200 <= resp.status_code < 300:
            logger.warning("Ingest rejected batch of %d events: HTTP %s", len(events), resp.status_code)
            return False
        return True


class DeliveryQueue:
    def __init__(
        self,
        config: TrackerConfig,
        transport: Transport,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config
        self.transport = transport
        self.store = store
        self.clock = clock
        # mit Scheduler läuft der Batch-Flush nicht auf dem Thread des Aufrufers
        self.scheduler = scheduler
        self.storage_key = queue_key(config.app_key)

        self._events: List[Event] = []
        self._lock = threading.Lock()
        self._failures = 0
        self._retry_at = 0.0
        self._has_snapshot = False
        self._flush_pending = False

    def __len__(self):
        with self._lock:
            return len(self._events)

    def snapshot(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def backing_off(self) -> bool:
        return self.clock() < self._retry_at

    # ---------- Einreihen ----------

    def enqueue(self, event: Event):
        with self._lock:
            self._events.append(event)
            self._evict_locked()
            full = len(self._events) >= self.config.batch_size
            if not full:
                return
            if self.scheduler is not None:
                if self._flush_pending:
                    return
                self._flush_pending = True
        if self.scheduler is None:
            self.flush()
        else:
            self.scheduler.call_later(0, self._batch_flush)

    def _batch_flush(self):
        with self._lock:
            self._flush_pending = False
        self.flush()

    def _evict_locked(self):
        overflow = len(self._events) - self.config.max_queue_size
        if overflow > 0:
            del self._events[:overflow]
            logger.warning("event queue full, dropped %d oldest events", overflow)

    # ---------- Flush ----------

    def flush(self, force: bool = False) -> bool:
        """
        Queue atomar gegen eine leere tauschen und senden.
        force=True ignoriert das Backoff (Tab versteckt, Unload).
        """
        with self._lock:
            if not self._events:
                return True
            if not force and self.clock() < self._retry_at:
                logger.debug("flush skipped, backing off after %d failures", self._failures)
                return False
            batch = self._events
            self._events = []

        if self.transport.send(self.config.app_key, batch):
            with self._lock:
                self._failures = 0
                self._retry_at = 0.0
            if self._has_snapshot:
                # gespeicherter Stand ist veraltet
                self.persist()
            logger.debug("flushed %d events", len(batch))
            return True

        with self._lock:
            # fehlgeschlagener Batch wieder vor alles, was inzwischen dazukam
            self._events = batch + self._events
            self._evict_locked()
            self._failures += 1
            delay_ms = min(
                self.config.backoff_base_ms * (2 ** (self._failures - 1)),
                self.config.backoff_max_ms,
            )
            self._retry_at = self.clock() + delay_ms / 1000.0
        self.persist()
        return False

    # ---------- Spillover ----------

    def persist(self):
        with self._lock:
            events = list(self._events)
        if not events:
            safe_remove(self.store, self.storage_key)
            self._has_snapshot = False
            return
        blob = json.dumps([e.model_dump(mode="json") for e in events])
        self._has_snapshot = safe_set(self.store, self.storage_key, blob)

    def restore(self) -> int:
        """Gespeicherte Queue vom letzten Besuch lesen, löschen und vorne einreihen."""
        raw = safe_get(self.store, self.storage_key)
        if not raw:
            return 0
        safe_remove(self.store, self.storage_key)

        try:
            items = json.loads(raw)
        except ValueError as e:
            logger.warning("persisted queue unreadable, dropped: %s", e)
            return 0
        if not isinstance(items, list):
            return 0

        restored: List[Event] = []
        for item in items:
            try:
                restored.append(Event.model_validate(item))
            except ValidationError as e:
                logger.debug("skipping invalid persisted event: %s", e)

        with self._lock:
            self._events = restored + self._events
            self._evict_locked()
        logger.info("restored %d events from previous page load", len(restored))
        return len(restored)

    def clear(self):
        with self._lock:
            self._events = []
        safe_remove(self.store, self.storage_key)
        self._has_snapshot = False
