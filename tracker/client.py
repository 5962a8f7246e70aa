# tracker/client.py
"""
AnalyticsTracker: verdrahtet Consent, Identität, Erkennung, Extraktion,
Collectors und Versand.

Es gibt keine globale Instanz. Die Host-Anwendung baut den Tracker beim
Bootstrap und ruft die Dispatch-Methoden auf, wenn im DOM etwas passiert:

    tracker = AnalyticsTracker(config, page)
    tracker.start()
    tracker.click(page.query("#checkout-continue"))
    tracker.navigate("https://app.example.com/checkout/success")
    tracker.unload()
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from bs4 import Tag

from .collectors.click_collector import ClickCollector
from .collectors.form_collector import FormCollector
from .collectors.navigation_collector import NavigationCollector
from .collectors.scroll_collector import ScrollCollector
from .collectors.visibility_collector import VisibilityCollector
from .config import TrackerConfig
from .context import ContextExtractor
from .db import make_session_factory
from .delivery import DeliveryQueue, Transport
from .dom import ElementIndex
from .identity import ConsentGate, UserIdentity
from .page import Page
from .registry import ComponentRegistry
from .scheduler import Scheduler, ThreadingScheduler
from .schemas import Event, EventType
from .session import get_or_create_session
from .storage import DatabaseStore, StorageTiers

logger = logging.getLogger(__name__)


class AnalyticsTracker:
    def __init__(
        self,
        config: TrackerConfig,
        page: Page,
        *,
        tiers: Optional[StorageTiers] = None,
        registry: Optional[ComponentRegistry] = None,
        transport: Optional[Transport] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.page = page
        self.clock = clock
        self.scheduler = scheduler or ThreadingScheduler()
        self.tiers = tiers or StorageTiers(
            durable=DatabaseStore(make_session_factory(config.database_url))
        )
        if registry is None:
            registry = (
                ComponentRegistry.from_file(config.catalog_path)
                if config.catalog_path else ComponentRegistry()
            )
        self.registry = registry
        self.transport = transport or Transport(config.endpoint, config.request_timeout)

        # Collector-Callbacks (Host-Thread und Timer-Threads) laufen seriell
        self.lock = threading.RLock()
        self.elements = ElementIndex()
        self.extractor = ContextExtractor(page, clock)
        self.delivery = DeliveryQueue(
            config, self.transport, self.tiers.durable, clock, scheduler=self.scheduler
        )

        self.consent = ConsentGate(config.app_key, self.tiers, auto_consent=config.auto_consent)
        self.identity = UserIdentity(config.app_key, self.tiers)

        self.enabled = False
        self.started = False
        self.user_id: Optional[str] = None
        self.session_id: Optional[str] = None
        self._flush_timer = None

        self.clicks = ClickCollector(self)
        self.forms = FormCollector(self)
        self.scrolling = ScrollCollector(self)
        self.visibility = VisibilityCollector(self)
        self.navigation = NavigationCollector(self)

        if self.consent.is_allowed(self.do_not_track):
            self._enable()

    @property
    def do_not_track(self) -> bool:
        return self.config.respect_do_not_track and self.page.do_not_track

    def _enable(self):
        self.user_id = self.identity.init()
        self.session_id = get_or_create_session(self.tiers.ephemeral)
        self.enabled = True

    # =========================
    # Lebenszyklus
    # =========================

    def start(self):
        """Queue vom letzten Besuch übernehmen, Flush-Timer starten, ersten PAGE_VIEW senden."""
        if not self.enabled or self.started:
            return
        self.started = True

        logger.info(
            "tracker started for %s (user %s, session %s, %d components)",
            self.config.app_key, self.user_id, self.session_id, len(self.registry),
        )

        if self.delivery.restore():
            self.scheduler.call_later(0, self._scheduled_flush)

        self._flush_timer = self.scheduler.call_every(
            self.config.flush_interval_ms / 1000.0,
            self._scheduled_flush,
        )

        with self.lock:
            self.navigation.track_page_view()

    def _scheduled_flush(self):
        if self.enabled and len(self.delivery):
            self.delivery.flush()

    def shutdown(self):
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None
        self.scrolling.reset()
        self.visibility.reset()
        self.started = False

    def reset_page_state(self):
        """Nach einer Navigation: Meilensteine, Debounces und alte Elemente vergessen."""
        self.scrolling.reset()
        self.visibility.reset()
        self.elements.sweep(self.page.soup)

    # =========================
    # Events
    # =========================

    def track_event(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> Optional[Event]:
        if not self.enabled:
            return None
        event = Event(
            ts=int(self.clock()),
            app_key=self.config.app_key,
            session_id=self.session_id,
            user_id=self.user_id,
            event_type=EventType(event_type),
            data=dict(data or {}),
        )
        self.delivery.enqueue(event)
        return event

    def flush(self, force: bool = False) -> bool:
        if not self.enabled:
            return True
        return self.delivery.flush(force=force)

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None):
        # traits sind nicht Teil des Event-Schemas
        if not self.enabled or not user_id:
            return
        self.user_id = self.identity.identify(user_id)

    # =========================
    # Consent
    # =========================

    def grant_consent(self) -> bool:
        """Opt-in der Host-App. Danach start() aufrufen, falls noch nicht geschehen."""
        if self.do_not_track:
            return False
        self.consent.grant()
        if not self.enabled:
            self._enable()
        return True

    def revoke_consent(self):
        self.consent.deny()
        self.enabled = False
        self.delivery.clear()
        self.shutdown()
        logger.info("consent revoked for %s, queue cleared", self.config.app_key)

    # =========================
    # Dispatch vom Host
    # =========================

    def _dispatch(self, handler: Callable, *args) -> Any:
        if not self.enabled:
            return None
        with self.lock:
            try:
                return handler(*args)
            except Exception:
                # Fehler des Trackers dürfen die Host-Seite nie erreichen
                logger.exception("tracker handler %s failed", getattr(handler, "__name__", handler))
                return None

    def click(self, target: Tag) -> Optional[Event]:
        return self._dispatch(self.clicks.on_click, target)

    def focus_in(self, field: Tag) -> Optional[Event]:
        return self._dispatch(self.forms.on_focus_in, field)

    def submit(self, form: Tag) -> Optional[Event]:
        return self._dispatch(self.forms.on_submit, form)

    def scroll(self, scroll_y: Optional[float] = None):
        if scroll_y is not None:
            self.page.scroll_y = scroll_y
        self._dispatch(self.scrolling.on_scroll)

    def attribute_changed(self, element: Tag, attribute: str):
        self._dispatch(self.visibility.on_attribute_changed, element, attribute)

    def navigate(self, url: str, kind: str = "push", html: Optional[str] = None) -> Optional[Event]:
        return self._dispatch(self.navigation.on_navigate, url, kind, html)

    def visibility_changed(self, hidden: bool):
        self.page.hidden = hidden
        if hidden:
            self._dispatch(self.delivery.flush, True)

    def unload(self):
        """Seite wird verlassen: Abbrüche melden, senden, Rest dauerhaft speichern."""
        if not self.enabled:
            return
        self._dispatch(self.forms.on_unload)
        self._dispatch(self.delivery.flush, True)
        self.delivery.persist()
        self.shutdown()
