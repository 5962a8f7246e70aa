# tracker/collectors/visibility_collector.py
from typing import List, Optional

from bs4 import Tag

from ..dom import is_visible
from ..schemas import Event, EventType
from .common import element_name, has_call_to_action, is_overlay, overlay_type

WATCHED_ATTRIBUTES = {"class", "style", "aria-hidden", "data-state", "hidden"}


class VisibilityCollector:
    """
    Attribut-Mutationen -> sichtbar/unsichtbar-Wechsel von Overlays.
    Modals melden MODAL_INTERACTION opened/closed, alle anderen Overlays
    ELEMENT_VISIBILITY shown/hidden. Gemeldet wird nur ein echter Wechsel.
    """

    def __init__(self, tracker):
        self.tracker = tracker
        self._visible = tracker.elements.new_map()   # element -> bool
        self._pending: List[Tag] = []
        self._timer = None

    def on_attribute_changed(self, element: Tag, attribute: str):
        if attribute not in WATCHED_ATTRIBUTES:
            return
        if not any(el is element for el in self._pending):
            self._pending.append(element)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.tracker.scheduler.call_later(
            self.tracker.config.mutation_debounce_ms / 1000.0,
            self._debounced_process,
        )

    def _debounced_process(self):
        with self.tracker.lock:
            self._timer = None
            self.process_pending()

    def process_pending(self) -> List[Event]:
        pending, self._pending = self._pending, []
        events = []
        for element in pending:
            event = self.check(element)
            if event is not None:
                events.append(event)
        return events

    def check(self, element: Tag) -> Optional[Event]:
        if not is_overlay(element):
            return None

        visible = is_visible(element)
        was_visible = self._visible.get(element, False)
        if visible == was_visible:
            return None
        self._visible.set(element, visible)

        t = self.tracker
        kind = overlay_type(element)
        if kind == "modal" or element.get("role") == "dialog":
            descriptor = t.registry.detect(element)
            data = {
                "action": "opened" if visible else "closed",
                "modal_name": element_name(element),
                "modal_id": element.get("id"),
                "trigger_source": "button_click",
                "page_path": t.page.path,
            }
            context = t.extractor.extract(element, descriptor) if descriptor else {}
            if context:
                data["context"] = context
            return t.track_event(EventType.MODAL_INTERACTION, data)

        return t.track_event(EventType.ELEMENT_VISIBILITY, {
            "action": "shown" if visible else "hidden",
            "element_type": kind,
            "element_name": element_name(element),
            "element_id": element.get("id"),
            "trigger_source": "auto_trigger" if visible else "button_click",
            "page_path": t.page.path,
            "has_cta": has_call_to_action(element),
        })

    def reset(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = []
