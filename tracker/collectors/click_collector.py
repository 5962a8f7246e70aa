# tracker/collectors/click_collector.py
from typing import Optional

from bs4 import Tag

from ..dom import closest
from ..schemas import Event, EventType
from .common import (
    CLICKABLE_SELECTOR,
    button_type,
    cta_category,
    element_text,
    get_surface,
    is_primary_cta,
)


class ClickCollector:
    """
    Klicks -> BUTTON_CLICK.
    Derselbe Klick kann beim Host mehrfach ankommen (Bubbling, Label + Input);
    innerhalb von click_dedup_ms zählt nur der erste.
    """

    def __init__(self, tracker):
        self.tracker = tracker
        self._last_click = tracker.elements.new_map()

    def on_click(self, target: Tag) -> Optional[Event]:
        t = self.tracker
        now = t.clock()
        last = self._last_click.get(target)
        if last is not None and (now - last) * 1000 < t.config.click_dedup_ms:
            return None
        self._last_click.set(target, now)

        descriptor = t.registry.detect(target)
        clickable = closest(target, CLICKABLE_SELECTOR)
        if clickable is None and descriptor is None:
            return None

        element = clickable or target
        context = t.extractor.extract(element, descriptor)

        data = {
            "element_text": element_text(element)[:100],
            "element_id": element.get("id"),
            "element_type": button_type(element),
            "surface": get_surface(element),
            "page_path": t.page.path,
            "is_primary_cta": is_primary_cta(element),
            "cta_category": cta_category(element, descriptor),
            "pattern_type": descriptor.pattern_type if descriptor else None,
            "component": descriptor.name if descriptor else None,
        }
        # leerer Kontext wird weggelassen, nicht als {} gesendet
        if context:
            data["context"] = context

        return t.track_event(EventType.BUTTON_CLICK, data)
