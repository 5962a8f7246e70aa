# tracker/collectors/navigation_collector.py
from typing import Optional

from ..schemas import Event, EventType

NAVIGATION_KINDS = {"push", "replace", "pop"}

ENTRY_TYPES = {
    "reload": "reload",
    "back_forward": "back_forward",
    "navigate": "navigation",
}


class NavigationCollector:
    """
    Seitenaufrufe. Statt history.pushState zu patchen ruft der Host (bzw.
    sein Router) navigate() direkt auf.
    """

    def __init__(self, tracker):
        self.tracker = tracker
        self.previous_path: Optional[str] = None
        self.has_viewed_page = False

    def track_page_view(self, entry_type: Optional[str] = None) -> Optional[Event]:
        page = self.tracker.page
        if entry_type is None:
            entry_type = ENTRY_TYPES.get(page.navigation_type, "navigation")

        event = self.tracker.track_event(EventType.PAGE_VIEW, {
            "url": page.url,
            "path": page.path,
            "title": page.title,
            "page_name": page.page_name(),
            "previous_path": self.previous_path,
            "referrer": page.referrer,
            "is_first_view": not self.has_viewed_page,
            "entry_type": entry_type,
        })
        self.previous_path = page.path
        self.has_viewed_page = True
        return event

    def on_navigate(self, url: str, kind: str = "push", html: Optional[str] = None) -> Optional[Event]:
        if kind not in NAVIGATION_KINDS:
            raise ValueError(f"unknown navigation kind: {kind}")

        page = self.tracker.page
        page.url = url
        if html is not None:
            page.load(html)

        self.tracker.reset_page_state()
        return self.track_page_view("back_forward" if kind == "pop" else "navigation")
