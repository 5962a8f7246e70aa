# tracker/collectors/scroll_collector.py
from typing import List, Set

from ..schemas import Event, EventType

MILESTONES = (25, 50, 75, 90, 100)


class ScrollCollector:
    """Scroll-Tiefe: jeder Meilenstein höchstens einmal pro Seitenaufruf."""

    def __init__(self, tracker):
        self.tracker = tracker
        self.reached: Set[int] = set()
        self.last_y = 0.0
        self.direction = "down"
        self._timer = None

    def on_scroll(self):
        # debounce: erst auswerten, wenn scroll_debounce_ms Ruhe ist
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.tracker.scheduler.call_later(
            self.tracker.config.scroll_debounce_ms / 1000.0,
            self._debounced_check,
        )

    def _debounced_check(self):
        with self.tracker.lock:
            self._timer = None
            self.check_depth()

    def check_depth(self) -> List[Event]:
        page = self.tracker.page
        current_y = page.scroll_y
        if current_y != self.last_y:
            self.direction = "down" if current_y > self.last_y else "up"
        self.last_y = current_y

        percent = page.scroll_percent
        events = []
        for milestone in MILESTONES:
            if milestone > percent or milestone in self.reached:
                continue
            self.reached.add(milestone)
            event = self.tracker.track_event(EventType.SCROLL_INTERACTION, {
                "action": "depth_reached",
                "depth_percentage": milestone,
                "milestone": f"{milestone}%",
                "page_path": page.path,
                "direction": self.direction,
            })
            if event is not None:
                events.append(event)
        return events

    def reset(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.reached.clear()
        self.last_y = 0.0
        self.direction = "down"
