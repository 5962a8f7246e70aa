# tracker/collectors/form_collector.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from bs4 import Tag

from ..context import fillable_fields, find_modal, form_fields
from ..dom import closest
from ..schemas import Event, EventType
from .common import element_name, form_name, form_type, get_surface


@dataclass
class FormState:
    started_at: float
    fields_interacted: Set[str] = field(default_factory=set)


class FormCollector:
    """
    Formular-Lebenszyklus: started -> submitted | abandoned.

    Formulare in Modals werden hier nicht verfolgt; ihr Submit wird als
    MODAL_INTERACTION gemeldet, sonst käme dieselbe Interaktion doppelt an.
    """

    def __init__(self, tracker):
        self.tracker = tracker
        self._forms = tracker.elements.new_map()   # form -> FormState

    def on_focus_in(self, field_el: Tag) -> Optional[Event]:
        form = closest(field_el, "form")
        if form is None or find_modal(form) is not None:
            return None

        event = None
        state = self._forms.get(form)
        if state is None:
            state = FormState(started_at=self.tracker.clock())
            self._forms.set(form, state)
            event = self.tracker.track_event(
                EventType.FORM_INTERACTION,
                self._form_data(form, "started", 0),
            )

        key = field_el.get("name") or field_el.get("id") or field_el.get("type") or field_el.name
        state.fields_interacted.add(key)
        return event

    def on_submit(self, form: Tag) -> Optional[Event]:
        t = self.tracker
        state: Optional[FormState] = self._forms.pop(form)

        modal = find_modal(form)
        if modal is not None:
            descriptor = t.registry.detect(modal)
            context = t.extractor.extract(modal, descriptor)
            context.pop("form_fields", None)
            data: Dict[str, Any] = {
                "action": "submitted",
                "modal_name": element_name(modal),
                "modal_id": modal.get("id"),
                "form_name": form_name(form),
                "trigger_source": "form_submit",
                "page_path": t.page.path,
                "form_fields": form_fields(form),
            }
            if context:
                data["context"] = context
            return t.track_event(EventType.MODAL_INTERACTION, data)

        completed = len(state.fields_interacted) if state else 0
        return t.track_event(EventType.FORM_INTERACTION, self._form_data(form, "submitted", completed))

    def on_unload(self) -> List[Event]:
        """Abgebrochene Formulare melden (nur wenn länger als form_abandon_min_ms offen)."""
        t = self.tracker
        now = t.clock()
        events = []
        for form, state in self._forms.items():
            if (now - state.started_at) * 1000 > t.config.form_abandon_min_ms:
                event = t.track_event(
                    EventType.FORM_INTERACTION,
                    self._form_data(form, "abandoned", len(state.fields_interacted)),
                )
                if event is not None:
                    events.append(event)
        self._forms.clear()
        return events

    def _form_data(self, form: Tag, action: str, completed: int) -> Dict[str, Any]:
        return {
            "action": action,
            "form_name": form_name(form),
            "form_id": form.get("id"),
            "form_type": form_type(form),
            "surface": get_surface(form),
            "page_path": self.tracker.page.path,
            "fields_total": len(fillable_fields(form)),
            "fields_completed": completed,
        }
