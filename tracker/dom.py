# tracker/dom.py
"""
DOM-Hilfsfunktionen auf Basis von BeautifulSoup/soupsieve.

Ungültige Selektoren werfen soupsieve.SelectorSyntaxError, nicht unterstützte
(Pseudo-Elemente wie ::before, @-Regeln) NotImplementedError. Beide stehen in
SELECTOR_ERRORS; der Aufrufer entscheidet, ob er sie überspringt.
"""
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

import soupsieve as sv
from bs4 import Tag

SELECTOR_ERRORS = (sv.SelectorSyntaxError, NotImplementedError)

DEFAULT_STYLE = {
    "display": "block",
    "visibility": "visible",
    "opacity": "1",
}

_WS_RE = re.compile(r"\s+")


def compile_selector(selector: str) -> sv.SoupSieve:
    return sv.compile(selector)


def matches(el: Tag, selector: str) -> bool:
    return sv.match(selector, el)


def closest(el: Tag, selector: str) -> Optional[Tag]:
    """Wie Element.closest(): das Element selbst oder der nächste passende Vorfahr."""
    return sv.closest(selector, el)


def select(scope: Tag, selector: str) -> List[Tag]:
    return sv.select(selector, scope)


def select_one(scope: Tag, selector: str) -> Optional[Tag]:
    return sv.select_one(selector, scope)


def first_closest(el: Tag, selectors) -> Optional[Tag]:
    for selector in selectors:
        found = closest(el, selector)
        if found is not None:
            return found
    return None


def text_of(el: Tag) -> str:
    return _WS_RE.sub(" ", el.get_text(" ", strip=True)).strip()


def class_list(el: Tag) -> List[str]:
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return list(classes)


def class_string(el: Tag) -> str:
    return " ".join(class_list(el)).lower()


def parse_style(el: Tag) -> Dict[str, str]:
    """Inline-style="a: b; c: d" -> {"a": "b", "c": "d"}"""
    style: Dict[str, str] = {}
    for part in (el.get("style") or "").split(";"):
        if ":" not in part:
            continue
        prop, value = part.split(":", 1)
        style[prop.strip().lower()] = value.strip().lower()
    return style


def computed_style(el: Tag, prop: str) -> str:
    # ohne Layout-Engine: Inline-Style + hidden-Attribut + Defaults
    style = parse_style(el)
    if prop == "display" and el.has_attr("hidden"):
        return "none"
    return style.get(prop, DEFAULT_STYLE.get(prop, ""))


def _hides_subtree(el: Tag) -> bool:
    return el.has_attr("hidden") or parse_style(el).get("display") == "none"


def is_visible(el: Tag) -> bool:
    if computed_style(el, "display") == "none":
        return False
    if computed_style(el, "visibility") == "hidden":
        return False
    if computed_style(el, "opacity") == "0":
        return False
    if el.get("aria-hidden") == "true":
        return False
    if el.get("data-state") == "closed":
        return False
    # Ersatz für offsetParent === null: ein Vorfahr blendet alles aus
    for parent in el.parents:
        if isinstance(parent, Tag) and parent.name != "[document]" and _hides_subtree(parent):
            return False
    return True


def element_value(el: Tag) -> Any:
    if el.name == "textarea":
        return el.get("value", el.get_text())
    if el.name == "select":
        option = select_one(el, "option[selected]") or select_one(el, "option")
        if option is None:
            return None
        return option.get("value", text_of(option))
    return el.get("value")


def is_checked(el: Tag) -> bool:
    return el.has_attr("checked")


def data_attributes(el: Tag) -> Dict[str, str]:
    """data-task-id="t1" -> {"task-id": "t1"}"""
    return {
        name[len("data-"):]: value
        for name, value in el.attrs.items()
        if name.startswith("data-")
    }


def is_attached(el: Tag, root: Tag) -> bool:
    if el is root:
        return True
    return any(parent is root for parent in el.parents)


# =========================
# Element-Index
# =========================

class ElementIndex:
    """
    Vergibt jedem gesehenen Element eine synthetische ID (Handle).
    Zustand pro Element liegt in ElementMaps, die über den Handle adressiert
    werden. sweep() räumt Elemente weg, die nicht mehr im Dokument hängen.
    """

    def __init__(self):
        self._handles: Dict[int, int] = {}    # id(tag) -> handle
        self._elements: Dict[int, Tag] = {}   # handle -> tag
        self._maps: List["ElementMap"] = []
        self._next = 1

    def handle_for(self, el: Tag) -> int:
        handle = self._handles.get(id(el))
        if handle is None:
            handle = self._next
            self._next += 1
            self._handles[id(el)] = handle
            self._elements[handle] = el
        return handle

    def element(self, handle: int) -> Optional[Tag]:
        return self._elements.get(handle)

    def new_map(self) -> "ElementMap":
        element_map = ElementMap(self)
        self._maps.append(element_map)
        return element_map

    def sweep(self, root: Optional[Tag]) -> int:
        stale = [
            handle for handle, el in self._elements.items()
            if root is None or not is_attached(el, root)
        ]
        for handle in stale:
            el = self._elements.pop(handle)
            self._handles.pop(id(el), None)
            for element_map in self._maps:
                element_map.discard_handle(handle)
        return len(stale)

    def __len__(self):
        return len(self._elements)


class ElementMap:
    """Ersatz für WeakMap<Element, T> - Schlüssel ist der Handle, nicht das Element."""

    def __init__(self, index: ElementIndex):
        self.index = index
        self._values: Dict[int, Any] = {}

    def get(self, el: Tag, default: Any = None) -> Any:
        return self._values.get(self.index.handle_for(el), default)

    def set(self, el: Tag, value: Any):
        self._values[self.index.handle_for(el)] = value

    def pop(self, el: Tag, default: Any = None) -> Any:
        return self._values.pop(self.index.handle_for(el), default)

    def __contains__(self, el: Tag) -> bool:
        return self.index.handle_for(el) in self._values

    def discard_handle(self, handle: int):
        self._values.pop(handle, None)

    def items(self) -> Iterator[Tuple[Tag, Any]]:
        for handle, value in list(self._values.items()):
            el = self.index.element(handle)
            if el is not None:
                yield el, value

    def clear(self):
        self._values.clear()

    def __len__(self):
        return len(self._values)
