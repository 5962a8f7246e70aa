# tracker/collectors/common.py
"""Hilfsfunktionen, die mehrere Collectors brauchen (Namen, Surface, Overlay-Typen)."""
import re
from typing import Optional

from bs4 import Tag

from ..context import find_modal, fillable_fields
from ..dom import class_string, closest, select_one, text_of
from ..schemas import ComponentDescriptor

CLICKABLE_SELECTOR = ", ".join([
    "button",
    '[role="button"]',
    "[onclick]",
    'input[type="submit"]',
    'input[type="button"]',
    '[class*="button"]',
    '[class*="btn"]',
    "svg",
    '[class*="icon"]',
    "[data-clickable]",
    '[style*="cursor: pointer"]',
    "a",
])

SURFACE_SELECTOR = "header, nav, main, footer, aside, section[data-component], [data-surface]"

OVERLAY_CLASSES = ("modal", "popup", "drawer", "overlay", "tooltip", "dropdown", "toast")

CONVERSION_RE = re.compile(r"buy|purchase|checkout|cart|order|upgrade|subscribe|pay")
NAVIGATION_RE = re.compile(r"learn|view|browse|explore|next|previous|back")


def element_text(el: Tag) -> str:
    return (
        text_of(el)
        or el.get("value")
        or el.get("aria-label")
        or el.get("title")
        or "Unknown"
    )


def element_name(el: Tag) -> str:
    return (
        el.get("aria-label")
        or el.get("title")
        or el.get("data-name")
        or el.get("id")
        or "unnamed"
    )


def form_name(form: Tag) -> str:
    return form.get("name") or form.get("aria-label") or form.get("id") or "form"


def get_surface(el: Tag) -> str:
    """Grober Seitenbereich: modal, header, nav, main, ... oder 'unknown'."""
    if find_modal(el) is not None:
        return "modal"
    section = closest(el, SURFACE_SELECTOR)
    if section is not None:
        return section.get("data-surface") or section.get("data-component") or section.name
    return "unknown"


def button_type(el: Tag) -> str:
    if el.name == "a":
        return "link"
    if el.name == "svg" or select_one(el, "svg") is not None or "icon" in class_string(el):
        return "icon"
    if el.get("role") == "tab":
        return "tab"
    return "button"


def is_primary_cta(el: Tag) -> bool:
    classes = class_string(el)
    return (
        "primary" in classes
        or "cta" in classes
        or "hero" in classes
        or el.get("data-primary") == "true"
    )


def cta_category(el: Tag, descriptor: Optional[ComponentDescriptor]) -> str:
    text = element_text(el).lower()
    purpose = (descriptor.purpose or "").lower() if descriptor else ""
    if CONVERSION_RE.search(text) or CONVERSION_RE.search(purpose):
        return "conversion"
    if NAVIGATION_RE.search(text):
        return "navigation"
    return "engagement"


def form_type(form: Tag) -> str:
    form_id = (form.get("id") or "").lower()
    name = (form.get("name") or "").lower()
    for kind in ("checkout", "login", "signup"):
        if kind in form_id or kind in name:
            return kind
    if "newsletter" in form_id or len(fillable_fields(form)) == 1:
        return "newsletter"
    if "contact" in form_id or "contact" in name:
        return "contact"
    return "other"


def overlay_type(el: Tag) -> str:
    classes = class_string(el)
    if el.get("role") == "dialog" or "modal" in classes:
        return "modal"
    for kind in ("popup", "drawer", "tooltip", "dropdown", "toast"):
        if kind in classes:
            return kind
    return "unknown"


def is_overlay(el: Tag) -> bool:
    if el.get("role") == "dialog":
        return True
    classes = class_string(el)
    return any(kind in classes for kind in OVERLAY_CLASSES)


def has_call_to_action(el: Tag) -> bool:
    return select_one(el, 'button, a[href], [role="button"]') is not None
