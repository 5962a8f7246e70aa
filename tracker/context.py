# tracker/context.py
"""
Kontext-Extraktion für Interaktionen.

Mit Deskriptor: genau die Felder aus context_collection, aufgelöst innerhalb
eines Scope-Elements. Ohne Deskriptor: vier Heuristiken (Formular,
URL-Parameter, Seitentyp, data-*-IDs), die sich gegenseitig ergänzen.
"""
import json
import logging
import math
import re
import time
from typing import Any, Callable, Dict, List, Optional

from bs4 import Tag

from .dom import (
    SELECTOR_ERRORS,
    class_list,
    closest,
    computed_style,
    data_attributes,
    element_value,
    first_closest,
    is_checked,
    matches,
    select,
    select_one,
    text_of,
)
from .page import Page, is_identifier_segment, last_named_segment, path_segments
from .schemas import ComponentDescriptor, ContextSpec, FieldDescriptor

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 100
REDACTED = "[REDACTED]"

FALLBACK_SCOPES = [
    "form",
    '[role="dialog"]',
    "[data-form]",
    "[data-component]",
    "[data-item-id]",
    "tr",
    "li",
    "section",
]

MODAL_SELECTORS = [
    '[role="dialog"]',
    ".modal",
    "[data-modal]",
    '[class*="modal"]',
]

SKIPPED_INPUT_TYPES = {"button", "submit", "reset", "hidden", "image", "file"}

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_RE = re.compile(r"pass(word|wd)?|secret|pin\b", re.IGNORECASE)
CARD_RE = re.compile(r"card|cc-?(num|number|exp)|cvv|cvc|csc|security.?code", re.IGNORECASE)
PHONE_RE = re.compile(r"phone|mobile|\btel\b|ssn|iban", re.IGNORECASE)
TRUTHY = {"true", "1"}


# =========================
# Maskierung
# =========================

def truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
        return value[:MAX_STRING_LENGTH]
    return value


def mask_email(value: str) -> str:
    """max.mustermann@example.com -> m***n@example.com"""
    local, _, domain = value.partition("@")
    if not local or not domain:
        return mask_pii(value)
    return f"{local[0]}***{local[-1]}@{domain}"


def mask_pii(value: Any) -> str:
    return "***" + str(value)[-4:]


def anonymize(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if EMAIL_RE.match(text):
        return mask_email(text)
    return mask_pii(text)


def sanitize_field(name: str, input_type: str, value: Any) -> Any:
    """Passwort/Karte -> [REDACTED], E-Mail und Telefon maskiert, Rest gekürzt."""
    if not isinstance(value, str):
        return value
    if input_type == "password" or PASSWORD_RE.search(name):
        return REDACTED
    if CARD_RE.search(name) or input_type == "cc-number":
        return REDACTED
    if input_type == "email" or "email" in name.lower() or EMAIL_RE.match(value):
        return mask_email(value) if value else value
    if input_type == "tel" or PHONE_RE.search(name):
        return mask_pii(value) if value else value
    return truncate(value)


# =========================
# Typ-Konvertierung
# =========================

def coerce_type(value: Any, data_type: Optional[str]) -> Any:
    if value is None or not data_type:
        return value

    if data_type == "number":
        if isinstance(value, str) and not value.strip():
            return None
        try:
            num = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(num) or math.isinf(num):
            return None
        return int(num) if num.is_integer() else num

    if data_type == "boolean":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUTHY

    if data_type == "array":
        return value if isinstance(value, list) else [value]

    if data_type == "object":
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except ValueError:
            return value

    return str(value)


# =========================
# Extraktion
# =========================

class ContextExtractor:
    def __init__(self, page: Page, clock: Callable[[], float] = time.time):
        self.page = page
        self.clock = clock

    def extract(self, element: Tag, descriptor: Optional[ComponentDescriptor]) -> Dict[str, Any]:
        if descriptor is not None and descriptor.context_collection is not None:
            return self.extract_with_spec(element, descriptor.context_collection)
        return self.extract_fallback(element)

    # ---------- mit Deskriptor ----------

    def extract_with_spec(self, element: Tag, spec: ContextSpec) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        missing: List[str] = []
        scope = self.find_scope(element, spec.scope_selector)
        tracking = spec.state_tracking

        for field in spec.fields:
            try:
                target = self.locate(scope, field)
                value = self.extract_field(scope, target, field)
                if value is None:
                    if field.required:
                        missing.append(field.field_name)
                    continue

                if field.anonymize:
                    value = anonymize(value)
                context[field.field_name] = truncate(value)

                if tracking.track_previous_value and target is not None:
                    previous = self.previous_value(target, field)
                    if previous is not None:
                        context[field.field_name + "_previous"] = previous
                        if tracking.track_delta and _is_number(value) and _is_number(previous):
                            context[field.field_name + "_delta"] = value - previous
            except Exception as e:
                logger.debug("context extraction failed for %s: %s", field.field_name, e)

        if missing:
            context["_missing_fields"] = missing
        if tracking.track_timing:
            context["_interaction_timestamp"] = int(self.clock() * 1000)
        return context

    def find_scope(self, element: Tag, scope_selector: Optional[str]) -> Tag:
        if not scope_selector:
            return element
        try:
            scope = closest(element, scope_selector)
        except SELECTOR_ERRORS as e:
            logger.debug("invalid scope selector %r: %s", scope_selector, e)
            scope = None
        if scope is not None:
            return scope
        return first_closest(element, FALLBACK_SCOPES) or element

    def locate(self, scope: Tag, field: FieldDescriptor) -> Optional[Tag]:
        target = select_one(scope, field.selector)
        if target is not None:
            return target
        # der Scope selbst kann der Träger sein (data-* am <tr>)
        if matches(scope, field.selector):
            return scope
        # zweiter Versuch: name/id/placeholder aus dem Feldnamen ableiten
        for selector in _flexible_selectors(field.field_name):
            target = select_one(scope, selector)
            if target is not None:
                return target
        return None

    def extract_field(self, scope: Tag, target: Optional[Tag], field: FieldDescriptor) -> Any:
        method = field.extraction_method

        if method == "count":
            return len(select(scope, field.selector))

        if target is None:
            if field.field_name.endswith("_id"):
                return coerce_type(self.id_from_path(field.field_name), field.data_type)
            return None

        if method == "value":
            return coerce_type(element_value(target), field.data_type)

        if method == "checked":
            if field.data_type == "array":
                checked = select(scope, field.selector + ":checked")
                return [
                    el.get(field.attribute_name) if field.attribute_name else el.get("value")
                    for el in checked
                ]
            return is_checked(target)

        if method == "textContent":
            return text_of(target)

        if method == "data-attribute":
            attr_name = field.attribute_name or "data-value"
            return coerce_type(target.get(attr_name), field.data_type)

        if method == "aria-attribute":
            attr_name = field.attribute_name or "value"
            if not attr_name.startswith("aria-"):
                attr_name = "aria-" + attr_name
            return coerce_type(target.get(attr_name), field.data_type)

        if method == "class-state":
            classes = class_list(target)
            if field.attribute_name:
                pattern = re.compile(field.attribute_name)
                return next((c for c in classes if pattern.search(c)), None)
            return " ".join(classes)

        if method == "computed-style":
            return computed_style(target, field.attribute_name or "display")

        return element_value(target) or text_of(target)

    def previous_value(self, target: Tag, field: FieldDescriptor) -> Any:
        previous = target.get("data-previous-value")
        if previous:
            return coerce_type(previous, field.data_type)
        previous = target.get("aria-valuenow")
        if previous:
            return coerce_type(previous, field.data_type)
        return None

    def id_from_path(self, field_name: str) -> Optional[str]:
        """project_id + /dashboard/projects/p1 -> "p1" """
        entity = field_name[: -len("_id")].lower()
        segments = path_segments(self.page.path)
        names = {entity, entity + "s", entity + "es", entity.replace("_", "-") + "s"}
        for i, segment in enumerate(segments[:-1]):
            if segment.lower() in names and is_identifier_segment(segments[i + 1]):
                return segments[i + 1]
        for segment in reversed(segments):
            if is_identifier_segment(segment):
                return segment
        return None

    # ---------- ohne Deskriptor ----------

    def extract_fallback(self, element: Tag) -> Dict[str, Any]:
        context: Dict[str, Any] = {}

        # (a) Formular, auch über ein umschließendes Modal
        form = closest(element, "form")
        if form is None:
            modal = first_closest(element, MODAL_SELECTORS)
            if modal is not None:
                form = select_one(modal, "form")
        if form is not None:
            fields = form_fields(form)
            if fields:
                context["form_fields"] = fields

        # (b) URL-Parameter
        params = {
            key: sanitize_field(key, "text", value)
            for key, value in self.page.query_params.items()
        }
        if params:
            context["url_params"] = params

        # (c) Seitentyp
        page_type = self.page.body.get("data-page-type") or last_named_segment(self.page.path)
        if page_type:
            context["page_type"] = page_type

        # (d) nächster Vorfahr mit data-*id
        holder = _nearest_id_holder(element)
        if holder is not None:
            for key, value in data_attributes(holder).items():
                context.setdefault(key, truncate(value))

        return context


def form_fields(form: Tag) -> Dict[str, Any]:
    """Alle ausfüllbaren Felder eines Formulars, bereinigt."""
    fields: Dict[str, Any] = {}
    for el in select(form, "input, select, textarea"):
        input_type = (el.get("type") or "text").lower() if el.name == "input" else el.name
        if input_type in SKIPPED_INPUT_TYPES:
            continue
        name = el.get("name") or el.get("id")
        if not name:
            continue

        if input_type == "checkbox":
            fields[name] = is_checked(el)
            continue
        if input_type == "radio":
            if is_checked(el):
                fields[name] = el.get("value")
            continue

        value = element_value(el)
        if value is None:
            continue
        fields[name] = sanitize_field(name, input_type, value)
    return fields


def fillable_fields(form: Tag) -> List[Tag]:
    result = []
    for el in select(form, "input, select, textarea"):
        input_type = (el.get("type") or "text").lower() if el.name == "input" else el.name
        if input_type not in SKIPPED_INPUT_TYPES:
            result.append(el)
    return result


def find_modal(element: Tag) -> Optional[Tag]:
    return first_closest(element, MODAL_SELECTORS)


def _nearest_id_holder(element: Tag) -> Optional[Tag]:
    node: Optional[Tag] = element
    while node is not None and isinstance(node, Tag) and node.name != "[document]":
        if any(name.startswith("data-") and name.endswith("id") for name in node.attrs):
            return node
        node = node.parent
    return None


def _flexible_selectors(field_name: str) -> List[str]:
    keys = [field_name]
    dashed = field_name.replace("_", "-")
    if dashed != field_name:
        keys.append(dashed)
    selectors = []
    for key in keys:
        selectors.append(f'[name="{key}"]')
        selectors.append(f'[id="{key}"]')
        selectors.append(f'[placeholder*="{key}" i]')
    return selectors


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
