# tracker/schemas.py

import time
import uuid
from enum import Enum
from typing import Optional, Literal, Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    PAGE_VIEW = "PAGE_VIEW"
    BUTTON_CLICK = "BUTTON_CLICK"
    FORM_INTERACTION = "FORM_INTERACTION"
    MODAL_INTERACTION = "MODAL_INTERACTION"
    SCROLL_INTERACTION = "SCROLL_INTERACTION"
    ELEMENT_VISIBILITY = "ELEMENT_VISIBILITY"


class Event(BaseModel):
    """Ein Event-Record, so wie er an den Ingest-Endpoint geht."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    # Die sechs Basisfelder sind nie null
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    ts: int = Field(default_factory=lambda: int(time.time()))
    app_key: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    event_type: EventType

    # Event-spezifisch, darf leer sein
    data: Dict[str, Any] = Field(default_factory=dict)


class EventBatch(BaseModel):
    """Payload eines Flushes: {app_key, events: [...]}."""
    app_key: str
    events: List[Event]


# =========================
# Komponenten-Katalog
# =========================

ExtractionMethod = Literal[
    "value",
    "checked",
    "textContent",
    "data-attribute",
    "aria-attribute",
    "class-state",
    "computed-style",
    "count",
]
DataType = Literal["string", "number", "boolean", "array", "object"]


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    field_name: str
    selector: str
    extraction_method: ExtractionMethod = "value"
    data_type: Optional[DataType] = None
    attribute_name: Optional[str] = None
    required: bool = False
    anonymize: bool = False


class StateTracking(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_previous_value: bool = False
    track_delta: bool = False
    track_timing: bool = False


class ContextSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    scope_selector: Optional[str] = None
    fields: List[FieldDescriptor] = Field(default_factory=list)
    state_tracking: StateTracking = Field(default_factory=StateTracking)


class ComponentDescriptor(BaseModel):
    """Deklarative Regel: woran erkennt man die Komponente, welcher Kontext wird gesammelt."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "component"
    pattern_type: Optional[str] = None
    selectors: List[str] = Field(default_factory=list)
    purpose: Optional[str] = None
    context_collection: Optional[ContextSpec] = None
    relationships: Dict[str, Any] = Field(default_factory=dict)


class Catalog(BaseModel):
    version: str = "1"
    components: List[ComponentDescriptor] = Field(default_factory=list)
