# tracker/config.py
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_ENDPOINT = "http://127.0.0.1:8000/ingest/analytics"
DATABASE_URL = "sqlite:///./tracker.db"

ENV_PREFIX = "TRACKER_"


class TrackerConfig(BaseModel):
    """Statische Konfiguration pro Deployment (zur Laufzeit nicht änderbar)."""

    app_key: str = Field(..., min_length=1)
    endpoint: str = DEFAULT_ENDPOINT

    # Flush-Policy
    batch_size: int = Field(10, ge=1)
    flush_interval_ms: int = Field(10_000, ge=1)
    request_timeout: float = 2.0

    # Retry / Spillover
    max_queue_size: int = Field(1000, ge=1)
    backoff_base_ms: int = Field(1000, ge=0)
    backoff_max_ms: int = Field(60_000, ge=0)

    # Zeitfenster der Collectors
    click_dedup_ms: int = 100
    scroll_debounce_ms: int = 500
    mutation_debounce_ms: int = 50
    form_abandon_min_ms: int = 1000

    # Privacy
    respect_do_not_track: bool = True
    auto_consent: bool = True

    database_url: str = DATABASE_URL
    catalog_path: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, **defaults: Any) -> "TrackerConfig":
        """
        Liest TRACKER_<FELD>-Variablen (auch aus einer .env-Datei).
        Gesetzte Variablen gewinnen gegen die übergebenen Defaults.

        Nutzung:
            TRACKER_APP_KEY=demo TRACKER_BATCH_SIZE=20 python demo.py
        """
        load_dotenv()
        values: Dict[str, Any] = dict(defaults)
        for name in cls.model_fields:
            raw = os.environ.get(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
