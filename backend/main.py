# backend/main.py
"""
Lokaler Ingest-Sink für Entwicklung und Demo.

Prüft nur das Wire-Format ({app_key, events}) und hält die letzten Events im
Speicher. Speicherung und Deduplizierung macht der echte Ingest-Service.
"""
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from fastapi import FastAPI, HTTPException

from tracker.schemas import EventBatch

app = FastAPI(title="Tracker Ingest Sink")

RECENT_LIMIT = 500

recent_events: Deque[Dict[str, Any]] = deque(maxlen=RECENT_LIMIT)


@app.get("/health")
def health():
    return {"ok": True, "buffered": len(recent_events)}


@app.post("/ingest/analytics", status_code=202)
def ingest_batch(batch: EventBatch):
    for event in batch.events:
        if event.app_key != batch.app_key:
            raise HTTPException(status_code=422, detail=f"event {event.id} has foreign app_key")

    for event in batch.events:
        recent_events.append(event.model_dump(mode="json"))
    return {"accepted": len(batch.events)}


@app.get("/ingest/recent")
def list_recent(limit: int = 100, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Neueste zuerst, optional nach event_type gefiltert."""
    rows = [e for e in reversed(recent_events) if event_type is None or e["event_type"] == event_type]
    return rows[:limit]
