import pytest
from fastapi.testclient import TestClient

from backend.main import app, recent_events
from tracker.delivery import Transport
from tracker.schemas import Event, EventType


@pytest.fixture
def client():
    recent_events.clear()
    with TestClient(app) as c:
        yield c
    recent_events.clear()


def _event(event_type=EventType.PAGE_VIEW, app_key="test-app", **data):
    return Event(
        app_key=app_key,
        session_id="sess_1_abc",
        user_id="12345678",
        event_type=event_type,
        data=data,
    ).model_dump(mode="json")


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "buffered": 0}


def test_ingest_accepts_batch(client):
    batch = {"app_key": "test-app", "events": [_event(path="/"), _event(EventType.BUTTON_CLICK)]}

    resp = client.post("/ingest/analytics", json=batch)

    assert resp.status_code == 202
    assert resp.json() == {"accepted": 2}
    assert len(recent_events) == 2


def test_ingest_rejects_foreign_app_key(client):
    batch = {"app_key": "test-app", "events": [_event(app_key="other-app")]}

    resp = client.post("/ingest/analytics", json=batch)

    assert resp.status_code == 422
    assert len(recent_events) == 0


def test_ingest_rejects_event_without_user(client):
    event = _event()
    event["user_id"] = ""

    resp = client.post("/ingest/analytics", json={"app_key": "test-app", "events": [event]})

    assert resp.status_code == 422


def test_recent_is_newest_first_and_filterable(client):
    events = [_event(n=1), _event(EventType.BUTTON_CLICK, n=2), _event(n=3)]
    client.post("/ingest/analytics", json={"app_key": "test-app", "events": events})

    newest = client.get("/ingest/recent").json()
    assert [e["data"]["n"] for e in newest] == [3, 2, 1]

    views = client.get("/ingest/recent", params={"event_type": "PAGE_VIEW", "limit": 1}).json()
    assert [e["data"]["n"] for e in views] == [3]


def test_transport_round_trip_against_sink(client):
    transport = Transport("/ingest/analytics", session=client)
    event = Event(
        app_key="test-app",
        session_id="sess_1_abc",
        user_id="12345678",
        event_type=EventType.SCROLL_INTERACTION,
        data={"depth_percentage": 50},
    )

    assert transport.send("test-app", [event]) is True
    assert recent_events[-1]["id"] == event.id
