import json
import logging
import re

from tracker.delivery import queue_key
from tracker.identity import consent_key, user_id_key
from tracker.schemas import EventType
from tracker.storage import StorageTiers

from conftest import BrokenStore, RecordingStore, events_of


def test_events_carry_the_six_base_fields(make_tracker, clock):
    tracker = make_tracker(batch_size=100)
    tracker.click(tracker.page.query("#checkout-continue"))

    for event in tracker.delivery.snapshot():
        record = event.model_dump(mode="json")
        for name in ("id", "ts", "app_key", "session_id", "user_id", "event_type"):
            assert record[name], name
        assert record["app_key"] == "test-app"
        assert record["ts"] == int(clock.now)
        assert re.fullmatch(r"\d{8,10}", record["user_id"])


def test_start_is_idempotent(make_tracker):
    tracker = make_tracker(batch_size=100)
    tracker.start()

    assert len(events_of(tracker, "PAGE_VIEW")) == 1


def test_identity_and_session_shared_between_trackers(make_tracker):
    first = make_tracker(batch_size=100)
    second = make_tracker(batch_size=100)

    assert first.user_id == second.user_id
    assert first.session_id == second.session_id


# =========================
# Consent / Do-Not-Track
# =========================

def test_do_not_track_disables_everything(make_tracker, make_page, http):
    tiers = StorageTiers(
        durable=RecordingStore("durable"),
        cookie=RecordingStore("cookie"),
        ephemeral=RecordingStore("ephemeral"),
    )
    tracker = make_tracker(make_page(do_not_track=True), tiers=tiers)

    assert tracker.enabled is False
    assert tracker.user_id is None
    assert tracker.session_id is None
    assert tracker.track_event(EventType.PAGE_VIEW, {}) is None
    assert tracker.click(tracker.page.query("#checkout-continue")) is None
    assert tracker.grant_consent() is False
    tracker.unload()

    assert http.calls == []
    for store in (tiers.durable, tiers.cookie, tiers.ephemeral):
        assert store.reads == []
        assert store.writes == []


def test_do_not_track_can_be_ignored_by_config(make_tracker, make_page):
    tracker = make_tracker(make_page(do_not_track=True), respect_do_not_track=False)
    assert tracker.enabled is True


def test_denied_consent_disables(make_tracker, tiers, http):
    tiers.durable.set(consent_key("test-app"), "denied")
    tracker = make_tracker()

    assert tracker.enabled is False
    assert len(tracker.delivery) == 0
    tracker.flush(force=True)
    assert http.calls == []


def test_explicit_opt_in(make_tracker):
    tracker = make_tracker(auto_consent=False, batch_size=100)
    assert tracker.enabled is False
    assert events_of(tracker, "PAGE_VIEW") == []

    assert tracker.grant_consent() is True
    tracker.start()

    assert tracker.enabled is True
    assert tracker.user_id
    assert len(events_of(tracker, "PAGE_VIEW")) == 1


def test_revoke_consent_clears_queue_and_snapshot(make_tracker, tiers, http):
    tracker = make_tracker(batch_size=100)
    http.respond_with(500)
    tracker.flush()
    assert tiers.durable.get(queue_key("test-app")) is not None

    tracker.revoke_consent()

    assert tracker.enabled is False
    assert len(tracker.delivery) == 0
    assert tiers.durable.get(queue_key("test-app")) is None
    assert tiers.durable.get(consent_key("test-app")) == "denied"
    assert tracker.track_event(EventType.PAGE_VIEW) is None
    assert make_tracker().enabled is False


# =========================
# Identität
# =========================

def test_identify_overrides_user_id(make_tracker, tiers):
    tracker = make_tracker(batch_size=100)

    tracker.identify("user-42", {"plan": "pro"})
    event = tracker.track_event(EventType.BUTTON_CLICK, {})

    assert event.user_id == "user-42"
    assert tiers.durable.get(user_id_key("test-app")) == "user-42"

    tracker.identify("")
    assert tracker.user_id == "user-42"


def test_broken_durable_tier_keeps_tracker_running(make_tracker, http):
    tracker = make_tracker(tiers=StorageTiers(durable=BrokenStore()), batch_size=100)

    assert tracker.enabled is True
    assert tracker.click(tracker.page.query("#checkout-continue")) is not None

    http.go_offline()
    tracker.unload()
    assert len(tracker.delivery) == 2


# =========================
# Versand
# =========================

def test_interval_flush(make_tracker, scheduler, http):
    make_tracker()
    scheduler.advance(9.5)
    assert http.calls == []

    scheduler.advance(0.5)
    assert len(http.calls) == 1

    scheduler.advance(10)
    assert len(http.calls) == 1


def test_full_batch_is_sent_off_the_host_thread(make_tracker, scheduler, http):
    tracker = make_tracker(batch_size=2)
    tracker.track_event(EventType.BUTTON_CLICK, {"n": 1})
    tracker.track_event(EventType.BUTTON_CLICK, {"n": 2})

    assert http.calls == []
    assert len(tracker.delivery) == 3

    scheduler.advance(0)

    assert len(http.calls) == 1
    assert [e["event_type"] for e in http.sent_events] == ["PAGE_VIEW", "BUTTON_CLICK", "BUTTON_CLICK"]
    assert len(tracker.delivery) == 0


def test_hidden_tab_forces_flush_during_backoff(make_tracker, http):
    tracker = make_tracker(batch_size=100)
    http.respond_with(500)
    assert tracker.flush() is False

    http.respond_with(200)
    assert tracker.flush() is False
    assert len(http.calls) == 1

    tracker.visibility_changed(True)

    assert tracker.page.hidden is True
    assert len(http.calls) == 2
    assert len(tracker.delivery) == 0


def test_unload_persists_and_next_load_resends(make_tracker, scheduler, http, tiers):
    first = make_tracker()
    http.go_offline()
    first.focus_in(first.page.query("#seats"))
    scheduler.advance(2)
    first.unload()

    persisted = json.loads(tiers.durable.get(queue_key("test-app")))
    assert [e["event_type"] for e in persisted] == ["PAGE_VIEW", "FORM_INTERACTION", "FORM_INTERACTION"]
    assert persisted[2]["data"]["action"] == "abandoned"

    http.error = None
    second = make_tracker()
    assert tiers.durable.get(queue_key("test-app")) is None
    scheduler.advance(0)

    sent = http.calls[-1]["json"]["events"]
    assert [e["id"] for e in sent[:3]] == [e["id"] for e in persisted]
    assert sent[3]["event_type"] == "PAGE_VIEW"
    assert len(second.delivery) == 0


def test_handler_errors_never_reach_the_host(make_tracker, monkeypatch, caplog):
    tracker = make_tracker(batch_size=100)

    def boom(target):
        raise RuntimeError("broken collector")

    monkeypatch.setattr(tracker.clicks, "on_click", boom)
    with caplog.at_level(logging.ERROR, logger="tracker.client"):
        assert tracker.click(tracker.page.query("#checkout-continue")) is None

    assert "broken collector" in caplog.text
