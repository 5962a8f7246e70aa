import json

import pytest

from tracker.delivery import DeliveryQueue, Transport, queue_key
from tracker.schemas import Event, EventType
from tracker.storage import MemoryStore

from conftest import ENDPOINT


def _event(n: int) -> Event:
    return Event(
        app_key="test-app",
        session_id="sess_1_abc",
        user_id="12345678",
        event_type=EventType.SCROLL_INTERACTION,
        data={"n": n},
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_queue(make_config, http, store, clock):
    def _make(**config):
        config.setdefault("batch_size", 3)
        return DeliveryQueue(make_config(**config), Transport(ENDPOINT, session=http), store, clock)
    return _make


def _numbers(events):
    return [e.data["n"] if isinstance(e, Event) else e["data"]["n"] for e in events]


def _persisted(store):
    raw = store.get(queue_key("test-app"))
    return None if raw is None else json.loads(raw)


def test_batch_size_triggers_exactly_one_flush(make_queue, http):
    queue = make_queue()
    for n in range(3):
        queue.enqueue(_event(n))

    assert len(http.calls) == 1
    call = http.calls[0]
    assert call["url"] == ENDPOINT
    assert call["headers"] == {"Content-Type": "application/json"}
    assert call["json"]["app_key"] == "test-app"
    assert _numbers(call["json"]["events"]) == [0, 1, 2]
    assert len(queue) == 0


def test_below_batch_size_nothing_is_sent(make_queue, http):
    queue = make_queue()
    queue.enqueue(_event(0))
    queue.enqueue(_event(1))

    assert http.calls == []
    assert _numbers(queue.snapshot()) == [0, 1]


def test_empty_flush_is_a_no_op(make_queue, http):
    assert make_queue().flush() is True
    assert http.calls == []


@pytest.mark.parametrize("break_transport", [
    lambda http: http.respond_with(500),
    lambda http: http.go_offline(),
])
def test_failed_flush_requeues_and_persists_in_order(make_queue, http, store, break_transport):
    queue = make_queue()
    break_transport(http)

    for n in range(3):
        queue.enqueue(_event(n))

    assert len(http.calls) == 1
    assert _numbers(queue.snapshot()) == [0, 1, 2]
    persisted = _persisted(store)
    assert [e["id"] for e in persisted] == [e.id for e in queue.snapshot()]
    assert queue.failures == 1


def test_failed_batch_goes_ahead_of_newer_events(make_queue, http):
    queue = make_queue(batch_size=2)
    http.respond_with(503)
    queue.enqueue(_event(0))
    queue.enqueue(_event(1))     # Flush schlägt fehl
    queue.enqueue(_event(2))     # Backoff: kein Versand

    assert _numbers(queue.snapshot()) == [0, 1, 2]


def test_backoff_skips_non_forced_flush(make_queue, http, clock):
    queue = make_queue(backoff_base_ms=1000)
    http.respond_with(500)
    for n in range(3):
        queue.enqueue(_event(n))
    assert queue.backing_off

    http.respond_with(200)
    queue.enqueue(_event(3))
    assert queue.flush() is False
    assert len(http.calls) == 1

    assert queue.flush(force=True) is True
    assert len(http.calls) == 2
    assert _numbers(http.calls[1]["json"]["events"]) == [0, 1, 2, 3]
    assert queue.failures == 0
    assert not queue.backing_off


def test_backoff_grows_exponentially_and_is_capped(make_queue, http, clock):
    queue = make_queue(batch_size=100, backoff_base_ms=1000, backoff_max_ms=3000)
    http.respond_with(500)
    queue.enqueue(_event(0))

    queue.flush()
    clock.now += 0.5
    assert queue.backing_off
    clock.now += 0.5
    assert not queue.backing_off

    queue.flush()            # 2. Fehlschlag: 2 s
    clock.now += 1.5
    assert queue.backing_off
    clock.now += 0.5
    assert not queue.backing_off

    queue.flush()            # 3. Fehlschlag: 4 s, gedeckelt auf 3 s
    clock.now += 2.5
    assert queue.backing_off
    clock.now += 0.5
    assert not queue.backing_off
    assert queue.failures == 3


def test_success_after_failure_clears_persisted_snapshot(make_queue, http, store, clock):
    queue = make_queue()
    http.respond_with(500)
    for n in range(3):
        queue.enqueue(_event(n))
    assert _persisted(store) is not None

    http.respond_with(200)
    clock.now += 5
    assert queue.flush() is True
    assert _persisted(store) is None


def test_queue_evicts_oldest_beyond_max_size(make_queue):
    queue = make_queue(batch_size=10, max_queue_size=3)
    for n in range(5):
        queue.enqueue(_event(n))

    assert _numbers(queue.snapshot()) == [2, 3, 4]


def test_eviction_also_applies_to_requeued_batch(make_queue, http):
    queue = make_queue(batch_size=2, max_queue_size=3)
    http.respond_with(500)
    for n in range(4):
        queue.enqueue(_event(n))

    assert _numbers(queue.snapshot()) == [1, 2, 3]


def test_restore_requeues_persisted_events_ahead(make_queue, http, store):
    first = make_queue(batch_size=10)
    for n in range(3):
        first.enqueue(_event(n))
    first.persist()

    second = make_queue(batch_size=10)
    second.enqueue(_event(99))
    assert second.restore() == 3

    assert _numbers(second.snapshot()) == [0, 1, 2, 99]
    assert _persisted(store) is None


def test_restore_skips_garbage(make_queue, store):
    store.set(queue_key("test-app"), "not json")
    assert make_queue().restore() == 0
    assert store.get(queue_key("test-app")) is None

    store.set(queue_key("test-app"), json.dumps([_event(1).model_dump(mode="json"), {"foo": 1}]))
    queue = make_queue()
    assert queue.restore() == 1
    assert _numbers(queue.snapshot()) == [1]


def test_persist_of_empty_queue_removes_key(make_queue, store):
    store.set(queue_key("test-app"), "[]")
    make_queue().persist()
    assert store.get(queue_key("test-app")) is None


def test_clear_drops_queue_and_snapshot(make_queue, http, store):
    queue = make_queue()
    http.respond_with(500)
    for n in range(3):
        queue.enqueue(_event(n))

    queue.clear()

    assert len(queue) == 0
    assert _persisted(store) is None


def test_transport_only_accepts_2xx(http):
    transport = Transport(ENDPOINT, timeout=1.5, session=http)

    http.respond_with(204)
    assert transport.send("test-app", [_event(0)]) is True
    assert http.calls[-1]["timeout"] == 1.5

    http.respond_with(302)
    assert transport.send("test-app", [_event(0)]) is False
