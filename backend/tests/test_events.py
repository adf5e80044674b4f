"""
Tests for order notifications and the Redis event publisher.
"""

import json
from types import SimpleNamespace

import pytest
from fastapi import BackgroundTasks

from qrdine_api.services.events import (
    CUSTOMER_ACTOR,
    OrderNotifier,
    dispatch_notifications,
    staff_actor,
)
from shared.config.settings import settings
from shared.infrastructure.events import Event, encode_event, events_breaker
from shared.infrastructure.events.event_types import MAX_EVENT_SIZE, ORDER_NEW, ORDER_STATUS_UPDATE
from shared.infrastructure.events.publisher import publish_event, retry_delay


def _order(**overrides):
    fields = {"id": 7, "restaurant_id": 1, "table_id": 3}
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def event_breaker():
    breaker = events_breaker
    breaker.reset()
    yield breaker
    breaker.reset()


class TestOrderNotifier:
    def test_notify_order_channels(self):
        notifier = OrderNotifier()
        notifier.notify_order(
            _order(), ORDER_STATUS_UPDATE, waiters=True, kitchen=True, table=True, order_channel=True,
            payload={"status": "ready"}, actor=staff_actor("3", "KITCHEN"),
        )

        channels = [pending.channel for pending in notifier.pending]
        assert channels == ["restaurant:1:waiter", "restaurant:1:kitchen", "table:3", "order:7"]
        event = notifier.pending[0].event
        assert event.type == ORDER_STATUS_UPDATE
        assert event.order_id == 7
        assert event.entity == {"status": "ready"}
        assert event.actor == {"user_id": 3, "role": "KITCHEN"}

    def test_invalid_event_is_dropped(self):
        notifier = OrderNotifier()
        notifier.notify("table:1", "", {}, restaurant_id=1)
        notifier.notify("table:1", ORDER_NEW, {}, restaurant_id=0)
        assert notifier.pending == []

    def test_invalid_channel_id_is_dropped(self):
        notifier = OrderNotifier()
        notifier.notify_order(_order(table_id=0), ORDER_NEW, table=True)
        assert notifier.pending == []

    def test_schedule_hands_off_and_clears(self):
        notifier = OrderNotifier()
        notifier.notify_order(_order(), ORDER_NEW, waiters=True, actor=CUSTOMER_ACTOR)
        tasks = BackgroundTasks()

        notifier.schedule(tasks)

        assert len(tasks.tasks) == 1
        assert notifier.pending == []

    def test_schedule_without_events_adds_no_task(self):
        tasks = BackgroundTasks()
        OrderNotifier().schedule(tasks)
        assert tasks.tasks == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_publishes_each(self, redis_client, event_breaker):
        notifier = OrderNotifier()
        notifier.notify_order(_order(), ORDER_NEW, waiters=True, table=True)

        published = await dispatch_notifications(notifier.pending)

        assert published == 2
        channel, message = redis_client.publish.await_args_list[1].args
        assert channel == "table:3"
        assert json.loads(message)["type"] == ORDER_NEW

    @pytest.mark.asyncio
    async def test_failures_are_tolerated(self, redis_client, event_breaker, monkeypatch):
        monkeypatch.setattr(settings, "redis_publish_max_retries", 1)
        redis_client.publish.side_effect = [ConnectionError("down"), 1]
        notifier = OrderNotifier()
        notifier.notify_order(_order(), ORDER_NEW, waiters=True, kitchen=True)

        assert await dispatch_notifications(notifier.pending) == 1

    @pytest.mark.asyncio
    async def test_skipped_while_circuit_open(self, redis_client, event_breaker):
        for _ in range(event_breaker.config.failure_threshold):
            await event_breaker.record_failure(ConnectionError("down"))
        notifier = OrderNotifier()
        notifier.notify_order(_order(), ORDER_NEW, waiters=True)

        await dispatch_notifications(notifier.pending)

        redis_client.publish.assert_not_awaited()
        assert event_breaker.get_stats()["rejected_calls"] == 1

    @pytest.mark.asyncio
    async def test_nothing_to_publish(self, redis_client):
        assert await dispatch_notifications([]) == 0
        redis_client.publish.assert_not_awaited()


class TestEvent:
    def test_to_json_fills_defaults(self):
        data = json.loads(Event(type=ORDER_NEW, restaurant_id=1, entity=None, actor=None).to_json())
        assert data["entity"] == {}
        assert data["actor"] == {}
        assert data["ts"]
        assert data["v"] == 1

    def test_json_round_trip(self):
        event = Event(type=ORDER_NEW, restaurant_id=1, table_id=2, order_id=3, entity={"total_cents": 900})
        assert Event.from_json(event.to_json()).entity == {"total_cents": 900}

    @pytest.mark.parametrize("fields", [
        {"type": ORDER_NEW, "restaurant_id": True},
        {"type": ORDER_NEW, "restaurant_id": 1, "table_id": -1},
        {"type": ORDER_NEW, "restaurant_id": 1, "entity": ["not", "a", "dict"]},
    ])
    def test_invalid(self, fields):
        with pytest.raises(ValueError):
            Event(**fields)


class TestPublisher:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, redis_client, event_breaker, monkeypatch):
        monkeypatch.setattr(settings, "redis_publish_max_retries", 3)
        monkeypatch.setattr(settings, "redis_publish_retry_delay", 0.0)
        redis_client.publish.side_effect = [ConnectionError("down"), ConnectionError("down"), 2]

        event = Event(type=ORDER_NEW, restaurant_id=1, order_id=7)
        assert await publish_event(redis_client, "table:3", event) == 2
        assert redis_client.publish.await_count == 3
        assert event_breaker.get_stats()["failed_calls"] == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_count_once(self, redis_client, event_breaker, monkeypatch):
        monkeypatch.setattr(settings, "redis_publish_max_retries", 2)
        monkeypatch.setattr(settings, "redis_publish_retry_delay", 0.0)
        redis_client.publish.side_effect = ConnectionError("down")

        with pytest.raises(ConnectionError):
            await publish_event(redis_client, "table:3", Event(type=ORDER_NEW, restaurant_id=1))
        assert redis_client.publish.await_count == 2
        assert event_breaker.get_stats()["failed_calls"] == 1

    def test_oversized_event_rejected(self):
        event = Event(type=ORDER_NEW, restaurant_id=1, entity={"blob": "x" * (MAX_EVENT_SIZE + 1)})
        with pytest.raises(ValueError, match="exceeds max size"):
            encode_event(event)

    @pytest.mark.parametrize("attempt", [0, 1, 5, 20])
    def test_retry_delay_bounds(self, attempt):
        delay = retry_delay(attempt, 0.1)
        assert 0.1 <= delay <= 10.0
