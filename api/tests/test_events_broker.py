import asyncio
import json

import pytest

from fuelwatch.services.events import ChangeEventBroker


def test_subscribers_receive_events_in_publish_order() -> None:
    async def _scenario() -> list[str]:
        broker = ChangeEventBroker(queue_size=10)
        async with broker.subscribe() as queue:
            broker.publish("price_inserted", {"fuel_type": "petrol"})
            broker.publish("station_deleted", {"station_id": "s-1"})
            first = await queue.get()
            second = await queue.get()
        assert broker.subscriber_count == 0
        return [first.event_type, second.event_type]

    assert asyncio.run(_scenario()) == ["price_inserted", "station_deleted"]


def test_full_subscriber_queue_drops_events_without_blocking() -> None:
    async def _scenario() -> int:
        broker = ChangeEventBroker(queue_size=1)
        async with broker.subscribe() as queue:
            broker.publish("prices_updated", {"n": 1})
            broker.publish("prices_updated", {"n": 2})
            return queue.qsize()

    assert asyncio.run(_scenario()) == 1


def test_publish_without_subscribers_still_sequences_events() -> None:
    broker = ChangeEventBroker()
    first = broker.publish("submission_created", {})
    second = broker.publish("submission_reviewed", {})

    assert (first.sequence, second.sequence) == (1, 2)


def test_unknown_event_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        ChangeEventBroker().publish("price_deleted", {})


def test_event_renders_as_server_sent_event_frame() -> None:
    event = ChangeEventBroker().publish("price_inserted", {"fuel_type": "diesel", "price": 4900.0})

    frame = event.to_sse()

    lines = frame.rstrip("\n").split("\n")
    assert lines[0] == "id: 1"
    assert lines[1] == "event: price_inserted"
    data = json.loads(lines[2].removeprefix("data: "))
    assert data["type"] == "price_inserted"
    assert data["payload"] == {"fuel_type": "diesel", "price": 4900.0}
    assert frame.endswith("\n\n")
