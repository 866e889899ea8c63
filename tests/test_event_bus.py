from __future__ import annotations

from trendpulse.infrastructure.messaging.event_bus import EventBus, market_topic


def test_market_topic():
    assert market_topic("EUR_USD") == "market.EUR_USD"


async def test_publish_fans_out_to_every_subscriber():
    bus = EventBus()
    first = await bus.subscribe("market.EUR_USD", "a")
    second = await bus.subscribe("market.EUR_USD", "b")

    await bus.publish("market.EUR_USD", "tick")

    assert first.get_nowait() == "tick"
    assert second.get_nowait() == "tick"
    assert bus.subscriber_count == 2


async def test_full_queue_drops_oldest():
    bus = EventBus(max_queue_size=2)
    queue = await bus.subscribe("t", "slow")

    for event in (1, 2, 3):
        await bus.publish("t", event)

    assert [queue.get_nowait(), queue.get_nowait()] == [2, 3]


async def test_unsubscribe():
    bus = EventBus()
    queue = await bus.subscribe("t", "a")
    await bus.unsubscribe("t", queue)
    await bus.publish("t", "lost")

    assert queue.empty()
    assert bus.subscriber_count == 0


async def test_unsubscribe_all():
    bus = EventBus()
    await bus.subscribe("a", "x")
    await bus.subscribe("b", "y")

    await bus.unsubscribe_all("a")
    assert bus.subscriber_count == 1
    await bus.unsubscribe_all()
    assert bus.subscriber_count == 0
