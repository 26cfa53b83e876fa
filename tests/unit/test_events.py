"""
Unit тесты для EventBus
"""

import pytest

from momentum_engine.events import EngineHalted, EventBus


class TestEventBus:
    """Тесты шины событий"""

    def setup_method(self):
        """Настройка перед каждым тестом"""
        self.bus = EventBus()
        self.event = EngineHalted(reason="balance depleted (0.00)", balance=0.0)

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self):
        received = []

        async def on_event(event):
            received.append(("async", event))

        self.bus.subscribe(lambda event: received.append(("sync", event)))
        self.bus.subscribe(on_event)

        await self.bus.publish(self.event)

        assert received == [("sync", self.event), ("async", self.event)]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self):
        received = []

        def broken(event):
            raise ValueError("subscriber bug")

        self.bus.subscribe(broken)
        self.bus.subscribe(received.append)

        await self.bus.publish(self.event)

        assert received == [self.event]

    @pytest.mark.asyncio
    async def test_listen_queue(self):
        queue = self.bus.listen()

        await self.bus.publish(self.event)

        assert queue.get_nowait() is self.event
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        received = []
        self.bus.subscribe(received.append)
        self.bus.unsubscribe(received.append)

        await self.bus.publish(self.event)

        assert received == []
        assert self.event.timestamp is not None

    @pytest.mark.asyncio
    async def test_event_published_from_callback_is_delivered_after_current(self):
        received = []
        followup = EngineHalted(reason="balance exceeded upper bound (10500.00)", balance=10500.0)

        async def react(event):
            if event is self.event:
                await self.bus.publish(followup)

        queue = self.bus.listen()
        self.bus.subscribe(react)
        self.bus.subscribe(received.append)

        await self.bus.publish(self.event)

        assert received == [self.event, followup]
        assert [queue.get_nowait(), queue.get_nowait()] == [self.event, followup]
