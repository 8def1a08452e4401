"""Tests for the in-process event bus."""

from __future__ import annotations

from datetime import UTC
from unittest.mock import AsyncMock

import pytest

from nutribot.events import EventBus
from nutribot.schemas.events import EventType, SystemEvent


def _event(event_type: EventType = EventType.SYSTEM_STARTUP) -> SystemEvent:
    return SystemEvent(event_type=event_type, source_module="tests")


class TestEventBus:
    @pytest.mark.asyncio()
    async def test_inline_dispatch_before_start(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(handler)

        await bus.emit(_event())

        handler.assert_awaited_once()
        assert not bus.running

    @pytest.mark.asyncio()
    async def test_typed_subscribers_only_see_their_types(self) -> None:
        bus = EventBus()
        typed = AsyncMock()
        bus.subscribe(typed, [EventType.CONSENT_GRANTED])

        await bus.emit(_event())
        await bus.emit(_event(EventType.CONSENT_GRANTED))

        assert typed.await_count == 1
        assert typed.call_args.args[0].event_type is EventType.CONSENT_GRANTED

    @pytest.mark.asyncio()
    async def test_queued_dispatch_drains_on_stop(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(handler)

        await bus.start()
        assert bus.running
        for _ in range(3):
            await bus.emit(_event())
        await bus.stop()

        assert handler.await_count == 3
        assert not bus.running

    @pytest.mark.asyncio()
    async def test_failing_handler_is_isolated(self) -> None:
        bus = EventBus()
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        bus.subscribe(broken)
        bus.subscribe(healthy)

        await bus.emit(_event())

        healthy.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(handler)
        bus.unsubscribe(handler)

        await bus.emit(_event())

        handler.assert_not_awaited()


class TestSystemEvent:
    def test_timestamp_is_utc(self) -> None:
        assert _event().timestamp.tzinfo is UTC
