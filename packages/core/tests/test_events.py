"""Tests for the event sink."""

import asyncio

import pytest

from prrally_core import events
from prrally_core.events import EventSink


class TestSend:
    @pytest.mark.asyncio
    async def test_send_and_drain_in_order(self):
        sink = EventSink()
        assert sink.send(events.Log("a"))
        assert sink.send(events.Log("b"))
        assert sink.drain() == [events.Log("a"), events.Log("b")]
        assert sink.drain() == []

    @pytest.mark.asyncio
    async def test_full_sink_drops(self):
        sink = EventSink(maxsize=1)
        assert sink.send(events.Log("kept"))
        assert not sink.send(events.Log("dropped"))
        assert sink.dropped == 1
        assert sink.drain() == [events.Log("kept")]

    @pytest.mark.asyncio
    async def test_closed_sink_drops(self):
        sink = EventSink()
        sink.close()
        assert sink.closed
        assert not sink.send(events.Log("late"))
        assert sink.dropped == 1


class TestIteration:
    @pytest.mark.asyncio
    async def test_iteration_stops_after_close_and_drain(self):
        sink = EventSink()
        sink.send(events.IterationStarted(1))
        sink.send(events.Log("x"))
        sink.close()

        received = [event async for event in sink]

        assert received == [events.IterationStarted(1), events.Log("x")]

    @pytest.mark.asyncio
    async def test_consumer_receives_events_sent_later(self):
        sink = EventSink()

        async def produce():
            await asyncio.sleep(0.01)
            sink.send(events.Approved("done"))
            await asyncio.sleep(0.01)
            sink.close()

        producer = asyncio.ensure_future(produce())
        received = [event async for event in sink]
        await producer

        assert received == [events.Approved("done")]
