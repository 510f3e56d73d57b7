"""Tests for the server-sent event manager."""

import pytest

from noteforge.utils.events import EventManager


@pytest.mark.asyncio
async def test_subscribe_receives_published_events():
    events = EventManager()
    stream = events.subscribe()

    assert await anext(stream) == ": ping\n\n"
    assert events.connection_count == 1

    events.publish("note-status-abc", "completed")
    assert await anext(stream) == "event: note-status-abc\ndata: completed\n\n"

    await stream.aclose()
    assert events.connection_count == 0


@pytest.mark.asyncio
async def test_broadcast_without_subscribers_is_noop():
    events = EventManager()
    await events.broadcast("index-rebuilt", "0")
    assert events.connection_count == 0
