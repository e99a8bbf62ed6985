"""Tests for deployment progress channels."""

import json

import pytest

from storebuilder.services.progress_registry import ProgressRegistry, format_sse


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def parse_frames(frames):
    return [json.loads(frame[len("data: "):]) for frame in frames if frame.startswith("data: ")]


def test_format_sse():
    assert format_sse({"type": "progress", "progress": 20}) == 'data: {"type": "progress", "progress": 20}\n\n'


def test_reporter_publishes_progress_events():
    registry = ProgressRegistry()
    report = registry.reporter("dep-1")

    report({"step": "deploy", "message": "Deploying", "progress": 60})

    channel = registry.get("dep-1")
    assert channel.queue.get_nowait() == {
        "type": "progress", "step": "deploy", "message": "Deploying", "progress": 60,
    }


def test_reporter_without_id_is_none():
    registry = ProgressRegistry()

    assert registry.reporter(None) is None
    assert registry.reporter("") is None
    assert len(registry) == 0


def test_publish_to_unknown_channel_is_discarded():
    registry = ProgressRegistry()

    assert registry.publish("missing", {"type": "progress"}) is False


def test_full_queue_drops_oldest_event():
    registry = ProgressRegistry(queue_size=2)
    registry.open("dep-1")

    for progress in (10, 20, 30):
        registry.publish("dep-1", {"type": "progress", "progress": progress})

    queue = registry.get("dep-1").queue
    assert [queue.get_nowait()["progress"] for _ in range(queue.qsize())] == [20, 30]


def test_terminal_event_finishes_channel():
    registry = ProgressRegistry()
    registry.open("dep-1")

    registry.complete("dep-1", "Store deployed", url="https://shop.example.com")

    assert registry.get("dep-1").finished
    assert registry.get("dep-1").last_event["url"] == "https://shop.example.com"
    assert registry.publish("dep-1", {"type": "progress"}) is False


def test_evict_expired_channels():
    clock = FakeClock()
    registry = ProgressRegistry(ttl_seconds=60, clock=clock)
    registry.open("old")
    clock.now += 45
    registry.open("fresh")
    clock.now += 30

    assert registry.evict_expired() == 1
    assert "old" not in registry
    assert "fresh" in registry


def test_activity_keeps_channel_alive():
    clock = FakeClock()
    registry = ProgressRegistry(ttl_seconds=60, clock=clock)
    registry.open("dep-1")
    clock.now += 50
    registry.warn("dep-1", "Domain not reachable yet", step="verify")
    clock.now += 50

    assert registry.evict_expired() == 0


@pytest.mark.asyncio
async def test_stream_yields_until_terminal_event():
    registry = ProgressRegistry()
    report = registry.reporter("dep-1")
    report({"step": "generate", "message": "Generating site files", "progress": 10})
    registry.fail("dep-1", "Deploy failed", step="deploy")

    frames = [frame async for frame in registry.stream("dep-1")]
    events = parse_frames(frames)

    assert [event["type"] for event in events] == ["connected", "progress", "error"]
    assert events[2]["step"] == "deploy"
    assert "dep-1" not in registry


@pytest.mark.asyncio
async def test_stream_sends_keepalive_comments():
    registry = ProgressRegistry()
    stream = registry.stream("dep-1", keepalive_seconds=0.01)

    assert (await stream.__anext__()).startswith("data: ")
    assert await stream.__anext__() == ": keepalive\n\n"

    registry.complete("dep-1", "done")
    frames = [frame async for frame in stream]
    assert frames[-1].startswith("data: ")
    assert parse_frames(frames)[-1]["type"] == "complete"


@pytest.mark.asyncio
async def test_closing_stream_removes_channel():
    registry = ProgressRegistry()
    stream = registry.stream("dep-1")

    await stream.__anext__()
    assert registry.get("dep-1").subscribers == 1

    await stream.aclose()

    assert "dep-1" not in registry


@pytest.mark.asyncio
async def test_channel_stays_open_until_last_subscriber_leaves():
    registry = ProgressRegistry()
    first = registry.stream("dep-1")
    second = registry.stream("dep-1")

    await first.__anext__()
    await second.__anext__()
    assert registry.get("dep-1").subscribers == 2

    await first.aclose()

    assert "dep-1" in registry
    assert registry.get("dep-1").subscribers == 1

    await second.aclose()

    assert "dep-1" not in registry
