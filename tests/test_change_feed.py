from __future__ import annotations

import json

from change_feed import ChangeFeed


def _frames(feed, client):
    return list(feed.stream(client, keepalive=0.01, max_idle=1))


def test_touch_is_strictly_increasing():
    feed = ChangeFeed()
    stamps = [feed.touch() for _ in range(20)]

    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 20
    assert feed.version()["lastUpdate"] == stamps[-1]


def test_stream_starts_with_connection_message():
    feed = ChangeFeed()
    client = feed.subscribe()
    feed.notify_duty_update({"type": "duties-updated", "data": {"duties": {}}})

    frames = _frames(feed, client)

    assert all(frame.startswith("data: ") and frame.endswith("\n\n") for frame in frames)
    first, second = (json.loads(frame[len("data: "):]) for frame in frames)
    assert first["type"] == "connection"
    assert second["type"] == "duty-update"
    assert second["data"]["type"] == "duties-updated"
    assert feed.client_count == 0


def test_keepalive_comment_when_idle():
    feed = ChangeFeed()
    client = feed.subscribe()
    client.messages.get_nowait()

    frames = list(feed.stream(client, keepalive=0.01, max_idle=2))

    assert frames == [": keep-alive\n\n"]


def test_broadcast_drops_clients_with_full_queues():
    feed = ChangeFeed(client_queue_size=2)
    slow = feed.subscribe()
    fast = feed.subscribe()
    fast.messages.get_nowait()

    assert feed.broadcast({"type": "ping"}) == 2
    assert feed.broadcast({"type": "ping"}) == 1

    assert feed.client_count == 1
    assert slow.messages.full()
