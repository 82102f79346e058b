"""Tests for ConfidenceFeed — ordering, closing, cross-thread publishing."""

from __future__ import annotations

import asyncio
import threading

import pytest

from paper_sweep.sweep.confidence import ConfidenceFeed, ConfidenceKind, ConfidenceSnapshot


async def _drain(feed: ConfidenceFeed) -> list[ConfidenceSnapshot]:
    return [snap async for snap in feed]


class TestConfidenceFeed:
    async def test_arrival_order(self):
        feed = ConfidenceFeed()
        snaps = [ConfidenceSnapshot(ConfidenceKind.PENDING, n) for n in range(5)]
        for snap in snaps:
            await feed.publish(snap)
        feed.close()
        assert await _drain(feed) == snaps

    async def test_close_idempotent(self):
        feed = ConfidenceFeed()
        feed.close()
        feed.close()
        assert feed.closed
        assert await _drain(feed) == []

    async def test_publish_after_close(self):
        feed = ConfidenceFeed()
        feed.close()
        with pytest.raises(RuntimeError, match="closed"):
            await feed.publish(ConfidenceSnapshot())

    async def test_close_on_full_buffer(self):
        feed = ConfidenceFeed(maxsize=1)
        await feed.publish(ConfidenceSnapshot(ConfidenceKind.PENDING, 1))
        feed.close()
        assert await _drain(feed) == [ConfidenceSnapshot(ConfidenceKind.PENDING, 1)]

    async def test_consumer_waits_for_producer(self):
        feed = ConfidenceFeed()

        async def produce() -> None:
            await asyncio.sleep(0)
            await feed.publish(ConfidenceSnapshot(ConfidenceKind.BUILDING, 3))
            feed.close()

        producer = asyncio.create_task(produce())
        assert await _drain(feed) == [ConfidenceSnapshot(ConfidenceKind.BUILDING, 3)]
        await producer

    async def test_threadsafe_publish(self):
        feed = ConfidenceFeed()
        feed.bind()

        def produce() -> None:
            for n in range(3):
                feed.publish_threadsafe(ConfidenceSnapshot(ConfidenceKind.PENDING, n)).result()
            feed.close_threadsafe()

        thread = threading.Thread(target=produce)
        thread.start()
        received = await _drain(feed)
        await asyncio.to_thread(thread.join)
        assert [s.broadcast_peer_count for s in received] == [0, 1, 2]

    def test_threadsafe_requires_loop(self):
        feed = ConfidenceFeed()
        with pytest.raises(RuntimeError, match="not bound"):
            feed.close_threadsafe()

    def test_snapshot_defaults(self):
        snap = ConfidenceSnapshot()
        assert snap.confidence_kind == ConfidenceKind.UNKNOWN
        assert snap.broadcast_peer_count == 0
