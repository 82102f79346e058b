"""Confidence snapshots and the bounded feed that carries them.

The broadcast collaborator publishes :class:`ConfidenceSnapshot` values into
a :class:`ConfidenceFeed`; a single consumer reads them in arrival order.
Closing the feed ends the stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
from collections.abc import AsyncIterator
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from paper_sweep.sweep.builder import SignedTransaction

FEED_BUFFER = 100


class ConfidenceKind(enum.StrEnum):
    """The broadcast subsystem's belief about a transaction."""

    UNKNOWN = "unknown"
    PENDING = "pending"
    BUILDING = "building"
    DEAD = "dead"


@dataclass(frozen=True)
class ConfidenceSnapshot:
    """One confidence update for the sweep transaction."""

    confidence_kind: ConfidenceKind = ConfidenceKind.UNKNOWN
    broadcast_peer_count: int = 0


class _Closed:
    """End-of-stream marker."""


_CLOSED = _Closed()


class ConfidenceFeed:
    """Bounded, single-consumer channel of confidence snapshots.

    Producers on the consumer's event loop use :meth:`publish` and
    :meth:`close`; producers on other threads use the ``*_threadsafe``
    variants once the consumer has started iterating.

    Usage::

        feed = ConfidenceFeed()
        async for snapshot in feed:
            ...
    """

    def __init__(self, *, maxsize: int = FEED_BUFFER) -> None:
        self._queue: asyncio.Queue[ConfidenceSnapshot | _Closed] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach the feed to the consumer's event loop for thread-safe publishing."""
        self._loop = loop or asyncio.get_running_loop()

    async def publish(self, snapshot: ConfidenceSnapshot) -> None:
        """Enqueue a snapshot, waiting while the buffer is full.

        Raises:
            RuntimeError: If the feed is closed.
        """
        if self._closed:
            msg = "Cannot publish to a closed confidence feed"
            raise RuntimeError(msg)
        await self._queue.put(snapshot)

    def close(self) -> None:
        """End the stream without blocking. Idempotent.

        Snapshots already queued are still delivered before the stream ends.
        """
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(_CLOSED)

    def publish_threadsafe(self, snapshot: ConfidenceSnapshot) -> Future[None]:
        """Publish from another thread."""
        return asyncio.run_coroutine_threadsafe(self.publish(snapshot), self._require_loop())

    def close_threadsafe(self) -> None:
        """Close from another thread."""
        self._require_loop().call_soon_threadsafe(self.close)

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            msg = "Confidence feed is not bound to an event loop"
            raise RuntimeError(msg)
        return self._loop

    async def __aiter__(self) -> AsyncIterator[ConfidenceSnapshot]:
        if self._loop is None:
            self.bind()
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if isinstance(item, _Closed):
                return
            yield item


class Broadcaster(Protocol):
    """Submits a signed transaction and reports its confidence.

    Implementations publish snapshots into *feed* for as long as they track
    the transaction and close it when they stop. A submission failure is
    raised after the feed has been closed. Submission is never retried.
    """

    async def broadcast(self, tx: SignedTransaction, feed: ConfidenceFeed) -> None: ...
