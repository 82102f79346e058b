"""SweepSession — one sweep attempt from balance fetch to broadcast outcome.

The session is the only place typed errors become a
:class:`~paper_sweep.sweep.tracker.FailureReason`. It runs at most one fetch
and one broadcast at a time, and cannot be cancelled once preparation has
started.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from paper_sweep.errors.sweep_errors import (
    BroadcastRejectedError,
    BuildError,
    EmptyResultError,
    FetchError,
    InsufficientFundsError,
    InvalidTransitionError,
    SweepError,
    SweepInProgressError,
    UnconfirmedFundsError,
    ZeroBalanceError,
)
from paper_sweep.sweep.builder import SweepTransactionBuilder
from paper_sweep.sweep.confidence import ConfidenceFeed
from paper_sweep.sweep.outputs import UnspentOutputSet
from paper_sweep.sweep.tracker import BroadcastTracker, FailureReason, SweepState, TrackerSnapshot

if TYPE_CHECKING:
    from paper_sweep.sweep.builder import SignedTransaction
    from paper_sweep.sweep.confidence import Broadcaster
    from paper_sweep.sweep.key import SweepKey

logger = logging.getLogger(__name__)


class UnspentSource(Protocol):
    """Anything that can list an address's unspent outputs."""

    async def fetch(self, address: str) -> UnspentOutputSet: ...


class SweepSession:
    """Drives one attempt to empty *key* into *destination*.

    Usage::

        session = SweepSession(key, "D...", unspent_source=client, broadcaster=relay)
        outputs = await session.fetch_balance()
        if session.tracker.state is SweepState.INPUT:
            result = await session.sweep()
    """

    def __init__(
        self,
        key: SweepKey,
        destination: str,
        *,
        unspent_source: UnspentSource,
        broadcaster: Broadcaster,
        builder: SweepTransactionBuilder | None = None,
    ) -> None:
        self._key = key
        self._destination = destination
        self._unspent = unspent_source
        self._broadcaster = broadcaster
        self._builder = builder or SweepTransactionBuilder()
        self._tracker = BroadcastTracker()
        self._outputs: UnspentOutputSet | None = None
        self._transaction: SignedTransaction | None = None
        self._fetch_task: asyncio.Task[UnspentOutputSet] | None = None
        self._cancel_requested = False

    @property
    def tracker(self) -> BroadcastTracker:
        return self._tracker

    @property
    def outputs(self) -> UnspentOutputSet | None:
        """The most recent successfully fetched output set."""
        return self._outputs

    @property
    def transaction(self) -> SignedTransaction | None:
        """The signed sweep transaction, once built."""
        return self._transaction

    def snapshot(self) -> TrackerSnapshot:
        return self._tracker.snapshot()

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    async def fetch_balance(self) -> UnspentOutputSet | None:
        """Fetch the key's unspent outputs and apply the balance guards.

        May be re-triggered manually while the attempt is still in INPUT.

        Returns:
            The fetched set (empty when the key owns nothing), or None if the
            fetch failed or was cancelled.

        Raises:
            SweepInProgressError: If a fetch is already running.
            InvalidTransitionError: If the attempt has left INPUT.
        """
        if self._tracker.state != SweepState.INPUT:
            raise InvalidTransitionError(f"Cannot fetch balance in state {self._tracker.state}")
        if self._fetch_task is not None and not self._fetch_task.done():
            raise SweepInProgressError("A balance fetch is already in flight")

        self._cancel_requested = False
        self._fetch_task = asyncio.create_task(self._unspent.fetch(self._key.address))
        try:
            outputs = await self._fetch_task
        except asyncio.CancelledError:
            if self._cancel_requested:
                logger.info("Balance fetch for %s cancelled", self._key.address)
                return None
            raise
        except EmptyResultError:
            logger.info("No unspent outputs for %s", self._key.address)
            self._outputs = UnspentOutputSet(policy=self._builder.fee_estimator.policy)
            self._tracker.fail(FailureReason.ZERO_BALANCE)
            return self._outputs
        except FetchError as exc:
            logger.warning("Balance fetch for %s failed: %s", self._key.address, exc)
            self._tracker.fail(FailureReason.FETCH_FAILED)
            return None
        finally:
            self._fetch_task = None

        self._outputs = outputs
        if outputs.unconfirmed_balance > 0:
            self._tracker.fail(FailureReason.UNCONFIRMED_FUNDS)
        elif outputs.confirmed_balance == 0:
            self._tracker.fail(FailureReason.ZERO_BALANCE)
        return outputs

    def cancel(self) -> bool:
        """Cancel a pending fetch. Only effective before preparation starts.

        Returns:
            True if the attempt was still cancellable.
        """
        if not self._tracker.is_cancellable:
            return False
        if self._fetch_task is not None and not self._fetch_task.done():
            self._cancel_requested = True
            self._fetch_task.cancel()
        return True

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def sweep(self) -> TrackerSnapshot:
        """Build, sign, broadcast and track the sweep transaction.

        Returns:
            The tracker snapshot after the broadcast outcome is known, or
            after the broadcaster stopped reporting.

        Raises:
            InvalidTransitionError: If no balance was fetched, or the attempt
                is no longer in INPUT.
            SweepInProgressError: If a fetch is still in flight.

        Any non-SweepError raised by the broadcaster is re-raised after the
        attempt moves to FAILED.
        """
        if self._fetch_task is not None and not self._fetch_task.done():
            raise SweepInProgressError("Wait for the balance fetch before sweeping")
        if self._outputs is None:
            raise InvalidTransitionError("Fetch the balance before sweeping")

        self._tracker.begin_preparing()
        try:
            signed = self._builder.build(self._key, self._destination, self._outputs)
        except BuildError as exc:
            logger.warning("Sweep build failed: %s", exc)
            self._tracker.fail(_reason_for(exc))
            return self._tracker.snapshot()

        self._transaction = signed
        feed = ConfidenceFeed()
        feed.bind()
        logger.info("Submitting sweep transaction %s", signed.txid)
        broadcast_task = asyncio.create_task(self._broadcast(signed, feed))
        self._tracker.mark_sending(signed.txid)
        try:
            await self._tracker.follow(feed)
        finally:
            if not broadcast_task.done():
                broadcast_task.cancel()
            await asyncio.gather(broadcast_task, return_exceptions=True)

        if not broadcast_task.cancelled() and broadcast_task.exception() is not None:
            exc = broadcast_task.exception()
            if self._tracker.state == SweepState.SENDING:
                logger.warning("Sweep broadcast %s failed: %s", signed.txid, exc)
                if isinstance(exc, BroadcastRejectedError):
                    self._tracker.fail(FailureReason.BROADCAST_REJECTED)
                else:
                    self._tracker.fail(FailureReason.BROADCAST_FAILED)
            if not isinstance(exc, SweepError):
                raise exc
        return self._tracker.snapshot()

    async def _broadcast(self, signed: SignedTransaction, feed: ConfidenceFeed) -> None:
        try:
            await self._broadcaster.broadcast(signed, feed)
        finally:
            feed.close()


def _reason_for(exc: BuildError) -> FailureReason:
    if isinstance(exc, UnconfirmedFundsError):
        return FailureReason.UNCONFIRMED_FUNDS
    if isinstance(exc, ZeroBalanceError):
        return FailureReason.ZERO_BALANCE
    if isinstance(exc, InsufficientFundsError):
        return FailureReason.INSUFFICIENT_FUNDS
    return FailureReason.BUILD_FAILED
