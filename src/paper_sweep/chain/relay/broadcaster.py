"""RelayBroadcaster — submit a sweep transaction and report its confidence.

Submits once through :class:`RelayService`, then polls the relay for the
transaction's status and publishes each change into the sweep's
:class:`~paper_sweep.sweep.confidence.ConfidenceFeed`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from paper_sweep.chain.relay.models import TxStatusInfo
from paper_sweep.errors.chain_errors import RelayError
from paper_sweep.errors.sweep_errors import BroadcastFailedError, BroadcastRejectedError
from paper_sweep.sweep.confidence import ConfidenceKind

if TYPE_CHECKING:
    from paper_sweep.chain.relay.service import RelayService
    from paper_sweep.sweep.builder import SignedTransaction
    from paper_sweep.sweep.confidence import ConfidenceFeed

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLLS = 120

_FINAL_KINDS = (ConfidenceKind.DEAD, ConfidenceKind.BUILDING)

_ALREADY_KNOWN = 409


class RelayBroadcaster:
    """Broadcaster backed by the relay HTTP API.

    Usage::

        relay = RelayService(config.relay)
        await relay.connect()
        broadcaster = RelayBroadcaster(relay, poll_interval=config.relay.poll_interval)
    """

    def __init__(
        self,
        service: RelayService,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: int = DEFAULT_MAX_POLLS,
    ) -> None:
        if poll_interval < 0:
            msg = f"poll_interval must be non-negative, got {poll_interval}"
            raise ValueError(msg)
        if max_polls < 0:
            msg = f"max_polls must be non-negative, got {max_polls}"
            raise ValueError(msg)
        self._service = service
        self._poll_interval = poll_interval
        self._max_polls = max_polls

    async def broadcast(self, tx: SignedTransaction, feed: ConfidenceFeed) -> None:
        """Submit *tx* and publish its confidence into *feed* until it settles.

        The feed is closed on return, including when submission fails. A
        transaction the relay already holds (409) is polled like a fresh one.

        Raises:
            BroadcastRejectedError: If the relay refused the transaction (4xx).
            BroadcastFailedError: If the relay could not be reached or failed
                (5xx), leaving the outcome unknown.
        """
        try:
            info = await self._submit(tx)
            last = info.to_confidence()
            logger.info("Relay accepted %s (%s)", tx.txid, info.tx_status or "no status")
            await feed.publish(last)
            if last.confidence_kind in _FINAL_KINDS:
                _log_settled(tx.txid, info)
                return

            for _ in range(self._max_polls):
                await asyncio.sleep(self._poll_interval)
                info = await self._poll(tx.txid)
                if info is None:
                    continue
                snapshot = info.to_confidence()
                if snapshot == last:
                    continue
                last = snapshot
                await feed.publish(snapshot)
                if snapshot.confidence_kind in _FINAL_KINDS:
                    _log_settled(tx.txid, info)
                    return
            logger.info("Stopped polling %s after %d attempts", tx.txid, self._max_polls)
        finally:
            feed.close()

    async def _submit(self, tx: SignedTransaction) -> TxStatusInfo:
        try:
            return await self._service.broadcast(tx.raw_hex)
        except RelayError as exc:
            if exc.status_code == _ALREADY_KNOWN:
                logger.info("Relay already holds %s; polling its status", tx.txid)
                return TxStatusInfo(txid=tx.txid)
            if 400 <= exc.status_code < 500:
                raise BroadcastRejectedError(str(exc)) from exc
            raise BroadcastFailedError(str(exc)) from exc

    async def _poll(self, txid: str) -> TxStatusInfo | None:
        try:
            return await self._service.query_transaction(txid)
        except RelayError as exc:
            logger.warning("Status query for %s failed: %s", txid, exc)
            return None


def _log_settled(txid: str, info: TxStatusInfo) -> None:
    if info.to_confidence().confidence_kind == ConfidenceKind.DEAD:
        logger.warning(
            "Relay reports %s as %s; competing: %s %s",
            txid,
            info.tx_status,
            ", ".join(info.competing_txs) or "none",
            info.extra_info,
        )
    else:
        logger.info(
            "%s mined in block %s at height %d", txid, info.block_hash or "?", info.block_height
        )
