"""Relay data models — transaction status and its confidence mapping.

Data classes representing the relay's broadcast and query responses.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from paper_sweep.sweep.confidence import ConfidenceKind, ConfidenceSnapshot

# ---------------------------------------------------------------------------
# Transaction status enum
# ---------------------------------------------------------------------------


class RelayStatus(enum.StrEnum):
    """Relay transaction status codes.

    Lifecycle: QUEUED → RECEIVED → STORED → ANNOUNCED_TO_NETWORK
               → SENT_TO_NETWORK → ACCEPTED_BY_NETWORK → SEEN_ON_NETWORK
               → MINED → CONFIRMED, or REJECTED / DOUBLE_SPEND_ATTEMPTED
    """

    UNKNOWN = "UNKNOWN"
    QUEUED = "QUEUED"
    RECEIVED = "RECEIVED"
    STORED = "STORED"
    ANNOUNCED_TO_NETWORK = "ANNOUNCED_TO_NETWORK"
    REQUESTED_BY_NETWORK = "REQUESTED_BY_NETWORK"
    SENT_TO_NETWORK = "SENT_TO_NETWORK"
    ACCEPTED_BY_NETWORK = "ACCEPTED_BY_NETWORK"
    SEEN_ON_NETWORK = "SEEN_ON_NETWORK"
    DOUBLE_SPEND_ATTEMPTED = "DOUBLE_SPEND_ATTEMPTED"
    MINED = "MINED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"

    @classmethod
    def from_string(cls, value: str) -> RelayStatus:
        """Parse a status string, returning UNKNOWN for unrecognised values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Peer counts reported for statuses that imply propagation.
_SINGLE_PEER = 1
_MANY_PEERS = 2

_DEAD = frozenset({RelayStatus.REJECTED, RelayStatus.DOUBLE_SPEND_ATTEMPTED})
_BUILDING = frozenset({RelayStatus.MINED, RelayStatus.CONFIRMED})
_ANNOUNCED = frozenset({RelayStatus.SENT_TO_NETWORK, RelayStatus.ACCEPTED_BY_NETWORK})


# ---------------------------------------------------------------------------
# TxStatusInfo: relay response for broadcast / query
# ---------------------------------------------------------------------------


@dataclass
class TxStatusInfo:
    """Transaction info returned from the broadcast and query endpoints.

    Attributes:
        txid: Transaction ID (hex).
        tx_status: Current status string (maps to RelayStatus).
        block_hash: Block hash if mined.
        block_height: Block height if mined.
        competing_txs: Competing transaction IDs (double-spend).
        extra_info: Additional info from the relay.
    """

    txid: str = ""
    tx_status: str = ""
    block_hash: str = ""
    block_height: int = 0
    competing_txs: list[str] = field(default_factory=list)
    extra_info: str = ""

    @property
    def status(self) -> RelayStatus:
        return RelayStatus.from_string(self.tx_status)

    def to_confidence(self) -> ConfidenceSnapshot:
        """Translate the relay status into a confidence snapshot."""
        status = self.status
        if status in _DEAD:
            return ConfidenceSnapshot(ConfidenceKind.DEAD)
        if status in _BUILDING:
            return ConfidenceSnapshot(ConfidenceKind.BUILDING, _MANY_PEERS)
        if status == RelayStatus.SEEN_ON_NETWORK:
            return ConfidenceSnapshot(ConfidenceKind.PENDING, _MANY_PEERS)
        if status in _ANNOUNCED:
            return ConfidenceSnapshot(ConfidenceKind.PENDING, _SINGLE_PEER)
        return ConfidenceSnapshot(ConfidenceKind.UNKNOWN)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TxStatusInfo:
        """Create TxStatusInfo from a relay JSON response dict."""
        return cls(
            txid=data.get("txid", ""),
            tx_status=data.get("txStatus", data.get("tx_status", "")),
            block_hash=data.get("blockHash", data.get("block_hash", "")) or "",
            block_height=data.get("blockHeight", data.get("block_height", 0)) or 0,
            competing_txs=data.get("competingTxs", data.get("competing_txs", [])) or [],
            extra_info=data.get("extraInfo", data.get("extra_info", "")) or "",
        )
