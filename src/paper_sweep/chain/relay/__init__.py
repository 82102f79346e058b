"""Relay — transaction broadcasting and status queries."""

from paper_sweep.chain.relay.broadcaster import RelayBroadcaster
from paper_sweep.chain.relay.models import RelayStatus, TxStatusInfo
from paper_sweep.chain.relay.service import RelayService

__all__ = ["RelayBroadcaster", "RelayService", "RelayStatus", "TxStatusInfo"]
