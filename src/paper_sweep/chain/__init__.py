"""Chain access — ledger index queries and transaction relay."""

from paper_sweep.chain.relay import RelayBroadcaster, RelayService
from paper_sweep.chain.unspent.client import UnspentClient

__all__ = ["RelayBroadcaster", "RelayService", "UnspentClient"]
