"""Immutable fee and confirmation policy for one sweep attempt."""

from __future__ import annotations

from dataclasses import dataclass

KOINU_PER_COIN = 100_000_000

# Reference minimum relay fee: one coin per started kilobyte.
DEFAULT_FEE_PER_KB = KOINU_PER_COIN
DEFAULT_CONFIRMATION_THRESHOLD = 3


@dataclass(frozen=True)
class SweepPolicy:
    """Constants the fee estimator and the unspent set are built with.

    Attributes:
        fee_per_kb: Fee in koinu charged per started 1000 bytes.
        confirmation_threshold: Confirmations an output needs to count as confirmed.
    """

    fee_per_kb: int = DEFAULT_FEE_PER_KB
    confirmation_threshold: int = DEFAULT_CONFIRMATION_THRESHOLD

    def __post_init__(self) -> None:
        if self.fee_per_kb < 0:
            msg = f"fee_per_kb must be non-negative, got {self.fee_per_kb}"
            raise ValueError(msg)
        if self.confirmation_threshold < 0:
            msg = f"confirmation_threshold must be non-negative, got {self.confirmation_threshold}"
            raise ValueError(msg)


DEFAULT_POLICY = SweepPolicy()
