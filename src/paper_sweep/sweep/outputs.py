"""Unspent outputs owned by the paper key, and their confirmed/unconfirmed split."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from paper_sweep.doge.script import ScriptKind, classify_script
from paper_sweep.sweep.policy import DEFAULT_POLICY, SweepPolicy


@dataclass(frozen=True)
class UnspentOutput:
    """One unspent output as reported by the ledger index.

    Attributes:
        previous_tx_id: 32-byte hash of the funding transaction (internal byte order).
        output_index: Index of the output in the funding transaction.
        locking_script: The output's locking script.
        value: Value in koinu, always positive.
        confirmation_count: Confirmations at fetch time.
    """

    previous_tx_id: bytes
    output_index: int
    locking_script: bytes
    value: int
    confirmation_count: int

    def __post_init__(self) -> None:
        if len(self.previous_tx_id) != 32:
            msg = f"previous_tx_id must be 32 bytes, got {len(self.previous_tx_id)}"
            raise ValueError(msg)
        if not 0 <= self.output_index <= 0xFFFFFFFF:
            msg = f"output_index out of range: {self.output_index}"
            raise ValueError(msg)
        if self.value <= 0:
            msg = f"value must be positive, got {self.value}"
            raise ValueError(msg)
        if self.confirmation_count < 0:
            msg = f"confirmation_count must be non-negative, got {self.confirmation_count}"
            raise ValueError(msg)

    @property
    def tx_hash(self) -> str:
        """Funding transaction ID in display (reversed) hex."""
        return self.previous_tx_id[::-1].hex()

    @property
    def kind(self) -> ScriptKind:
        return classify_script(self.locking_script)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UnspentOutput:
        """Create an UnspentOutput from one ``unspent_outputs`` JSON entry.

        Raises:
            ValueError: If a field is missing or malformed.
        """
        try:
            tx_hash = bytes.fromhex(str(data["tx_hash"]))
            return cls(
                previous_tx_id=tx_hash[::-1],
                output_index=int(data["tx_output_n"]),
                locking_script=bytes.fromhex(str(data["script"])),
                value=int(str(data["value"])),
                confirmation_count=int(data["confirmations"]),
            )
        except (KeyError, TypeError) as exc:
            msg = f"Malformed unspent output entry: {exc!r}"
            raise ValueError(msg) from exc

    def __repr__(self) -> str:
        return (
            f"<UnspentOutput {self.tx_hash[:16]}:{self.output_index} "
            f"value={self.value} conf={self.confirmation_count}>"
        )


class UnspentOutputSet:
    """Ordered, immutable collection of one address's unspent outputs.

    Outputs keep the order the ledger index returned them in. A set is
    built fresh from every balance query and never merged with another.
    Each outpoint appears at most once.

    Raises:
        ValueError: If two outputs share an outpoint.
    """

    def __init__(
        self, outputs: Iterable[UnspentOutput] = (), *, policy: SweepPolicy = DEFAULT_POLICY
    ) -> None:
        self._outputs = tuple(outputs)
        self._policy = policy
        seen: set[tuple[bytes, int]] = set()
        for o in self._outputs:
            outpoint = (o.previous_tx_id, o.output_index)
            if outpoint in seen:
                msg = f"Duplicate outpoint {o.tx_hash}:{o.output_index}"
                raise ValueError(msg)
            seen.add(outpoint)
        threshold = policy.confirmation_threshold
        self._confirmed_balance = sum(
            o.value for o in self._outputs if o.confirmation_count >= threshold
        )
        self._unconfirmed_balance = sum(
            o.value for o in self._outputs if o.confirmation_count < threshold
        )

    @property
    def outputs(self) -> tuple[UnspentOutput, ...]:
        return self._outputs

    @property
    def policy(self) -> SweepPolicy:
        return self._policy

    @property
    def confirmed_balance(self) -> int:
        """Sum of values with at least ``confirmation_threshold`` confirmations."""
        return self._confirmed_balance

    @property
    def unconfirmed_balance(self) -> int:
        """Sum of values below the confirmation threshold."""
        return self._unconfirmed_balance

    @property
    def total_balance(self) -> int:
        return self._confirmed_balance + self._unconfirmed_balance

    @property
    def is_empty(self) -> bool:
        return not self._outputs

    def __len__(self) -> int:
        return len(self._outputs)

    def __iter__(self) -> Iterator[UnspentOutput]:
        return iter(self._outputs)

    def __repr__(self) -> str:
        return (
            f"<UnspentOutputSet n={len(self._outputs)} confirmed={self._confirmed_balance} "
            f"unconfirmed={self._unconfirmed_balance}>"
        )
