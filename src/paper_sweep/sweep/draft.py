"""DraftTransaction — the single-output sweep transaction under construction."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from paper_sweep.doge.transaction import Transaction, TxOutput
from paper_sweep.sweep.outputs import UnspentOutput


@dataclass
class DraftTransaction:
    """A sweep transaction plus the outputs each of its inputs spends.

    ``spent[i]`` is the unspent output consumed by ``transaction.inputs[i]``;
    the two sequences always have the same length and order.
    """

    transaction: Transaction
    spent: tuple[UnspentOutput, ...]

    @classmethod
    def sweep(
        cls, spent: Sequence[UnspentOutput], destination_script: bytes, value: int
    ) -> DraftTransaction:
        """Assemble one unsigned input per output, in order, and one output."""
        tx = Transaction()
        for utxo in spent:
            tx.add_input(prev_tx_id=utxo.previous_tx_id, prev_tx_out_index=utxo.output_index)
        tx.add_output(value, destination_script)
        return cls(transaction=tx, spent=tuple(spent))

    @property
    def output(self) -> TxOutput:
        """The single sweep output."""
        return self.transaction.outputs[0]

    @property
    def previous_scripts(self) -> list[bytes]:
        return [utxo.locking_script for utxo in self.spent]

    def set_output_value(self, value: int) -> None:
        self.output.value = value
