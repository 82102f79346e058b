"""Fee estimation by serialized size.

The fee is ``ceil(size / 1000) * fee_per_kb``. Before signing, each empty
unlocking script is sized as an upper-bound placeholder for its script kind,
so the provisional fee can only overestimate the final one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from paper_sweep.doge.script import ScriptKind
from paper_sweep.errors.sweep_errors import UnsupportedScriptTypeError
from paper_sweep.sweep.policy import DEFAULT_POLICY, SweepPolicy

if TYPE_CHECKING:
    from paper_sweep.sweep.draft import DraftTransaction

KB_DIVISOR = 1000

# Largest unlocking scripts per kind: a 72-byte low-S DER signature plus the
# sighash byte, pushed (74), and for pay-to-address an uncompressed key push (66).
PLACEHOLDER_UNLOCK_SIZE: dict[ScriptKind, int] = {
    ScriptKind.PAY_TO_ADDRESS: 74 + 66,
    ScriptKind.PAY_TO_RAW_KEY: 74,
}


class FeeEstimator:
    """Maps a draft's serialized size to the required fee."""

    def __init__(self, policy: SweepPolicy = DEFAULT_POLICY) -> None:
        self._policy = policy

    @property
    def policy(self) -> SweepPolicy:
        return self._policy

    def fee_for_size(self, size: int) -> int:
        """Fee for *size* bytes, rounding up to whole kilobytes."""
        size_kb = (size + KB_DIVISOR - 1) // KB_DIVISOR
        return size_kb * self._policy.fee_per_kb

    def estimated_size(self, draft: DraftTransaction) -> int:
        """Serialized size of *draft* once every input carries an unlocking script.

        Inputs already signed count with their real script; unsigned ones
        count with the placeholder for their previous output's kind.

        Raises:
            UnsupportedScriptTypeError: If an unsigned input spends an
                unrecognized script.
        """
        sized = draft.transaction.copy()
        for inp, utxo in zip(sized.inputs, draft.spent, strict=True):
            if inp.script_sig:
                continue
            placeholder = PLACEHOLDER_UNLOCK_SIZE.get(utxo.kind)
            if placeholder is None:
                raise UnsupportedScriptTypeError(
                    f"Cannot size input spending {utxo.tx_hash}:{utxo.output_index}: "
                    "unrecognized locking script"
                )
            inp.script_sig = b"\x00" * placeholder
        return sized.size

    def estimate(self, draft: DraftTransaction) -> int:
        """Required fee for *draft* in koinu."""
        return self.fee_for_size(self.estimated_size(draft))
