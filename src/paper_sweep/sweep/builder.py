"""Sweep transaction builder — guards, assembly, two-pass fee, signing.

``build()`` is synchronous and does no I/O. It either returns a fully
signed :class:`SignedTransaction` or raises a :class:`BuildError`; a
partially built transaction is never handed out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from paper_sweep.doge.address import address_to_script
from paper_sweep.errors.sweep_errors import (
    BuildError,
    InsufficientFundsError,
    InvalidAddressError,
    KeyMismatchError,
    UnconfirmedFundsError,
    ZeroBalanceError,
)
from paper_sweep.sweep.draft import DraftTransaction
from paper_sweep.sweep.fees import FeeEstimator
from paper_sweep.sweep.policy import DEFAULT_POLICY, SweepPolicy
from paper_sweep.sweep.signing import SignatureEngine, require_supported

if TYPE_CHECKING:
    from paper_sweep.doge.transaction import Transaction
    from paper_sweep.sweep.key import SweepKey
    from paper_sweep.sweep.outputs import UnspentOutputSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedTransaction:
    """A fully signed, ready-to-broadcast sweep transaction.

    Attributes:
        transaction: The signed transaction.
        input_value: Sum of the spent outputs (the confirmed balance).
        output_value: Value of the single sweep output.
        estimated_fee: Fee required by the final, signed size.
    """

    transaction: Transaction
    input_value: int
    output_value: int
    estimated_fee: int

    @property
    def fee(self) -> int:
        """Fee actually paid: inputs minus the output."""
        return self.input_value - self.output_value

    @property
    def txid(self) -> str:
        return self.transaction.txid()

    @property
    def raw_hex(self) -> str:
        return self.transaction.to_hex()

    @property
    def size(self) -> int:
        return self.transaction.size

    @property
    def input_count(self) -> int:
        return len(self.transaction.inputs)


class SweepTransactionBuilder:
    """Builds the single-output transaction that empties a paper key.

    Usage::

        builder = SweepTransactionBuilder(policy)
        signed = builder.build(key, "D...", outputs)
    """

    def __init__(
        self,
        policy: SweepPolicy = DEFAULT_POLICY,
        *,
        fee_estimator: FeeEstimator | None = None,
        signature_engine: SignatureEngine | None = None,
    ) -> None:
        self._policy = policy
        self._fees = fee_estimator or FeeEstimator(policy)
        self._signer = signature_engine or SignatureEngine()

    @property
    def fee_estimator(self) -> FeeEstimator:
        return self._fees

    def build(self, key: SweepKey, destination: str, outputs: UnspentOutputSet) -> SignedTransaction:
        """Build and sign the sweep transaction.

        Args:
            key: The paper key controlling every output.
            destination: Address receiving the swept funds.
            outputs: The freshly fetched unspent outputs of ``key.address``.

        Raises:
            UnconfirmedFundsError: Some of the balance is unconfirmed.
            ZeroBalanceError: Nothing confirmed to sweep.
            UnsupportedScriptTypeError: An output has a script the engine cannot unlock.
            KeyMismatchError: *key* does not control an output's script.
            InsufficientFundsError: The fee is at least the confirmed balance.
            BuildError: The destination is not a valid address.
        """
        if outputs.unconfirmed_balance > 0:
            raise UnconfirmedFundsError(outputs.unconfirmed_balance)
        balance = outputs.confirmed_balance
        if balance == 0:
            raise ZeroBalanceError("No confirmed funds to sweep")

        try:
            destination_script = address_to_script(destination, key.params)
        except InvalidAddressError as exc:
            raise BuildError(exc.message, code="invalid-destination") from exc

        spent = outputs.outputs
        for utxo in spent:
            require_supported(utxo.locking_script)
            if not key.matches_script(utxo.locking_script):
                raise KeyMismatchError(
                    f"Key {key.address} cannot spend {utxo.tx_hash}:{utxo.output_index}"
                )

        draft = DraftTransaction.sweep(spent, destination_script, balance)

        placeholder_fee = self._fees.estimate(draft)
        if balance <= placeholder_fee:
            raise InsufficientFundsError(balance, placeholder_fee)
        draft.set_output_value(balance - placeholder_fee)

        self._signer.sign_all(draft.transaction, key, draft.previous_scripts)

        # Output keeps the placeholder fee; placeholder size >= signed size.
        final_fee = self._fees.estimate(draft)
        if final_fee > placeholder_fee:
            logger.warning(
                "Final fee %d exceeds provisional fee %d for %d inputs",
                final_fee,
                placeholder_fee,
                len(spent),
            )
            if balance <= final_fee:
                raise InsufficientFundsError(balance, final_fee)

        signed = SignedTransaction(
            transaction=draft.transaction,
            input_value=balance,
            output_value=draft.output.value,
            estimated_fee=final_fee,
        )
        logger.info(
            "Built sweep %s: %d inputs, %d koinu to %s, fee %d (%d bytes)",
            signed.txid,
            signed.input_count,
            signed.output_value,
            destination,
            signed.fee,
            signed.size,
        )
        return signed
