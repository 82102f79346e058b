"""Per-input signing and unlocking-script construction.

Signatures always commit to every input and output (SIGHASH_ALL). The
unlocking script shape is chosen from the previous output's
:class:`~paper_sweep.doge.script.ScriptKind`:

- PAY_TO_ADDRESS -> ``<sig> <pubkey>``
- PAY_TO_RAW_KEY -> ``<sig>``
- UNRECOGNIZED   -> :class:`UnsupportedScriptTypeError`, before any signing
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from paper_sweep.doge.keys import verify_signature
from paper_sweep.doge.script import (
    ScriptKind,
    classify_script,
    extract_pubkey,
    extract_pubkey_hash,
    p2pk_unlock_script,
    p2pkh_unlock_script,
    parse_pushes,
)
from paper_sweep.doge.transaction import SigHash, Transaction
from paper_sweep.errors.sweep_errors import UnsupportedScriptTypeError, UnsupportedSigHashError
from paper_sweep.utils.crypto import hash160

if TYPE_CHECKING:
    from paper_sweep.sweep.key import SweepKey

logger = logging.getLogger(__name__)


def require_supported(previous_script: bytes) -> ScriptKind:
    """Classify *previous_script*, failing for shapes the engine cannot unlock."""
    kind = classify_script(previous_script)
    if kind == ScriptKind.UNRECOGNIZED:
        raise UnsupportedScriptTypeError(
            f"Do not understand script type: {previous_script.hex() or '<empty>'}"
        )
    return kind


class SignatureEngine:
    """Produces signatures and unlocking scripts for a sweep transaction.

    The engine does not check that the key controls each previous script;
    :class:`~paper_sweep.sweep.builder.SweepTransactionBuilder` does that
    before calling it.
    """

    def sign(
        self,
        tx: Transaction,
        input_index: int,
        key: SweepKey,
        previous_script: bytes,
        sighash: SigHash = SigHash.ALL,
    ) -> bytes:
        """Sign one input.

        Returns:
            DER signature with the one-byte sighash type appended.

        Raises:
            UnsupportedSigHashError: If *sighash* is not ``SigHash.ALL``.
        """
        if sighash != SigHash.ALL:
            raise UnsupportedSigHashError(f"Only SIGHASH_ALL is supported, got {sighash!r}")
        digest = tx.signature_digest(input_index, previous_script, sighash)
        return key.sign_digest(digest) + bytes([sighash])

    @staticmethod
    def unlocking_script(kind: ScriptKind, signature: bytes, key: SweepKey) -> bytes:
        """Build the unlocking script for a previous output of *kind*."""
        if kind == ScriptKind.PAY_TO_ADDRESS:
            return p2pkh_unlock_script(signature, key.public_key)
        if kind == ScriptKind.PAY_TO_RAW_KEY:
            return p2pk_unlock_script(signature)
        raise UnsupportedScriptTypeError(f"No unlocking script for kind {kind}")

    def sign_all(
        self,
        tx: Transaction,
        key: SweepKey,
        previous_scripts: Sequence[bytes],
        sighash: SigHash = SigHash.ALL,
    ) -> None:
        """Sign every input of *tx* in place.

        All script kinds are resolved first, so an unrecognized script fails
        the whole call before a single signature is produced. Signatures are
        computed against the unsigned transaction, then installed.
        """
        if not tx.inputs or not tx.outputs:
            msg = "Transaction needs at least one input and one output to sign"
            raise ValueError(msg)
        if len(previous_scripts) != len(tx.inputs):
            msg = f"Got {len(previous_scripts)} previous scripts for {len(tx.inputs)} inputs"
            raise ValueError(msg)
        if sighash != SigHash.ALL:
            raise UnsupportedSigHashError(f"Only SIGHASH_ALL is supported, got {sighash!r}")

        kinds = [require_supported(script) for script in previous_scripts]

        for i, inp in enumerate(tx.inputs):
            if inp.script_sig:
                logger.warning("Re-signing input %d that already has an unlocking script", i)

        signatures = [
            self.sign(tx, i, key, script, sighash) for i, script in enumerate(previous_scripts)
        ]
        for inp, kind, signature in zip(tx.inputs, kinds, signatures, strict=True):
            inp.script_sig = self.unlocking_script(kind, signature, key)


def verify_input(tx: Transaction, input_index: int, previous_script: bytes) -> bool:
    """Check that input *input_index* correctly unlocks *previous_script*.

    Only the two supported shapes are interpreted. Any malformed push,
    unexpected item count, sighash other than ALL, wrong key or invalid
    signature yields ``False``.
    """
    kind = classify_script(previous_script)
    if kind == ScriptKind.UNRECOGNIZED:
        return False
    try:
        items = parse_pushes(tx.inputs[input_index].script_sig)
    except (IndexError, ValueError):
        return False

    if kind == ScriptKind.PAY_TO_ADDRESS:
        if len(items) != 2:
            return False
        signature, pubkey = items
        if hash160(pubkey) != extract_pubkey_hash(previous_script):
            return False
    else:
        if len(items) != 1:
            return False
        signature = items[0]
        pubkey = extract_pubkey(previous_script) or b""

    if len(signature) < 2 or signature[-1] != SigHash.ALL:
        return False
    digest = tx.signature_digest(input_index, previous_script, SigHash.ALL)
    return verify_signature(pubkey, digest, signature[:-1])
