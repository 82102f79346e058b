"""Shared test fixtures for the paper-sweep test suite."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from paper_sweep.doge.script import p2pkh_lock_script_from_pubkey
from paper_sweep.sweep.key import SweepKey
from paper_sweep.sweep.outputs import UnspentOutput
from paper_sweep.utils.crypto import sha256

UtxoFactory = Callable[..., UnspentOutput]


@pytest.fixture
def sweep_key() -> SweepKey:
    """The paper key under test (compressed, mainnet)."""
    return SweepKey(bytes.fromhex("11" * 32))


@pytest.fixture
def other_key() -> SweepKey:
    """A key that does not control the paper key's outputs."""
    return SweepKey(bytes.fromhex("22" * 32))


@pytest.fixture
def destination() -> str:
    """A mainnet P2PKH destination address."""
    return SweepKey(bytes.fromhex("33" * 32)).address


@pytest.fixture
def make_utxo(sweep_key: SweepKey) -> UtxoFactory:
    """Build UnspentOutputs locked to the paper key's address by default."""
    counter = iter(range(1, 1_000))

    def _make(
        value: int,
        confirmations: int = 6,
        *,
        script: bytes | None = None,
        output_index: int = 0,
    ) -> UnspentOutput:
        return UnspentOutput(
            previous_tx_id=sha256(bytes([next(counter)])),
            output_index=output_index,
            locking_script=(
                script if script is not None else p2pkh_lock_script_from_pubkey(sweep_key.public_key)
            ),
            value=value,
            confirmation_count=confirmations,
        )

    return _make
