"""Tests for the transaction codec and the SIGHASH_ALL digest."""

from __future__ import annotations

from io import BytesIO

import pytest

from paper_sweep.doge.script import p2pkh_lock_script
from paper_sweep.doge.transaction import (
    SigHash,
    Transaction,
    TxInput,
    encode_varint,
    read_varint,
)
from paper_sweep.utils.crypto import sha256d


def _sample_tx() -> Transaction:
    tx = Transaction()
    tx.add_input(prev_tx_id=bytes(range(32)), prev_tx_out_index=1)
    tx.add_input(prev_tx_id=bytes(range(32, 64)), prev_tx_out_index=0, script_sig=b"\x01\x02")
    tx.add_output(12_345, p2pkh_lock_script(bytes(20)))
    return tx


# ---------------------------------------------------------------------------
# VarInt
# ---------------------------------------------------------------------------


class TestVarInt:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, "00"),
            (0xFC, "fc"),
            (0xFD, "fdfd00"),
            (0xFFFF, "fdffff"),
            (0x10000, "fe00000100"),
            (0x100000000, "ff0000000001000000"),
        ],
    )
    def test_encode(self, value, encoded):
        assert encode_varint(value).hex() == encoded
        assert read_varint(BytesIO(bytes.fromhex(encoded))) == value

    def test_read_empty(self):
        with pytest.raises(ValueError):
            read_varint(BytesIO(b""))

    def test_read_truncated(self):
        with pytest.raises(ValueError):
            read_varint(BytesIO(b"\xfd\x01"))


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSerialization:
    def test_layout(self):
        tx = _sample_tx()
        raw = tx.serialize()
        assert raw[:4] == b"\x01\x00\x00\x00"
        assert raw[4] == 2
        assert raw[-4:] == b"\x00\x00\x00\x00"
        assert tx.size == len(raw)

    def test_parse_back(self):
        tx = _sample_tx()
        parsed = Transaction.from_hex(tx.to_hex())
        assert parsed == tx
        assert parsed.inputs[1].script_sig == b"\x01\x02"
        assert parsed.outputs[0].value == 12_345

    def test_trailing_bytes_rejected(self):
        with pytest.raises(ValueError, match="Trailing"):
            Transaction.from_bytes(_sample_tx().serialize() + b"\x00")

    def test_truncated_rejected(self):
        with pytest.raises(ValueError):
            Transaction.from_bytes(_sample_tx().serialize()[:-2])

    def test_txid_is_reversed_double_hash(self):
        tx = _sample_tx()
        assert tx.txid() == sha256d(tx.serialize())[::-1].hex()

    def test_output_value(self):
        tx = _sample_tx()
        tx.add_output(5, p2pkh_lock_script(bytes(20)))
        assert tx.output_value == 12_350

    def test_copy_is_independent(self):
        tx = _sample_tx()
        clone = tx.copy()
        clone.inputs[0].script_sig = b"\xff"
        assert tx.inputs[0].script_sig == b""


# ---------------------------------------------------------------------------
# Signature digest
# ---------------------------------------------------------------------------


class TestSignatureDigest:
    def test_ignores_existing_script_sigs(self):
        script = p2pkh_lock_script(bytes(20))
        tx = _sample_tx()
        before = tx.signature_digest(0, script)
        tx.inputs[0].script_sig = b"\xde\xad"
        tx.inputs[1].script_sig = b"\xbe\xef"
        assert tx.signature_digest(0, script) == before

    def test_commits_to_outputs(self):
        script = p2pkh_lock_script(bytes(20))
        tx = _sample_tx()
        before = tx.signature_digest(0, script)
        tx.outputs[0].value += 1
        assert tx.signature_digest(0, script) != before

    def test_differs_per_input(self):
        script = p2pkh_lock_script(bytes(20))
        tx = _sample_tx()
        assert tx.signature_digest(0, script) != tx.signature_digest(1, script)

    def test_does_not_mutate(self):
        tx = _sample_tx()
        raw = tx.serialize()
        tx.signature_digest(0, p2pkh_lock_script(bytes(20)))
        assert tx.serialize() == raw

    def test_matches_manual_preimage(self):
        script = p2pkh_lock_script(bytes(20))
        tx = _sample_tx()
        scoped = tx.copy()
        scoped.inputs[0].script_sig = script
        scoped.inputs[1].script_sig = b""
        expected = sha256d(scoped.serialize() + b"\x01\x00\x00\x00")
        assert tx.signature_digest(0, script) == expected

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            _sample_tx().signature_digest(2, b"")

    def test_only_all_supported(self):
        with pytest.raises(ValueError, match="Unsupported sighash"):
            _sample_tx().signature_digest(0, b"", SigHash.SINGLE)
