"""Transaction serialisation and the legacy signature digest.

Provides pure-Python transaction handling for the sweep:
- TxInput / TxOutput data classes
- Transaction class with serialize / deserialize / txid computation
- VarInt encoding / decoding
- :meth:`Transaction.signature_digest`, the "substitute one script, clear
  the others" digest signed by every input
"""

from __future__ import annotations

import copy
import enum
import struct
from dataclasses import dataclass, field
from io import BytesIO

from paper_sweep.utils.crypto import sha256d

# ---------------------------------------------------------------------------
# VarInt encoding / decoding
# ---------------------------------------------------------------------------


def encode_varint(n: int) -> bytes:
    """Encode an integer as a variable-length integer."""
    if n < 0xFD:
        return struct.pack("<B", n)
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def read_varint(stream: BytesIO) -> int:
    """Read a variable-length integer from a byte stream."""
    first = stream.read(1)
    if len(first) == 0:
        msg = "Unexpected end of stream reading varint"
        raise ValueError(msg)
    n = first[0]
    if n < 0xFD:
        return n
    if n == 0xFD:
        return struct.unpack("<H", _read_exact(stream, 2))[0]
    if n == 0xFE:
        return struct.unpack("<I", _read_exact(stream, 4))[0]
    return struct.unpack("<Q", _read_exact(stream, 8))[0]


def _read_exact(stream: BytesIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        msg = f"Unexpected end of stream (wanted {size} bytes, got {len(data)})"
        raise ValueError(msg)
    return data


# ---------------------------------------------------------------------------
# Signature hash types
# ---------------------------------------------------------------------------


class SigHash(enum.IntEnum):
    """Signature hash scopes. Only ALL is supported for signing."""

    ALL = 0x01
    NONE = 0x02
    SINGLE = 0x03
    ALL_ANYONECANPAY = 0x81
    NONE_ANYONECANPAY = 0x82
    SINGLE_ANYONECANPAY = 0x83


DEFAULT_SEQUENCE = 0xFFFFFFFF


# ---------------------------------------------------------------------------
# TxInput
# ---------------------------------------------------------------------------


@dataclass
class TxInput:
    """A transaction input.

    Attributes:
        prev_tx_id: 32-byte hash of the previous transaction (internal byte order).
        prev_tx_out_index: Index of the output in the previous transaction.
        script_sig: Unlocking script.
        sequence: Sequence number (default 0xFFFFFFFF).
    """

    prev_tx_id: bytes
    prev_tx_out_index: int
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE

    def serialize(self) -> bytes:
        """Serialize the input to bytes."""
        result = self.prev_tx_id
        result += struct.pack("<I", self.prev_tx_out_index)
        result += encode_varint(len(self.script_sig))
        result += self.script_sig
        result += struct.pack("<I", self.sequence)
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxInput:
        """Deserialize a transaction input from a byte stream."""
        prev_tx_id = _read_exact(stream, 32)
        prev_tx_out_index = struct.unpack("<I", _read_exact(stream, 4))[0]
        script_sig = _read_exact(stream, read_varint(stream))
        sequence = struct.unpack("<I", _read_exact(stream, 4))[0]
        return cls(
            prev_tx_id=prev_tx_id,
            prev_tx_out_index=prev_tx_out_index,
            script_sig=script_sig,
            sequence=sequence,
        )


# ---------------------------------------------------------------------------
# TxOutput
# ---------------------------------------------------------------------------


@dataclass
class TxOutput:
    """A transaction output.

    Attributes:
        value: Output value in koinu.
        script_pubkey: Locking script.
    """

    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        """Serialize the output to bytes."""
        result = struct.pack("<q", self.value)
        result += encode_varint(len(self.script_pubkey))
        result += self.script_pubkey
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxOutput:
        """Deserialize a transaction output from a byte stream."""
        value = struct.unpack("<q", _read_exact(stream, 8))[0]
        script_pubkey = _read_exact(stream, read_varint(stream))
        return cls(value=value, script_pubkey=script_pubkey)


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A ledger transaction.

    Attributes:
        version: Transaction version (default 1).
        inputs: List of transaction inputs.
        outputs: List of transaction outputs.
        locktime: Transaction locktime (default 0).
    """

    version: int = 1
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    def serialize(self) -> bytes:
        """Serialize the transaction to raw bytes."""
        result = struct.pack("<i", self.version)
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        """Serialize to hex string."""
        return self.serialize().hex()

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Transaction:
        """Deserialize a transaction from a byte stream."""
        version = struct.unpack("<i", _read_exact(stream, 4))[0]
        inputs = [TxInput.deserialize(stream) for _ in range(read_varint(stream))]
        outputs = [TxOutput.deserialize(stream) for _ in range(read_varint(stream))]
        locktime = struct.unpack("<I", _read_exact(stream, 4))[0]
        return cls(version=version, inputs=inputs, outputs=outputs, locktime=locktime)

    @classmethod
    def from_hex(cls, hex_str: str) -> Transaction:
        """Deserialize a transaction from a hex string."""
        return cls.from_bytes(bytes.fromhex(hex_str))

    @classmethod
    def from_bytes(cls, data: bytes) -> Transaction:
        """Deserialize a transaction from raw bytes, rejecting trailing data."""
        stream = BytesIO(data)
        tx = cls.deserialize(stream)
        if stream.read(1):
            msg = "Trailing bytes after transaction"
            raise ValueError(msg)
        return tx

    def txid(self) -> str:
        """Compute the transaction ID (double-SHA256, reversed, hex)."""
        return sha256d(self.serialize())[::-1].hex()

    @property
    def size(self) -> int:
        """Transaction size in bytes."""
        return len(self.serialize())

    @property
    def output_value(self) -> int:
        """Sum of all output values."""
        return sum(out.value for out in self.outputs)

    def copy(self) -> Transaction:
        """Return a deep copy that can be mutated independently."""
        return copy.deepcopy(self)

    def add_input(
        self,
        prev_tx_id: bytes,
        prev_tx_out_index: int,
        script_sig: bytes = b"",
        sequence: int = DEFAULT_SEQUENCE,
    ) -> TxInput:
        """Append an input and return it."""
        inp = TxInput(
            prev_tx_id=prev_tx_id,
            prev_tx_out_index=prev_tx_out_index,
            script_sig=script_sig,
            sequence=sequence,
        )
        self.inputs.append(inp)
        return inp

    def add_output(self, value: int, script_pubkey: bytes) -> TxOutput:
        """Append an output and return it."""
        out = TxOutput(value=value, script_pubkey=script_pubkey)
        self.outputs.append(out)
        return out

    # ------------------------------------------------------------------
    # Signature digest
    # ------------------------------------------------------------------

    def signature_digest(
        self, input_index: int, previous_script: bytes, sighash: SigHash = SigHash.ALL
    ) -> bytes:
        """Compute the SIGHASH_ALL digest for one input.

        Every unlocking script is cleared, the one at *input_index* is
        replaced by *previous_script*, and the serialization is hashed
        together with the 4-byte sighash type.

        Raises:
            IndexError: If *input_index* does not name an input.
            ValueError: If *sighash* is anything other than ALL.
        """
        if sighash != SigHash.ALL:
            msg = f"Unsupported sighash type: {sighash!r}"
            raise ValueError(msg)
        if not 0 <= input_index < len(self.inputs):
            msg = f"Input index {input_index} out of range ({len(self.inputs)} inputs)"
            raise IndexError(msg)
        scoped = self.copy()
        for i, inp in enumerate(scoped.inputs):
            inp.script_sig = previous_script if i == input_index else b""
        return sha256d(scoped.serialize() + struct.pack("<I", int(sighash)))
