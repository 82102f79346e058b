"""Script building — P2PKH, P2PK, P2SH, push parsing, script classification.

Provides construction and parsing of the standard scripts a sweep touches:
- P2PKH / P2PK locking and unlocking scripts
- P2SH locking scripts (destination only, never spent here)
- Minimal data pushes and push-only script parsing
- :func:`classify_script`, which maps a locking script to a closed
  :class:`ScriptKind` so signing dispatches on a tag
"""

from __future__ import annotations

import enum
import struct

from paper_sweep.doge.keys import is_public_key
from paper_sweep.utils.crypto import hash160

# ---------------------------------------------------------------------------
# Opcodes
# ---------------------------------------------------------------------------


class OpCode(int, enum.Enum):
    """Opcodes used by the supported script shapes."""

    OP_0 = 0x00
    OP_PUSHDATA1 = 0x4C
    OP_PUSHDATA2 = 0x4D
    OP_PUSHDATA4 = 0x4E
    OP_RETURN = 0x6A
    OP_DUP = 0x76
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88
    OP_HASH160 = 0xA9
    OP_CHECKSIG = 0xAC


# ---------------------------------------------------------------------------
# Script kind
# ---------------------------------------------------------------------------


class ScriptKind(enum.StrEnum):
    """Locking script shapes the sweep engine knows how to satisfy."""

    PAY_TO_ADDRESS = "pubkeyhash"
    PAY_TO_RAW_KEY = "pubkey"
    UNRECOGNIZED = "unrecognized"


# ---------------------------------------------------------------------------
# Data pushes
# ---------------------------------------------------------------------------


def push_data(data: bytes) -> bytes:
    """Encode a data push operation using minimal encoding rules."""
    length = len(data)
    if length == 0:
        return bytes([OpCode.OP_0])
    if length <= 0x4B:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OpCode.OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OpCode.OP_PUSHDATA2]) + struct.pack("<H", length) + data
    return bytes([OpCode.OP_PUSHDATA4]) + struct.pack("<I", length) + data


def parse_pushes(script: bytes) -> list[bytes]:
    """Split a push-only script into the data items it pushes.

    Raises:
        ValueError: If the script contains a non-push opcode or a truncated push.
    """
    items: list[bytes] = []
    idx = 0
    while idx < len(script):
        op = script[idx]
        idx += 1
        if op == OpCode.OP_0:
            items.append(b"")
            continue
        if op <= 0x4B:
            length = op
        elif op == OpCode.OP_PUSHDATA1:
            length = _read_length(script, idx, 1)
            idx += 1
        elif op == OpCode.OP_PUSHDATA2:
            length = _read_length(script, idx, 2)
            idx += 2
        elif op == OpCode.OP_PUSHDATA4:
            length = _read_length(script, idx, 4)
            idx += 4
        else:
            msg = f"Non-push opcode {op:#04x} in push-only script"
            raise ValueError(msg)
        if idx + length > len(script):
            msg = "Truncated push in script"
            raise ValueError(msg)
        items.append(script[idx : idx + length])
        idx += length
    return items


def _read_length(script: bytes, idx: int, size: int) -> int:
    if idx + size > len(script):
        msg = "Truncated push length in script"
        raise ValueError(msg)
    return int.from_bytes(script[idx : idx + size], "little")


# ---------------------------------------------------------------------------
# Locking scripts
# ---------------------------------------------------------------------------


def p2pkh_lock_script(pubkey_hash: bytes) -> bytes:
    """Build a P2PKH locking script.

    OP_DUP OP_HASH160 <20 bytes> OP_EQUALVERIFY OP_CHECKSIG
    """
    if len(pubkey_hash) != 20:
        msg = f"pubkey_hash must be 20 bytes, got {len(pubkey_hash)}"
        raise ValueError(msg)
    return (
        bytes([OpCode.OP_DUP, OpCode.OP_HASH160])
        + push_data(pubkey_hash)
        + bytes([OpCode.OP_EQUALVERIFY, OpCode.OP_CHECKSIG])
    )


def p2pkh_lock_script_from_pubkey(pubkey: bytes) -> bytes:
    """Build a P2PKH locking script paying the hash of *pubkey*."""
    return p2pkh_lock_script(hash160(pubkey))


def p2pk_lock_script(pubkey: bytes) -> bytes:
    """Build a pay-to-raw-public-key locking script: ``<pubkey> OP_CHECKSIG``."""
    if not is_public_key(pubkey):
        msg = f"Invalid public key length: {len(pubkey)}"
        raise ValueError(msg)
    return push_data(pubkey) + bytes([OpCode.OP_CHECKSIG])


def p2sh_lock_script(script_hash: bytes) -> bytes:
    """Build a P2SH locking script: ``OP_HASH160 <20 bytes> OP_EQUAL``."""
    if len(script_hash) != 20:
        msg = f"script_hash must be 20 bytes, got {len(script_hash)}"
        raise ValueError(msg)
    return bytes([OpCode.OP_HASH160]) + push_data(script_hash) + bytes([OpCode.OP_EQUAL])


# ---------------------------------------------------------------------------
# Unlocking scripts
# ---------------------------------------------------------------------------


def p2pkh_unlock_script(signature: bytes, pubkey: bytes) -> bytes:
    """Build a P2PKH unlocking script: ``<sig> <pubkey>``.

    Args:
        signature: DER-encoded signature with the sighash byte appended.
        pubkey: The public key whose hash the locking script commits to.
    """
    return push_data(signature) + push_data(pubkey)


def p2pk_unlock_script(signature: bytes) -> bytes:
    """Build a P2PK unlocking script: ``<sig>``."""
    return push_data(signature)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_script(script: bytes) -> ScriptKind:
    """Classify a locking script.

    Recognises:
    - PAY_TO_ADDRESS: ``OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG``
    - PAY_TO_RAW_KEY: ``<33|65 byte pubkey> OP_CHECKSIG``

    Everything else, including P2SH and OP_RETURN, is UNRECOGNIZED.
    """
    if (
        len(script) == 25
        and script[0] == OpCode.OP_DUP
        and script[1] == OpCode.OP_HASH160
        and script[2] == 0x14
        and script[23] == OpCode.OP_EQUALVERIFY
        and script[24] == OpCode.OP_CHECKSIG
    ):
        return ScriptKind.PAY_TO_ADDRESS

    if (
        len(script) in (35, 67)
        and script[0] == len(script) - 2
        and script[-1] == OpCode.OP_CHECKSIG
        and is_public_key(script[1:-1])
    ):
        return ScriptKind.PAY_TO_RAW_KEY

    return ScriptKind.UNRECOGNIZED


def extract_pubkey_hash(script: bytes) -> bytes | None:
    """Return the 20-byte hash committed to by a P2PKH script, else None."""
    if classify_script(script) != ScriptKind.PAY_TO_ADDRESS:
        return None
    return script[3:23]


def extract_pubkey(script: bytes) -> bytes | None:
    """Return the public key of a P2PK script, else None."""
    if classify_script(script) != ScriptKind.PAY_TO_RAW_KEY:
        return None
    return script[1:-1]
