"""Hashing helpers shared by the codec and the signing engine."""

from __future__ import annotations

import hashlib


def sha256(data: bytes) -> bytes:
    """Single SHA-256 hash."""
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """Double SHA-256, used for txids, sighash digests and Base58Check checksums."""
    return sha256(sha256(data))


def hash160(data: bytes) -> bytes:
    """RIPEMD-160(SHA-256(data)), the 20-byte key and script hash."""
    h = hashlib.new("ripemd160")
    h.update(sha256(data))
    return h.digest()
