"""Key primitives — Base58Check, secp256k1 public keys, deterministic ECDSA.

Provides the elliptic-curve side of the sweep engine:
- Base58 / Base58Check encoding (addresses and WIF paper keys)
- Private key validation and public key derivation
- Compressed / uncompressed public key encoding
- RFC 6979 deterministic ECDSA signing with low-S normalisation
- DER signature encoding and verification
"""

from __future__ import annotations

import hashlib

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.der import UnexpectedDER
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigdecode_der, sigencode_der_canonize

from paper_sweep.utils.crypto import sha256d

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = SECP256k1
_CURVE_ORDER = _CURVE.order

PRIVATE_KEY_SIZE = 32
COMPRESSED_PUBKEY_SIZE = 33
UNCOMPRESSED_PUBKEY_SIZE = 65


# ---------------------------------------------------------------------------
# Base58Check encoding / decoding
# ---------------------------------------------------------------------------

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58 (no checksum)."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    for byte in payload:
        if byte == 0:
            result.append(_B58_ALPHABET[0])
        else:
            break
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode a Base58 string to raw bytes (no checksum).

    Raises:
        ValueError: If the string contains a character outside the alphabet.
    """
    n = 0
    for char in s:
        digit = _B58_ALPHABET.find(char.encode("ascii", errors="replace"))
        if digit < 0:
            msg = f"Invalid Base58 character: {char!r}"
            raise ValueError(msg)
        n = n * 58 + digit
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_count = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_count + result


def base58check_encode(payload: bytes) -> str:
    """Encode bytes with a 4-byte SHA256d checksum (Base58Check)."""
    return base58_encode(payload + sha256d(payload)[:4])


def base58check_decode(s: str) -> bytes:
    """Decode a Base58Check string, verifying the checksum.

    Raises:
        ValueError: If the string is malformed or the checksum is invalid.
    """
    raw = base58_decode(s)
    if len(raw) < 4:
        msg = "Base58Check string too short"
        raise ValueError(msg)
    payload, checksum = raw[:-4], raw[-4:]
    if checksum != sha256d(payload)[:4]:
        msg = "Base58Check checksum mismatch"
        raise ValueError(msg)
    return payload


# ---------------------------------------------------------------------------
# Public keys
# ---------------------------------------------------------------------------


def validate_private_key(privkey_bytes: bytes) -> None:
    """Check that *privkey_bytes* is a 32-byte scalar in ``[1, n)``.

    Raises:
        ValueError: If the scalar is out of range or the wrong length.
    """
    if len(privkey_bytes) != PRIVATE_KEY_SIZE:
        msg = f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(privkey_bytes)}"
        raise ValueError(msg)
    scalar = int.from_bytes(privkey_bytes, "big")
    if not 0 < scalar < _CURVE_ORDER:
        msg = "Private key scalar out of range"
        raise ValueError(msg)


def private_key_to_public_key(privkey_bytes: bytes, *, compressed: bool = True) -> bytes:
    """Derive the SEC-encoded public key from a 32-byte private key.

    Args:
        privkey_bytes: 32-byte big-endian scalar.
        compressed: If True, return the 33-byte compressed encoding.

    Returns:
        The public key bytes (33 compressed or 65 uncompressed).
    """
    validate_private_key(privkey_bytes)
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    raw = sk.get_verifying_key().to_string()
    if compressed:
        return compress_public_key(raw)
    return b"\x04" + raw


def compress_public_key(raw_pubkey: bytes) -> bytes:
    """Compress a 64-byte (or 65-byte with 0x04 prefix) raw public key to 33 bytes."""
    if len(raw_pubkey) == UNCOMPRESSED_PUBKEY_SIZE and raw_pubkey[0] == 0x04:
        raw_pubkey = raw_pubkey[1:]
    if len(raw_pubkey) == COMPRESSED_PUBKEY_SIZE and raw_pubkey[0] in (0x02, 0x03):
        return raw_pubkey
    if len(raw_pubkey) != 64:
        msg = f"Invalid raw public key length: {len(raw_pubkey)}"
        raise ValueError(msg)
    y = int.from_bytes(raw_pubkey[32:], "big")
    prefix = b"\x02" if y % 2 == 0 else b"\x03"
    return prefix + raw_pubkey[:32]


def decompress_public_key(compressed: bytes) -> bytes:
    """Decompress a 33-byte compressed public key to its 65-byte form."""
    if len(compressed) != COMPRESSED_PUBKEY_SIZE:
        msg = f"Invalid compressed key length: {len(compressed)}"
        raise ValueError(msg)
    prefix = compressed[0]
    if prefix not in (0x02, 0x03):
        msg = f"Invalid compressed key prefix: {prefix:#x}"
        raise ValueError(msg)
    x = int.from_bytes(compressed[1:], "big")
    p = _CURVE.curve.p()
    # y^2 = x^3 + 7 (mod p)
    y_sq = (pow(x, 3, p) + 7) % p
    y = pow(y_sq, (p + 1) // 4, p)
    if (y * y) % p != y_sq:
        msg = "Compressed key is not on the curve"
        raise ValueError(msg)
    if (y % 2 == 0) != (prefix == 0x02):
        y = p - y
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def is_public_key(data: bytes) -> bool:
    """Check whether *data* has the shape of a SEC-encoded public key."""
    if len(data) == COMPRESSED_PUBKEY_SIZE:
        return data[0] in (0x02, 0x03)
    if len(data) == UNCOMPRESSED_PUBKEY_SIZE:
        return data[0] == 0x04
    return False


# ---------------------------------------------------------------------------
# ECDSA signing / verification
# ---------------------------------------------------------------------------


def sign_digest(privkey_bytes: bytes, digest: bytes) -> bytes:
    """Sign a 32-byte digest using an RFC 6979 nonce.

    The signature is normalised to low-S and returned DER-encoded, without
    a sighash byte.
    """
    if len(digest) != 32:
        msg = f"Digest must be 32 bytes, got {len(digest)}"
        raise ValueError(msg)
    validate_private_key(privkey_bytes)
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    return sk.sign_digest_deterministic(
        digest, hashfunc=hashlib.sha256, sigencode=sigencode_der_canonize
    )


def verify_signature(pubkey_bytes: bytes, digest: bytes, signature: bytes) -> bool:
    """Verify a DER-encoded signature over *digest* against a SEC public key."""
    if len(pubkey_bytes) == COMPRESSED_PUBKEY_SIZE:
        try:
            raw_key = decompress_public_key(pubkey_bytes)[1:]
        except ValueError:
            return False
    elif len(pubkey_bytes) == UNCOMPRESSED_PUBKEY_SIZE and pubkey_bytes[0] == 0x04:
        raw_key = pubkey_bytes[1:]
    else:
        return False
    try:
        vk = VerifyingKey.from_string(raw_key, curve=_CURVE)
        return vk.verify_digest(signature, digest, sigdecode=sigdecode_der)
    except (BadSignatureError, MalformedPointError, UnexpectedDER, ValueError):
        return False
