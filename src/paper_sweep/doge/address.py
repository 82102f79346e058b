"""Address encoding — chain parameters, Base58Check addresses, WIF keys.

Dogecoin address operations:
- Per-network version bytes (:class:`ChainParams`)
- P2PKH address generation from public keys
- Destination address decoding to a locking script
- WIF (Wallet Import Format) encoding / decoding of paper keys
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from paper_sweep.doge.keys import base58check_decode, base58check_encode
from paper_sweep.doge.script import p2pkh_lock_script, p2sh_lock_script
from paper_sweep.errors.sweep_errors import InvalidAddressError, InvalidKeyError
from paper_sweep.utils.crypto import hash160


class Network(enum.StrEnum):
    """Supported networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


@dataclass(frozen=True)
class ChainParams:
    """Version bytes distinguishing one network's encodings from another's.

    Attributes:
        network: Which network these parameters describe.
        pubkey_hash_version: Leading byte of P2PKH addresses.
        script_hash_version: Leading byte of P2SH addresses.
        wif_version: Leading byte of WIF-encoded private keys.
    """

    network: Network
    pubkey_hash_version: int
    script_hash_version: int
    wif_version: int

    @classmethod
    def for_network(cls, network: Network | str) -> ChainParams:
        """Return the parameters for *network*."""
        return _PARAMS[Network(network)]


MAINNET = ChainParams(
    network=Network.MAINNET,
    pubkey_hash_version=0x1E,  # D...
    script_hash_version=0x16,  # 9... / A...
    wif_version=0x9E,  # Q... / 6...
)

TESTNET = ChainParams(
    network=Network.TESTNET,
    pubkey_hash_version=0x71,  # n...
    script_hash_version=0xC4,  # 2...
    wif_version=0xF1,
)

_PARAMS = {Network.MAINNET: MAINNET, Network.TESTNET: TESTNET}


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


def pubkey_to_address(pubkey: bytes, params: ChainParams = MAINNET) -> str:
    """Generate a P2PKH address from a compressed or uncompressed public key."""
    return base58check_encode(bytes([params.pubkey_hash_version]) + hash160(pubkey))


def address_to_script(address: str, params: ChainParams = MAINNET) -> bytes:
    """Decode a destination address into the locking script that pays it.

    Args:
        address: Base58Check-encoded P2PKH or P2SH address.
        params: Network the address must belong to.

    Returns:
        The locking script (25 bytes for P2PKH, 23 bytes for P2SH).

    Raises:
        InvalidAddressError: If the address is malformed or for another network.
    """
    try:
        payload = base58check_decode(address)
    except ValueError as exc:
        raise InvalidAddressError(f"Invalid address {address!r}: {exc}") from exc
    if len(payload) != 21:
        raise InvalidAddressError(f"Invalid address payload length: {len(payload)}")
    version, digest = payload[0], payload[1:]
    if version == params.pubkey_hash_version:
        return p2pkh_lock_script(digest)
    if version == params.script_hash_version:
        return p2sh_lock_script(digest)
    raise InvalidAddressError(
        f"Address {address!r} does not belong to {params.network} (version {version:#04x})"
    )


def validate_address(address: str, params: ChainParams = MAINNET) -> bool:
    """Check if *address* is a valid P2PKH or P2SH address on *params*' network."""
    try:
        address_to_script(address, params)
    except InvalidAddressError:
        return False
    return True


# ---------------------------------------------------------------------------
# WIF
# ---------------------------------------------------------------------------


def privkey_to_wif(
    privkey: bytes, params: ChainParams = MAINNET, *, compressed: bool = True
) -> str:
    """Encode a 32-byte private key as WIF."""
    payload = bytes([params.wif_version]) + privkey
    if compressed:
        payload += b"\x01"
    return base58check_encode(payload)


def wif_to_privkey(wif: str, params: ChainParams = MAINNET) -> tuple[bytes, bool]:
    """Decode a WIF string to a private key.

    Returns:
        Tuple of (privkey_bytes, compressed).

    Raises:
        InvalidKeyError: If the WIF is malformed or for another network.
    """
    try:
        payload = base58check_decode(wif.strip())
    except ValueError as exc:
        raise InvalidKeyError(f"Invalid WIF key: {exc}") from exc
    if payload[:1] != bytes([params.wif_version]):
        raise InvalidKeyError(f"WIF key does not belong to {params.network}")
    if len(payload) == 34 and payload[-1] == 0x01:
        return payload[1:33], True
    if len(payload) == 33:
        return payload[1:33], False
    raise InvalidKeyError(f"Invalid WIF payload length: {len(payload)}")
