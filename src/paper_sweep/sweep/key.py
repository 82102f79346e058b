"""SweepKey — the paper key being swept, held in memory only."""

from __future__ import annotations

from paper_sweep.doge.address import MAINNET, ChainParams, pubkey_to_address, wif_to_privkey
from paper_sweep.doge.keys import private_key_to_public_key, sign_digest
from paper_sweep.doge.script import ScriptKind, classify_script, extract_pubkey, extract_pubkey_hash
from paper_sweep.errors.sweep_errors import InvalidKeyError
from paper_sweep.utils.crypto import hash160


class SweepKey:
    """A single private key plus its derived public key and address.

    The secret never leaves the instance except through :meth:`sign_digest`,
    and is not shown by ``repr``.

    Usage::

        key = SweepKey.from_wif(paper_wif)
        key.address  # 'D...'
    """

    __slots__ = ("_address", "_compressed", "_params", "_public_key", "_secret")

    def __init__(
        self, secret: bytes, *, compressed: bool = True, params: ChainParams = MAINNET
    ) -> None:
        try:
            public_key = private_key_to_public_key(secret, compressed=compressed)
        except ValueError as exc:
            raise InvalidKeyError(str(exc)) from exc
        self._secret = bytes(secret)
        self._compressed = compressed
        self._params = params
        self._public_key = public_key
        self._address = pubkey_to_address(public_key, params)

    @classmethod
    def from_wif(cls, wif: str, params: ChainParams = MAINNET) -> SweepKey:
        """Import a WIF-encoded paper key."""
        secret, compressed = wif_to_privkey(wif, params)
        return cls(secret, compressed=compressed, params=params)

    @property
    def public_key(self) -> bytes:
        """SEC-encoded public key (33 or 65 bytes)."""
        return self._public_key

    @property
    def compressed(self) -> bool:
        return self._compressed

    @property
    def address(self) -> str:
        """P2PKH address the paper key's funds were sent to."""
        return self._address

    @property
    def params(self) -> ChainParams:
        return self._params

    def sign_digest(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest; returns a low-S DER signature."""
        return sign_digest(self._secret, digest)

    def matches_script(self, locking_script: bytes) -> bool:
        """Whether this key can satisfy *locking_script*."""
        kind = classify_script(locking_script)
        if kind == ScriptKind.PAY_TO_ADDRESS:
            return extract_pubkey_hash(locking_script) == hash160(self._public_key)
        if kind == ScriptKind.PAY_TO_RAW_KEY:
            return extract_pubkey(locking_script) == self._public_key
        return False

    def __repr__(self) -> str:
        return f"<SweepKey {self._address}>"
