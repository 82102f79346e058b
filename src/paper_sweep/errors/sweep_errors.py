"""SweepError — base exception class and the typed error taxonomy."""

from __future__ import annotations


class SweepError(Exception):
    """Base error for all sweep operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
    """

    default_code = "sweep-error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


# -- Input validation ------------------------------------------------------


class InvalidKeyError(SweepError):
    """A paper key could not be decoded."""

    default_code = "invalid-key"


class InvalidAddressError(SweepError):
    """A destination address could not be decoded for this network."""

    default_code = "invalid-address"


# -- Balance fetch ---------------------------------------------------------


class FetchError(SweepError):
    """The unspent output query did not produce a usable set."""

    default_code = "fetch-error"


class NetworkError(FetchError):
    """Transport failure or timeout talking to the ledger index."""

    default_code = "network-error"


class ProtocolError(FetchError):
    """The ledger index answered with a malformed or unsuccessful body."""

    default_code = "protocol-error"


class EmptyResultError(FetchError):
    """The address owns no outputs. A valid zero-balance state."""

    default_code = "empty-result"


# -- Build -----------------------------------------------------------------


class BuildError(SweepError):
    """The sweep transaction could not be built."""

    default_code = "build-error"


class UnconfirmedFundsError(BuildError):
    """Part of the balance is not yet confirmed."""

    default_code = "unconfirmed-funds"

    def __init__(self, unconfirmed_balance: int) -> None:
        super().__init__(f"{unconfirmed_balance} koinu are still unconfirmed")
        self.unconfirmed_balance = unconfirmed_balance


class ZeroBalanceError(BuildError):
    """Nothing confirmed to sweep."""

    default_code = "zero-balance"


class InsufficientFundsError(BuildError):
    """The fee consumes the whole confirmed balance."""

    default_code = "insufficient-funds"

    def __init__(self, balance: int, fee: int) -> None:
        super().__init__(f"Confirmed balance {balance} does not cover fee {fee}")
        self.balance = balance
        self.fee = fee


class UnsupportedScriptTypeError(BuildError):
    """A previous output uses a locking script the engine cannot satisfy."""

    default_code = "unsupported-script-type"


class UnsupportedSigHashError(BuildError):
    """A signature scope other than "sign all" was requested."""

    default_code = "unsupported-sighash"


class KeyMismatchError(BuildError):
    """The sweep key does not control a previous output's script."""

    default_code = "key-mismatch"


# -- Broadcast -------------------------------------------------------------


class BroadcastRejectedError(SweepError):
    """The relay refused the sweep transaction at submission."""

    default_code = "broadcast-rejected"


class BroadcastFailedError(SweepError):
    """Submission did not complete; the transaction may or may not be on the network."""

    default_code = "broadcast-failed"


# -- Session ---------------------------------------------------------------


class SweepInProgressError(SweepError):
    """Another fetch or broadcast is already in flight for this attempt."""

    default_code = "sweep-in-progress"


class InvalidTransitionError(SweepError):
    """A state change not allowed by the sweep state machine."""

    default_code = "invalid-transition"
