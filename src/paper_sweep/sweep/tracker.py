"""BroadcastTracker — the sweep attempt's state machine.

States move forward only::

    INPUT -> PREPARING -> SENDING -> SENT
      |          |           |
      +----------+-----------+-> FAILED

While SENDING, each confidence snapshot decides the outcome: DEAD fails the
attempt, BUILDING or more than one broadcast peer marks it sent. SENT and
FAILED are terminal; a new attempt needs a new tracker.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from paper_sweep.errors.sweep_errors import InvalidTransitionError, SweepInProgressError
from paper_sweep.sweep.confidence import ConfidenceKind, ConfidenceSnapshot

if TYPE_CHECKING:
    from paper_sweep.sweep.confidence import ConfidenceFeed

logger = logging.getLogger(__name__)


class SweepState(enum.StrEnum):
    """Lifecycle of one sweep attempt."""

    INPUT = "input"
    PREPARING = "preparing"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class FailureReason(enum.StrEnum):
    """Why an attempt ended in FAILED. Each has its own user message."""

    FETCH_FAILED = "fetch-failed"
    UNCONFIRMED_FUNDS = "unconfirmed-funds"
    ZERO_BALANCE = "zero-balance"
    INSUFFICIENT_FUNDS = "insufficient-funds"
    BUILD_FAILED = "build-failed"
    BROADCAST_REJECTED = "broadcast-rejected"
    BROADCAST_FAILED = "broadcast-failed"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES = {
    FailureReason.FETCH_FAILED: "Could not get the balance of the paper key. Try again later.",
    FailureReason.UNCONFIRMED_FUNDS: (
        "Some funds on the paper key are not confirmed yet. Wait for confirmations and retry."
    ),
    FailureReason.ZERO_BALANCE: "The paper key holds no funds.",
    FailureReason.INSUFFICIENT_FUNDS: "The confirmed balance does not cover the network fee.",
    FailureReason.BUILD_FAILED: "The sweep transaction could not be created for this key.",
    FailureReason.BROADCAST_REJECTED: "The network rejected the sweep transaction.",
    FailureReason.BROADCAST_FAILED: (
        "The sweep transaction may not have reached the network. "
        "Check the paper key balance before sweeping again."
    ),
}

_STATE_MESSAGES = {
    SweepState.INPUT: "Ready to sweep.",
    SweepState.PREPARING: "Preparing transaction…",
    SweepState.SENDING: "Sending…",
    SweepState.SENT: "Sent.",
}

_ALLOWED: dict[SweepState, frozenset[SweepState]] = {
    SweepState.INPUT: frozenset({SweepState.PREPARING, SweepState.FAILED}),
    SweepState.PREPARING: frozenset({SweepState.SENDING, SweepState.FAILED}),
    SweepState.SENDING: frozenset({SweepState.SENT, SweepState.FAILED}),
    SweepState.SENT: frozenset(),
    SweepState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class TrackerSnapshot:
    """Read-only view of the tracker published to the presentation layer."""

    state: SweepState
    failure_reason: FailureReason | None = None
    txid: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (SweepState.SENT, SweepState.FAILED)

    @property
    def message(self) -> str:
        if self.state == SweepState.FAILED and self.failure_reason is not None:
            return self.failure_reason.message
        return _STATE_MESSAGES.get(self.state, "")


Listener = Callable[[TrackerSnapshot], None]


class BroadcastTracker:
    """Owns the SweepState of one attempt; nothing else writes it."""

    def __init__(self) -> None:
        self._state = SweepState.INPUT
        self._failure_reason: FailureReason | None = None
        self._txid: str | None = None
        self._listeners: list[Listener] = []
        self._following = False

    @property
    def state(self) -> SweepState:
        return self._state

    @property
    def failure_reason(self) -> FailureReason | None:
        return self._failure_reason

    @property
    def txid(self) -> str | None:
        return self._txid

    @property
    def is_terminal(self) -> bool:
        return self._state in (SweepState.SENT, SweepState.FAILED)

    @property
    def is_cancellable(self) -> bool:
        """Only an attempt that has not started preparing can be cancelled."""
        return self._state == SweepState.INPUT

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            state=self._state, failure_reason=self._failure_reason, txid=self._txid
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with a snapshot after every transition.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_preparing(self) -> None:
        self._transition(SweepState.PREPARING)

    def mark_sending(self, txid: str) -> None:
        self._txid = txid
        self._transition(SweepState.SENDING)

    def fail(self, reason: FailureReason) -> None:
        self._transition(SweepState.FAILED, reason)

    def observe(self, confidence: ConfidenceSnapshot) -> SweepState:
        """Apply one confidence snapshot. Ignored outside SENDING."""
        if self._state != SweepState.SENDING:
            logger.debug("Ignoring confidence %s in state %s", confidence, self._state)
            return self._state
        if confidence.confidence_kind == ConfidenceKind.DEAD:
            self._transition(SweepState.FAILED, FailureReason.BROADCAST_REJECTED)
        elif (
            confidence.confidence_kind == ConfidenceKind.BUILDING
            or confidence.broadcast_peer_count > 1
        ):
            self._transition(SweepState.SENT)
        return self._state

    async def follow(self, feed: ConfidenceFeed) -> SweepState:
        """Consume *feed* until a terminal state is reached or the feed closes.

        Snapshots are applied one at a time in arrival order.

        Raises:
            SweepInProgressError: If another feed is already being followed.
        """
        if self._following:
            raise SweepInProgressError("Tracker is already following a confidence feed")
        self._following = True
        try:
            async for confidence in feed:
                if self.observe(confidence) in (SweepState.SENT, SweepState.FAILED):
                    break
        finally:
            self._following = False
        return self._state

    def _transition(self, new_state: SweepState, reason: FailureReason | None = None) -> None:
        if new_state not in _ALLOWED[self._state]:
            raise InvalidTransitionError(f"Cannot move from {self._state} to {new_state}")
        logger.info(
            "Sweep state %s -> %s%s",
            self._state,
            new_state,
            f" ({reason})" if reason else "",
        )
        self._state = new_state
        self._failure_reason = reason
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
