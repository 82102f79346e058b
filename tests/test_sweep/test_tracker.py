"""Tests for BroadcastTracker — the sweep state machine."""

from __future__ import annotations

import itertools

import pytest

from paper_sweep.errors.sweep_errors import InvalidTransitionError, SweepInProgressError
from paper_sweep.sweep.confidence import ConfidenceFeed, ConfidenceKind, ConfidenceSnapshot
from paper_sweep.sweep.tracker import BroadcastTracker, FailureReason, SweepState

TXID = "ab" * 32

ALL_SNAPSHOTS = [
    ConfidenceSnapshot(kind, peers)
    for kind, peers in itertools.product(list(ConfidenceKind), [0, 1, 2, 5])
]


def _sending() -> BroadcastTracker:
    tracker = BroadcastTracker()
    tracker.begin_preparing()
    tracker.mark_sending(TXID)
    return tracker


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_initial_state(self):
        tracker = BroadcastTracker()
        assert tracker.state == SweepState.INPUT
        assert tracker.failure_reason is None
        assert tracker.txid is None
        assert tracker.is_cancellable

    def test_happy_path(self):
        tracker = _sending()
        assert tracker.state == SweepState.SENDING
        assert tracker.txid == TXID
        assert not tracker.is_cancellable

    def test_fail_from_input(self):
        tracker = BroadcastTracker()
        tracker.fail(FailureReason.ZERO_BALANCE)
        assert tracker.state == SweepState.FAILED
        assert tracker.failure_reason == FailureReason.ZERO_BALANCE
        assert tracker.is_terminal

    def test_cannot_skip_preparing(self):
        with pytest.raises(InvalidTransitionError):
            BroadcastTracker().mark_sending(TXID)

    def test_failed_is_terminal(self):
        tracker = BroadcastTracker()
        tracker.fail(FailureReason.FETCH_FAILED)
        with pytest.raises(InvalidTransitionError):
            tracker.begin_preparing()
        with pytest.raises(InvalidTransitionError):
            tracker.fail(FailureReason.ZERO_BALANCE)

    def test_listeners(self):
        tracker = BroadcastTracker()
        seen = []
        unsubscribe = tracker.subscribe(seen.append)
        tracker.begin_preparing()
        unsubscribe()
        tracker.mark_sending(TXID)
        assert [s.state for s in seen] == [SweepState.PREPARING]
        unsubscribe()

    def test_snapshot_messages(self):
        tracker = BroadcastTracker()
        assert tracker.snapshot().message
        tracker.fail(FailureReason.INSUFFICIENT_FUNDS)
        snap = tracker.snapshot()
        assert snap.is_terminal
        assert snap.message == FailureReason.INSUFFICIENT_FUNDS.message

    def test_failure_messages_distinct(self):
        messages = [reason.message for reason in FailureReason]
        assert len(set(messages)) == len(messages)


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


class TestObserve:
    def test_pending_single_peer_stays_sending(self):
        tracker = _sending()
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.PENDING, 1))
        assert tracker.state == SweepState.SENDING

    def test_unknown_stays_sending(self):
        tracker = _sending()
        tracker.observe(ConfidenceSnapshot())
        assert tracker.state == SweepState.SENDING

    def test_many_peers_is_sent(self):
        tracker = _sending()
        assert tracker.observe(ConfidenceSnapshot(ConfidenceKind.PENDING, 2)) == SweepState.SENT

    def test_building_is_sent(self):
        tracker = _sending()
        assert tracker.observe(ConfidenceSnapshot(ConfidenceKind.BUILDING, 0)) == SweepState.SENT

    def test_dead_fails(self):
        tracker = _sending()
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.DEAD, 3))
        assert tracker.state == SweepState.FAILED
        assert tracker.failure_reason == FailureReason.BROADCAST_REJECTED

    @pytest.mark.parametrize("later", ALL_SNAPSHOTS)
    def test_dead_never_becomes_sent(self, later):
        tracker = _sending()
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.DEAD))
        tracker.observe(later)
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.BUILDING, 9))
        assert tracker.state == SweepState.FAILED

    @pytest.mark.parametrize("later", ALL_SNAPSHOTS)
    def test_sent_is_sticky(self, later):
        tracker = _sending()
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.BUILDING))
        tracker.observe(later)
        tracker.observe(ConfidenceSnapshot(ConfidenceKind.DEAD))
        assert tracker.state == SweepState.SENT

    def test_ignored_before_sending(self):
        tracker = BroadcastTracker()
        assert tracker.observe(ConfidenceSnapshot(ConfidenceKind.BUILDING, 5)) == SweepState.INPUT


class TestFollow:
    async def test_stops_at_terminal(self):
        tracker = _sending()
        feed = ConfidenceFeed()
        await feed.publish(ConfidenceSnapshot(ConfidenceKind.PENDING, 1))
        await feed.publish(ConfidenceSnapshot(ConfidenceKind.PENDING, 2))
        await feed.publish(ConfidenceSnapshot(ConfidenceKind.DEAD))
        assert await tracker.follow(feed) == SweepState.SENT

    async def test_closed_feed_leaves_sending(self):
        tracker = _sending()
        feed = ConfidenceFeed()
        await feed.publish(ConfidenceSnapshot(ConfidenceKind.PENDING, 1))
        feed.close()
        assert await tracker.follow(feed) == SweepState.SENDING

    async def test_single_follower(self):
        tracker = _sending()
        feed = ConfidenceFeed()
        tracker._following = True
        with pytest.raises(SweepInProgressError):
            await tracker.follow(feed)
