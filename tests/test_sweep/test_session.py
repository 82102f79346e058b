"""Tests for SweepSession — fetch guards, cancellation and broadcast outcomes."""

from __future__ import annotations

import asyncio

import pytest

from paper_sweep.errors.chain_errors import RelayError
from paper_sweep.errors.sweep_errors import (
    BroadcastFailedError,
    BroadcastRejectedError,
    EmptyResultError,
    InvalidTransitionError,
    NetworkError,
    ProtocolError,
    SweepInProgressError,
)
from paper_sweep.sweep.confidence import ConfidenceKind, ConfidenceSnapshot
from paper_sweep.sweep.outputs import UnspentOutputSet
from paper_sweep.sweep.session import SweepSession
from paper_sweep.sweep.signing import verify_input
from paper_sweep.sweep.tracker import FailureReason, SweepState

FEE = 100_000_000


class FakeSource:
    """UnspentSource returning a canned result, optionally after a gate opens."""

    def __init__(self, result=None, *, error: Exception | None = None, gate=None) -> None:
        self.result = result
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def fetch(self, address: str) -> UnspentOutputSet:
        self.calls.append(address)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class FakeBroadcaster:
    """Broadcaster publishing a scripted list of snapshots."""

    def __init__(self, snapshots=(), *, error: Exception | None = None) -> None:
        self.snapshots = list(snapshots)
        self.error = error
        self.submitted: list[str] = []

    async def broadcast(self, tx, feed) -> None:
        self.submitted.append(tx.raw_hex)
        try:
            if self.error is not None:
                raise self.error
            for snap in self.snapshots:
                await feed.publish(snap)
        finally:
            feed.close()


@pytest.fixture
def funded(make_utxo) -> UnspentOutputSet:
    return UnspentOutputSet([make_utxo(2 * FEE), make_utxo(FEE)])


def _session(sweep_key, destination, source, broadcaster=None) -> SweepSession:
    return SweepSession(
        sweep_key,
        destination,
        unspent_source=source,
        broadcaster=broadcaster or FakeBroadcaster(),
    )


# ---------------------------------------------------------------------------
# Balance fetch
# ---------------------------------------------------------------------------


class TestFetchBalance:
    async def test_funded(self, sweep_key, destination, funded):
        source = FakeSource(funded)
        session = _session(sweep_key, destination, source)
        assert await session.fetch_balance() is funded
        assert session.outputs is funded
        assert session.tracker.state == SweepState.INPUT
        assert source.calls == [sweep_key.address]

    async def test_empty_result(self, sweep_key, destination):
        session = _session(sweep_key, destination, FakeSource(error=EmptyResultError("none")))
        outputs = await session.fetch_balance()
        assert outputs is not None and outputs.is_empty
        assert session.tracker.failure_reason == FailureReason.ZERO_BALANCE

    @pytest.mark.parametrize("error", [NetworkError("down"), ProtocolError("bad json")])
    async def test_fetch_failure(self, sweep_key, destination, error):
        session = _session(sweep_key, destination, FakeSource(error=error))
        assert await session.fetch_balance() is None
        assert session.tracker.state == SweepState.FAILED
        assert session.tracker.failure_reason == FailureReason.FETCH_FAILED

    async def test_unconfirmed(self, sweep_key, destination, make_utxo):
        outputs = UnspentOutputSet([make_utxo(5 * FEE), make_utxo(FEE, 1)])
        session = _session(sweep_key, destination, FakeSource(outputs))
        await session.fetch_balance()
        assert session.tracker.failure_reason == FailureReason.UNCONFIRMED_FUNDS

    async def test_refetch_while_input(self, sweep_key, destination, funded):
        source = FakeSource(funded)
        session = _session(sweep_key, destination, source)
        await session.fetch_balance()
        await session.fetch_balance()
        assert len(source.calls) == 2

    async def test_single_fetch_in_flight(self, sweep_key, destination, funded):
        gate = asyncio.Event()
        session = _session(sweep_key, destination, FakeSource(funded, gate=gate))
        first = asyncio.create_task(session.fetch_balance())
        await asyncio.sleep(0)
        with pytest.raises(SweepInProgressError):
            await session.fetch_balance()
        with pytest.raises(SweepInProgressError):
            await session.sweep()
        gate.set()
        assert await first is funded

    async def test_cancel_pending_fetch(self, sweep_key, destination, funded):
        gate = asyncio.Event()
        session = _session(sweep_key, destination, FakeSource(funded, gate=gate))
        pending = asyncio.create_task(session.fetch_balance())
        await asyncio.sleep(0)
        assert session.cancel() is True
        assert await pending is None
        assert session.tracker.state == SweepState.INPUT
        assert session.outputs is None

    async def test_fetch_after_failure_rejected(self, sweep_key, destination):
        session = _session(sweep_key, destination, FakeSource(error=NetworkError("down")))
        await session.fetch_balance()
        with pytest.raises(InvalidTransitionError):
            await session.fetch_balance()


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------


class TestSweep:
    async def test_sent(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster(
            [
                ConfidenceSnapshot(ConfidenceKind.PENDING, 1),
                ConfidenceSnapshot(ConfidenceKind.PENDING, 2),
            ]
        )
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        states = []
        session.tracker.subscribe(lambda snap: states.append(snap.state))
        await session.fetch_balance()
        snapshot = await session.sweep()

        assert snapshot.state == SweepState.SENT
        assert states == [SweepState.PREPARING, SweepState.SENDING, SweepState.SENT]
        tx = session.transaction
        assert tx is not None
        assert snapshot.txid == tx.txid
        assert tx.output_value == 2 * FEE
        assert broadcaster.submitted == [tx.raw_hex]
        for i, utxo in enumerate(funded):
            assert verify_input(tx.transaction, i, utxo.locking_script)

    async def test_dead(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster(
            [
                ConfidenceSnapshot(ConfidenceKind.PENDING, 1),
                ConfidenceSnapshot(ConfidenceKind.DEAD),
                ConfidenceSnapshot(ConfidenceKind.BUILDING, 5),
            ]
        )
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.state == SweepState.FAILED
        assert snapshot.failure_reason == FailureReason.BROADCAST_REJECTED

    async def test_feed_closed_while_pending(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster([ConfidenceSnapshot(ConfidenceKind.PENDING, 1)])
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.state == SweepState.SENDING

    async def test_submission_rejected(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster(error=BroadcastRejectedError("malformed"))
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.state == SweepState.FAILED
        assert snapshot.failure_reason == FailureReason.BROADCAST_REJECTED
        assert "rejected" in snapshot.message

    @pytest.mark.parametrize(
        "error", [BroadcastFailedError("relay down"), RelayError("unreachable")]
    )
    async def test_submission_outcome_unknown(self, sweep_key, destination, funded, error):
        broadcaster = FakeBroadcaster(error=error)
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.state == SweepState.FAILED
        assert snapshot.failure_reason == FailureReason.BROADCAST_FAILED
        assert "rejected" not in snapshot.message

    async def test_unexpected_broadcaster_error(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster(error=RuntimeError("boom"))
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        states = []
        session.tracker.subscribe(lambda snap: states.append(snap.state))
        await session.fetch_balance()
        with pytest.raises(RuntimeError, match="boom"):
            await session.sweep()
        assert session.tracker.state == SweepState.FAILED
        assert session.tracker.failure_reason == FailureReason.BROADCAST_FAILED
        assert states[-1] == SweepState.FAILED

    async def test_insufficient_funds(self, sweep_key, destination, make_utxo):
        broadcaster = FakeBroadcaster()
        outputs = UnspentOutputSet([make_utxo(FEE)])
        session = _session(sweep_key, destination, FakeSource(outputs), broadcaster)
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.failure_reason == FailureReason.INSUFFICIENT_FUNDS
        assert session.transaction is None
        assert broadcaster.submitted == []

    async def test_key_mismatch_is_build_failure(self, sweep_key, other_key, destination, make_utxo):
        from paper_sweep.doge.script import p2pkh_lock_script_from_pubkey

        foreign = make_utxo(5 * FEE, script=p2pkh_lock_script_from_pubkey(other_key.public_key))
        session = _session(sweep_key, destination, FakeSource(UnspentOutputSet([foreign])))
        await session.fetch_balance()
        snapshot = await session.sweep()
        assert snapshot.failure_reason == FailureReason.BUILD_FAILED

    async def test_sweep_requires_fetch(self, sweep_key, destination):
        session = _session(sweep_key, destination, FakeSource())
        with pytest.raises(InvalidTransitionError):
            await session.sweep()

    async def test_not_cancellable_after_preparing(self, sweep_key, destination, funded):
        session = _session(sweep_key, destination, FakeSource(funded))
        await session.fetch_balance()
        await session.sweep()
        assert session.cancel() is False

    async def test_cannot_sweep_twice(self, sweep_key, destination, funded):
        broadcaster = FakeBroadcaster([ConfidenceSnapshot(ConfidenceKind.BUILDING)])
        session = _session(sweep_key, destination, FakeSource(funded), broadcaster)
        await session.fetch_balance()
        await session.sweep()
        with pytest.raises(InvalidTransitionError):
            await session.sweep()
        assert len(broadcaster.submitted) == 1
