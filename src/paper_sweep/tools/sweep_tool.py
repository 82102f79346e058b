#!/usr/bin/env python3
"""Paper Key Sweep Tool — inspect a paper key and sweep its funds.

A standalone CLI utility for emptying a printed private key:

    # Show the address a WIF private key controls
    python -m paper_sweep.tools.sweep_tool address <wif>

    # Check the confirmed and unconfirmed balance of a paper key
    python -m paper_sweep.tools.sweep_tool balance <wif>

    # Move every confirmed coin on the paper key to a destination address
    python -m paper_sweep.tools.sweep_tool sweep <wif> <destination>

Settings come from PAPERSWEEP_* environment variables or the YAML file named
by PAPERSWEEP_CONFIG_PATH (set PAPERSWEEP_NETWORK=testnet for testnet keys,
and PAPERSWEEP_RELAY__URL before sweeping).
"""

from __future__ import annotations

import asyncio
import logging
import sys

from paper_sweep.config.settings import SweepConfig
from paper_sweep.errors.sweep_errors import SweepError
from paper_sweep.sweep.key import SweepKey
from paper_sweep.sweep.policy import KOINU_PER_COIN


def _coins(koinu: int) -> str:
    return f"{koinu:>16,} koinu  ({koinu / KOINU_PER_COIN:.8f} DOGE)"


def _load_key(config: SweepConfig, wif: str) -> SweepKey:
    return SweepKey.from_wif(wif, config.chain_params)


def _cmd_address(config: SweepConfig, wif: str) -> None:
    """Print the address controlled by a paper key."""
    key = _load_key(config, wif)
    print(f"Network:  {config.network}")
    print(f"Address:  {key.address}")


def _cmd_balance(config: SweepConfig, wif: str) -> None:
    """Fetch and print the balance of a paper key."""
    from paper_sweep.chain.unspent.client import UnspentClient
    from paper_sweep.errors.sweep_errors import EmptyResultError

    key = _load_key(config, wif)

    async def _run() -> None:
        client = UnspentClient(config.unspent, config.policy.to_policy())
        await client.connect()
        try:
            try:
                outputs = await client.fetch(key.address)
            except EmptyResultError:
                print(f"No unspent outputs for {key.address}")
                return
            print(f"Address:      {key.address}")
            print(f"Confirmed:    {_coins(outputs.confirmed_balance)}")
            print(f"Unconfirmed:  {_coins(outputs.unconfirmed_balance)}")
            print(f"Total:        {_coins(outputs.total_balance)}")
            print(f"Outputs:      {len(outputs)}")
        finally:
            await client.close()

    asyncio.run(_run())


def _cmd_sweep(config: SweepConfig, wif: str, destination: str) -> int:
    """Sweep a paper key into *destination*. Returns the process exit code."""
    from paper_sweep.chain.relay import RelayBroadcaster, RelayService
    from paper_sweep.chain.unspent.client import UnspentClient
    from paper_sweep.doge.address import validate_address
    from paper_sweep.sweep.builder import SweepTransactionBuilder
    from paper_sweep.sweep.session import SweepSession
    from paper_sweep.sweep.tracker import SweepState

    key = _load_key(config, wif)
    if not validate_address(destination, config.chain_params):
        print(f"Invalid destination address for {config.network}: {destination}")
        return 1
    policy = config.policy.to_policy()

    async def _run() -> int:
        client = UnspentClient(config.unspent, policy)
        relay = RelayService(config.relay)
        await relay.connect()
        await client.connect()
        try:
            session = SweepSession(
                key,
                destination,
                unspent_source=client,
                broadcaster=RelayBroadcaster(
                    relay,
                    poll_interval=config.relay.poll_interval,
                    max_polls=config.relay.max_polls,
                ),
                builder=SweepTransactionBuilder(policy),
            )
            session.tracker.subscribe(lambda snap: print(f"  [{snap.state}] {snap.message}"))

            print(f"Sweeping {key.address} -> {destination}")
            outputs = await session.fetch_balance()
            if outputs is not None and session.tracker.state == SweepState.INPUT:
                print(f"Confirmed balance: {_coins(outputs.confirmed_balance)}")
                await session.sweep()

            snapshot = session.snapshot()
            if session.transaction is not None:
                tx = session.transaction
                print(f"Transaction:  {tx.txid}")
                print(f"Amount:       {_coins(tx.output_value)}")
                print(f"Fee:          {_coins(tx.fee)}")
            print(f"Result:       {snapshot.message}")
            return 0 if snapshot.state in (SweepState.SENT, SweepState.SENDING) else 1
        finally:
            await relay.close()
            await client.close()

    return asyncio.run(_run())


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(__doc__)
        sys.exit(1)

    config = SweepConfig()
    if config.debug:
        logging.basicConfig(level=logging.DEBUG)

    cmd = args[0].lower()
    try:
        if cmd == "address":
            if len(args) < 2:
                print("Usage: sweep_tool address <wif>")
                sys.exit(1)
            _cmd_address(config, args[1])
        elif cmd == "balance":
            if len(args) < 2:
                print("Usage: sweep_tool balance <wif>")
                sys.exit(1)
            _cmd_balance(config, args[1])
        elif cmd == "sweep":
            if len(args) < 3:
                print("Usage: sweep_tool sweep <wif> <destination>")
                sys.exit(1)
            sys.exit(_cmd_sweep(config, args[1], args[2]))
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except SweepError as exc:
        print(f"Error ({exc.code}): {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
