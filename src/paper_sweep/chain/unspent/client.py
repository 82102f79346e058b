"""Ledger index REST client — unspent outputs of one address.

Async HTTP client for the ledger index queried before a sweep:
- GET /unspent/<address>

The response body is::

    {"success": 1, "unspent_outputs": [
        {"tx_hash": "...", "tx_output_n": 0, "script": "76a9...",
         "value": "100000000", "confirmations": 12}]}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from paper_sweep.errors.sweep_errors import EmptyResultError, NetworkError, ProtocolError
from paper_sweep.sweep.outputs import UnspentOutput, UnspentOutputSet
from paper_sweep.sweep.policy import DEFAULT_POLICY, SweepPolicy

if TYPE_CHECKING:
    from paper_sweep.config.settings import UnspentConfig

logger = logging.getLogger(__name__)


class UnspentClient:
    """Async HTTP client for the ledger index's unspent output endpoint.

    Usage::

        client = UnspentClient(config, policy)
        await client.connect()
        try:
            outputs = await client.fetch("D...")
        finally:
            await client.close()
    """

    def __init__(self, config: UnspentConfig, policy: SweepPolicy = DEFAULT_POLICY) -> None:
        """Initialize the client.

        Args:
            config: Index URL and timeouts.
            policy: Policy the returned output sets are built with.
        """
        self._config = config
        self._policy = policy
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(
                self._config.read_timeout, connect=self._config.connect_timeout
            ),
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, address: str) -> UnspentOutputSet:
        """Get the unspent outputs of *address*.

        Args:
            address: P2PKH address of the paper key.

        Returns:
            The outputs, in the order the index returned them.

        Raises:
            NetworkError: On transport failure, timeout or a non-200 status.
            ProtocolError: If the body is malformed or reports failure.
            EmptyResultError: If the address has no unspent outputs.
        """
        client = self._ensure_connected()
        try:
            resp = await client.get(f"/unspent/{address}")
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Timed out fetching unspent outputs: {exc}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to fetch unspent outputs: {exc}") from exc

        if resp.status_code != 200:
            logger.debug("http status %d when fetching unspent outputs", resp.status_code)
            raise NetworkError(f"Ledger index returned HTTP {resp.status_code}")

        try:
            data: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise ProtocolError("Ledger index returned invalid JSON") from exc
        return self._parse(address, data)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _parse(self, address: str, data: Any) -> UnspentOutputSet:
        if not isinstance(data, dict):
            raise ProtocolError("Ledger index response is not a JSON object")
        if data.get("success") != 1:
            raise ProtocolError(f"Ledger index reported failure: success={data.get('success')!r}")
        items = data.get("unspent_outputs")
        if not isinstance(items, list):
            raise ProtocolError("Ledger index response has no unspent_outputs list")
        if not items:
            raise EmptyResultError(f"No unspent outputs for {address}")

        outputs: list[UnspentOutput] = []
        for item in items:
            if not isinstance(item, dict):
                raise ProtocolError("Unspent output entry is not a JSON object")
            try:
                outputs.append(UnspentOutput.from_dict(item))
            except ValueError as exc:
                raise ProtocolError(f"Error while reading unspent output: {exc}") from exc

        try:
            result = UnspentOutputSet(outputs, policy=self._policy)
        except ValueError as exc:
            raise ProtocolError(f"Ledger index listed an output twice: {exc}") from exc
        logger.debug("Fetched %r for %s", result, address)
        return result

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "UnspentClient is not connected; call connect() first"
            raise RuntimeError(msg)
        return self._client
