"""Relay HTTP client — broadcast and status query.

Provides an async HTTP client for the relay v1 API:
- POST /v1/tx — Broadcast a raw transaction (hex)
- GET /v1/tx/{txid} — Query transaction status
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from paper_sweep.chain.relay.models import TxStatusInfo
from paper_sweep.errors.chain_errors import RelayError

if TYPE_CHECKING:
    from paper_sweep.config.settings import RelayConfig

logger = logging.getLogger(__name__)

_ERROR_MAP = {
    401: "Relay authentication failed",
    409: "Transaction already exists (conflict)",
    461: "Transaction is malformed",
    462: "Transaction input is invalid or already spent",
    465: "Fee too low",
}


class RelayService:
    """Async HTTP client for the transaction relay API.

    Usage::

        relay = RelayService(config)
        await relay.connect()
        try:
            info = await relay.broadcast("raw_hex_here")
        finally:
            await relay.close()
    """

    def __init__(self, config: RelayConfig) -> None:
        """Initialize the relay service.

        Args:
            config: Relay configuration (url, token, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client.

        Raises:
            RelayError: If no relay URL is configured.
        """
        if not self._config.url:
            msg = "No relay URL configured (set PAPERSWEEP_RELAY__URL)"
            raise RelayError(msg, status_code=500)

        headers: dict[str, str] = {
            "Content-Type": "application/json",
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers=headers,
            timeout=self._config.timeout,
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

    async def broadcast(self, raw_tx: str) -> TxStatusInfo:
        """Submit a transaction to the relay.

        Args:
            raw_tx: Serialized transaction hex.

        Returns:
            TxStatusInfo with the submission result. An accepted submission
            whose body cannot be read yields an empty TxStatusInfo.

        Raises:
            RelayError: On HTTP or API errors.
        """
        client = self._ensure_connected()

        try:
            response = await client.post("/v1/tx", json={"rawTx": raw_tx})
        except httpx.HTTPError as exc:
            raise RelayError(f"Relay broadcast failed: {exc}") from exc

        if response.status_code in (200, 201):
            try:
                info = self._parse(response, "broadcast")
            except RelayError as exc:
                # Accepted; the status is learned by polling.
                logger.warning("%s (HTTP %d)", exc, response.status_code)
                return TxStatusInfo()
            logger.debug("Relay accepted %s with status %s", info.txid, info.tx_status)
            return info

        self._raise_for_status(response, "broadcast")
        return TxStatusInfo()  # unreachable, satisfies type checker

    async def query_transaction(self, txid: str) -> TxStatusInfo:
        """Query the status of a transaction by txid.

        Args:
            txid: The 64-character hex transaction ID.

        Returns:
            TxStatusInfo with the current status.

        Raises:
            RelayError: On HTTP or API errors.
        """
        client = self._ensure_connected()

        try:
            response = await client.get(f"/v1/tx/{txid}")
        except httpx.HTTPError as exc:
            raise RelayError(f"Relay query failed: {exc}") from exc

        if response.status_code == 200:
            return self._parse(response, "query")

        self._raise_for_status(response, "query")
        return TxStatusInfo()  # unreachable

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Relay service not connected. Call connect() first."
            raise RelayError(msg, status_code=500)
        return self._client

    @staticmethod
    def _parse(response: httpx.Response, operation: str) -> TxStatusInfo:
        try:
            body = response.json()
        except ValueError as exc:
            raise RelayError(f"Relay {operation} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise RelayError(f"Relay {operation} returned an unexpected body")
        return TxStatusInfo.from_dict(body)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Raise a RelayError from a non-2xx response."""
        status = response.status_code
        try:
            body = response.json()
            detail = body.get("detail", body.get("title", response.text))
        except (ValueError, AttributeError):
            detail = response.text

        message = _ERROR_MAP.get(status, f"Relay {operation} failed ({status}): {detail}")
        raise RelayError(message, status_code=status)
