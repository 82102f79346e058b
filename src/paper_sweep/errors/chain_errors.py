"""Relay-related errors."""

from __future__ import annotations

from paper_sweep.errors.sweep_errors import SweepError


class RelayError(SweepError):
    """Error from the transaction relay."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, code="relay-error")
        self.status_code = status_code
