"""Sweep settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``PAPERSWEEP_``, nested via ``__``)
2. YAML config file (``config_path`` or ``PAPERSWEEP_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paper_sweep.doge.address import ChainParams, Network
from paper_sweep.sweep.policy import (
    DEFAULT_CONFIRMATION_THRESHOLD,
    DEFAULT_FEE_PER_KB,
    SweepPolicy,
)

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class UnspentConfig(BaseSettings):
    """Ledger index (unspent output query) settings."""

    model_config = SettingsConfigDict(
        env_prefix="PAPERSWEEP_UNSPENT__",
        case_sensitive=False,
    )

    url: str = "https://dogechain.info"
    connect_timeout: float = Field(default=15.0, gt=0)
    read_timeout: float = Field(default=15.0, gt=0)


class RelayConfig(BaseSettings):
    """Transaction relay settings."""

    model_config = SettingsConfigDict(
        env_prefix="PAPERSWEEP_RELAY__",
        case_sensitive=False,
    )

    url: str = ""
    token: str = ""
    timeout: float = Field(default=30.0, gt=0)
    poll_interval: float = Field(default=5.0, gt=0)
    max_polls: int = Field(default=120, ge=1)


class PolicyConfig(BaseSettings):
    """Fee and confirmation policy."""

    model_config = SettingsConfigDict(
        env_prefix="PAPERSWEEP_POLICY__",
        case_sensitive=False,
    )

    fee_per_kb: int = Field(default=DEFAULT_FEE_PER_KB, ge=0)
    confirmation_threshold: int = Field(default=DEFAULT_CONFIRMATION_THRESHOLD, ge=0)

    def to_policy(self) -> SweepPolicy:
        """Freeze into the value handed to the estimator and the unspent set."""
        return SweepPolicy(
            fee_per_kb=self.fee_per_kb,
            confirmation_threshold=self.confirmation_threshold,
        )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


class SweepConfig(BaseSettings):
    """Top-level sweep configuration.

    Loads settings from environment variables (``PAPERSWEEP_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAPERSWEEP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    network: Network = Network.MAINNET
    config_path: str = ""

    unspent: UnspentConfig = Field(default_factory=UnspentConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        for key, val in _load_yaml(config_path).items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``SweepConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))

    @property
    def chain_params(self) -> ChainParams:
        return ChainParams.for_network(self.network)
