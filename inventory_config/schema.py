"""
Settings schema (``inventory_config.schema``).

Frozen dataclasses produced by the loader.  Runtime code receives these
objects and never reads the YAML itself.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool parameters passed to init_engine_from_url()."""

    url: str
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False


@dataclass(frozen=True)
class TransferSettings:
    """Complete runtime settings for the transfer kernel."""

    lock_timeout_seconds: float
    large_transfer_warning_ratio: float
    database: DatabaseSettings
    source_path: str | None = None
