"""
Settings loader (``inventory_config.loader``).

Responsibility
--------------
Reads the settings YAML file and parses it into the frozen dataclasses of
``inventory_config.schema``.  The public entry point for runtime settings
is ``inventory_config.get_active_settings()``.

Invariants enforced
-------------------
* Every required key must be present; there are no silent defaults for
  the transfer section.
* Types and ranges are checked; a bad value raises ``ValueError`` naming
  the offending key.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid keys  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import DatabaseSettings, TransferSettings


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _require(section: dict[str, Any], key: str, prefix: str) -> Any:
    if key not in section:
        raise ValueError(f"Missing required setting: {prefix}.{key}")
    return section[key]


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Setting {name} must be a number, got {value!r}")
    return float(value)


def _integer(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Setting {name} must be an integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = _require(data, "url", "database")
    if not isinstance(url, str) or not url:
        raise ValueError("Setting database.url must be a non-empty string")

    pool_size = _integer(data.get("pool_size", 20), "database.pool_size")
    max_overflow = _integer(data.get("max_overflow", 10), "database.max_overflow")
    pool_timeout = _integer(data.get("pool_timeout", 30), "database.pool_timeout")
    echo = data.get("echo", False)
    if not isinstance(echo, bool):
        raise ValueError(f"Setting database.echo must be a boolean, got {echo!r}")
    if pool_size < 1:
        raise ValueError("Setting database.pool_size must be at least 1")
    if max_overflow < 0 or pool_timeout < 0:
        raise ValueError("Settings database.max_overflow and pool_timeout cannot be negative")

    return DatabaseSettings(
        url=url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        echo=echo,
    )


def parse_settings(data: dict[str, Any], source_path: str | None = None) -> TransferSettings:
    """Parse a settings mapping into a TransferSettings."""
    transfer = _require(data, "transfer", "settings")
    database = _require(data, "database", "settings")
    if not isinstance(transfer, dict) or not isinstance(database, dict):
        raise ValueError("Settings sections 'transfer' and 'database' must be mappings")

    lock_timeout = _number(
        _require(transfer, "lock_timeout_seconds", "transfer"),
        "transfer.lock_timeout_seconds",
    )
    if lock_timeout <= 0:
        raise ValueError("Setting transfer.lock_timeout_seconds must be positive")

    ratio = _number(
        _require(transfer, "large_transfer_warning_ratio", "transfer"),
        "transfer.large_transfer_warning_ratio",
    )
    if not 0 < ratio <= 1:
        raise ValueError(
            "Setting transfer.large_transfer_warning_ratio must be in (0, 1]"
        )

    return TransferSettings(
        lock_timeout_seconds=lock_timeout,
        large_transfer_warning_ratio=ratio,
        database=parse_database(database),
        source_path=source_path,
    )
