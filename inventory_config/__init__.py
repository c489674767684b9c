"""
inventory_config -- single public entrypoint for transfer kernel settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  Returns a frozen ``TransferSettings``.

Architecture position:
    Configuration.  Sits above ``inventory_kernel`` and below
    ``inventory_services``.  The kernel MUST NEVER import from this
    package; services pass the values into kernel constructors.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- missing or invalid keys.
"""

from __future__ import annotations

import logging
from pathlib import Path

from inventory_config.loader import load_yaml_file, parse_settings
from inventory_config.schema import DatabaseSettings, TransferSettings

_logger = logging.getLogger("inventory_kernel.config")

# Default settings file shipped with the package
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


def get_active_settings(path: Path | str | None = None) -> TransferSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: Override path to a settings YAML file.  Defaults to the
            packaged settings.yaml.

    Returns:
        TransferSettings parsed and validated from the file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a required key is missing or a value is invalid.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_settings(load_yaml_file(settings_path), str(settings_path))

    _logger.info(
        "settings_loaded",
        extra={
            "source_path": str(settings_path),
            "lock_timeout_seconds": settings.lock_timeout_seconds,
            "large_transfer_warning_ratio": settings.large_transfer_warning_ratio,
            "pool_size": settings.database.pool_size,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DatabaseSettings",
    "TransferSettings",
    "get_active_settings",
]
