"""
cylinder_config -- single public entrypoint for ledger settings.

Responsibility:
    ``get_active_settings()`` is the only way services, the batch runner
    and the CLI obtain settings.  It reads the packaged defaults or the
    file named by ``CYLINDER_LEDGER_CONFIG``.

Architecture position:
    Configuration -- sits above ``cylinder_kernel``; the kernel never
    imports from here.  Services receive a ``LedgerSettings`` instance by
    constructor injection.

Failure modes:
    - ``FileNotFoundError`` -- the configured path does not exist.
    - ``ValueError`` -- the document fails validation.

Every successful call emits a ``CYLINDER_CONFIG_TRACE`` log entry with the
source path and settings checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cylinder_config.loader import load_yaml_file, parse_settings
from cylinder_config.schema import (
    AllocationSettings,
    BatchSettings,
    FifoSettings,
    LedgerSettings,
    StockSettings,
)

_logger = logging.getLogger("cylinder_kernel.config")

CONFIG_ENV_VAR = "CYLINDER_LEDGER_CONFIG"
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Load and validate the active ledger settings.

    Resolution order: explicit ``path``, then ``$CYLINDER_LEDGER_CONFIG``,
    then the packaged ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_SETTINGS_PATH
    source = Path(path)

    settings = parse_settings(load_yaml_file(source))

    _logger.info(
        "CYLINDER_CONFIG_TRACE",
        extra={
            "trace_type": "CYLINDER_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": settings.checksum,
            "allocation_strategies": list(settings.allocation.strategies),
            "carry_forward_across_gaps": settings.stock.carry_forward_across_gaps,
        },
    )
    return settings


__all__ = [
    "AllocationSettings",
    "BatchSettings",
    "CONFIG_ENV_VAR",
    "DEFAULT_SETTINGS_PATH",
    "FifoSettings",
    "LedgerSettings",
    "StockSettings",
    "get_active_settings",
]
