"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Nothing else reads the YAML file or the
    connection-string environment variables.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``; ``bridges`` translates config into kernel inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Environment overrides win over the file for connection strings.

Failure modes:
    - ``FileNotFoundError`` -- configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid keys.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from ledger_config.loader import load_config
from ledger_config.schema import (
    DefaultEntry,
    LedgerConfig,
    PoolConfig,
    ShardConfig,
    StoreConfig,
    VerificationConfig,
)

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_PATH_ENV = "LEDGER_CONFIG"
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "CONFIG_PATH_ENV",
    "DefaultEntry",
    "LedgerConfig",
    "PoolConfig",
    "ShardConfig",
    "StoreConfig",
    "VerificationConfig",
    "get_active_config",
]


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then the
    ``LEDGER_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.

    Args:
        config_path: Explicit YAML file.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        LedgerConfig -- frozen, with env overrides applied.

    Raises:
        FileNotFoundError: If the chosen file does not exist.
        KeyError: If ``directory.url`` is missing.
        ValueError: If a value is invalid.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)

    config = load_config(path, env)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_path": str(path),
            "shard_count": config.shard_count,
            "configured_shards": sorted(config.shard_urls),
        },
    )
    return config
