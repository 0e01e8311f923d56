"""
pharmacy_config -- single public entrypoint for fulfillment policy.

``get_active_config()`` is the only way runtime code obtains configuration.
It loads a YAML configuration set (the shipped ``sets/default.yaml`` unless
a path is given), validates it, logs a ``PHARMACY_CONFIG_TRACE`` entry and
returns a frozen ``PipelineConfigSet``.  ``pharmacy_config.bridges`` turns
that into the kernel's ``PipelinePolicy``; the kernel never imports this
package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid values.
"""

from __future__ import annotations

from pathlib import Path

from pharmacy_config.loader import load_config
from pharmacy_config.schema import PipelineConfigSet
from pharmacy_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> PipelineConfigSet:
    """
    The ONLY public configuration entrypoint.

    Args:
        path: Configuration file to load.  Defaults to sets/default.yaml.
    """
    config = load_config(Path(path) if path is not None else _DEFAULT_CONFIG)

    _logger.info(
        "PHARMACY_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "flow_count": len(config.flows),
            "tracked_categories": list(config.budget_tracked_categories),
        },
    )
    return config


__all__ = ["PipelineConfigSet", "get_active_config"]
