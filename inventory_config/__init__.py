"""
inventory_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files directly.

Architecture position:
    Sits above ``inventory_kernel`` and below ``inventory_services``.  The
    kernel never imports from this package; the orchestrator passes the
    values it needs into kernel services.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigurationError`` -- schema or value validation failures.

Audit relevance:
    Every successful call logs ``config_loaded`` with the source path and
    the SHA-256 checksum of the parsed document.
"""

from __future__ import annotations

from pathlib import Path

from inventory_config.loader import load_yaml_file, parse_engine_config
from inventory_config.schema import EngineConfig
from inventory_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to inventory_config/defaults.yaml.

    Returns:
        A frozen, validated EngineConfig.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_engine_config(load_yaml_file(source))
    _logger.info(
        "config_loaded",
        extra={"config_path": str(source), "checksum": config.checksum},
    )
    return config


__all__ = ["EngineConfig", "get_active_config", "DEFAULT_CONFIG_PATH"]
