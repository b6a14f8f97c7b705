"""
YAML loader for EngineConfig.

Parsing rules:

* Missing sections and keys fall back to the schema defaults.
* Unknown sections or keys are rejected, so a typo never silently
  disables a setting.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Type or value errors -> ``ConfigurationError`` naming the dotted field.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    SUPPORTED_TIE_BREAKS,
    AllocationConfig,
    DatabaseConfig,
    EngineConfig,
    FulfillmentConfig,
    LocationsConfig,
    LoggingConfig,
)
from inventory_kernel.exceptions import ConfigurationError

_SECTIONS = {
    "database": DatabaseConfig,
    "locations": LocationsConfig,
    "allocation": AllocationConfig,
    "logging": LoggingConfig,
    "fulfillment": FulfillmentConfig,
}

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("<root>", "configuration document must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, cls: type, data: Any):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(name, "section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigurationError(f"{name}.{unknown[0]}", "unknown setting")

    defaults = cls()
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        expected = type(getattr(defaults, key))
        if value is None and getattr(defaults, key) is None:
            kwargs[key] = None
            continue
        if getattr(defaults, key) is None:
            expected = str
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigurationError(f"{name}.{key}", f"expected an integer, got {value!r}")
        if expected is bool and not isinstance(value, bool):
            raise ConfigurationError(f"{name}.{key}", f"expected true/false, got {value!r}")
        if expected is str and not isinstance(value, str):
            raise ConfigurationError(f"{name}.{key}", f"expected a string, got {value!r}")
        kwargs[key] = value
    return cls(**kwargs)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Build and validate an EngineConfig from a parsed YAML mapping."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigurationError(unknown[0], "unknown section")

    sections = {name: _parse_section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}

    database: DatabaseConfig = sections["database"]
    if not database.url:
        raise ConfigurationError("database.url", "must not be empty")
    if database.pool_size < 1:
        raise ConfigurationError("database.pool_size", "must be at least 1")
    if database.max_overflow < 0:
        raise ConfigurationError("database.max_overflow", "must not be negative")

    allocation: AllocationConfig = sections["allocation"]
    if allocation.tie_break not in SUPPORTED_TIE_BREAKS:
        raise ConfigurationError(
            "allocation.tie_break",
            f"unsupported comparator {allocation.tie_break!r}; "
            f"supported: {', '.join(sorted(SUPPORTED_TIE_BREAKS))}",
        )

    logging_config: LoggingConfig = sections["logging"]
    if logging_config.level.upper() not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"unknown level {logging_config.level!r}")

    fulfillment: FulfillmentConfig = sections["fulfillment"]
    if not fulfillment.number_prefix:
        raise ConfigurationError("fulfillment.number_prefix", "must not be empty")

    return EngineConfig(**sections, checksum=compute_checksum(data))
