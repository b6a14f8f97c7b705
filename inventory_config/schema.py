"""
EngineConfig schema.

Frozen runtime configuration for the inventory engine.  The loader parses
YAML into these types; nothing else constructs them from files.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SUPPORTED_TIE_BREAKS = frozenset({"location_id"})


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///inventory.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LocationsConfig:
    # Name of the fallback bin for shipment reversals; None -> is_default flag
    default_location: str | None = None


@dataclass(frozen=True)
class AllocationConfig:
    tie_break: str = "location_id"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class FulfillmentConfig:
    number_prefix: str = "FUL"


@dataclass(frozen=True)
class EngineConfig:
    """The sole runtime configuration artifact."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    locations: LocationsConfig = field(default_factory=LocationsConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    fulfillment: FulfillmentConfig = field(default_factory=FulfillmentConfig)
    checksum: str = ""
