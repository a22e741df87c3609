"""Server-side ad discovery: asset probing, duration manifest and result cache."""

from .exceptions import AdEngineError, ConfigurationError, UpstreamUnavailableError
from .models import (
    AssetSeries,
    AssetSlot,
    DiscoveryOutcome,
    DiscoveryResult,
    RotatingAdEntry,
)

__all__ = [
    "AdEngineError",
    "AssetSeries",
    "AssetSlot",
    "ConfigurationError",
    "DiscoveryOutcome",
    "DiscoveryResult",
    "RotatingAdEntry",
    "UpstreamUnavailableError",
]
