"""Data models for ad discovery."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from infotavle.core.time_utils import now_utc, serialize_iso

# Slot id ("007") -> duration in milliseconds
DurationDirectiveMap = Mapping[str, int]


class AssetSeries(str, Enum):
    """Named numbered series on the asset server."""

    ROTATING = "rotating"
    STATIC = "static"


def format_slot_id(number: int | str) -> str:
    """Left-pad a slot number to 3 digits ("7" -> "007"); longer numbers are kept as is."""
    return str(number).zfill(3)


@dataclass(frozen=True)
class AssetSlot:
    """An ordinal position within a named series.

    A slot resolves to at most one URL by trying the configured extensions in
    priority order.
    """

    series: AssetSeries
    number: int

    @property
    def slot_id(self) -> str:
        return format_slot_id(self.number)

    def filename(self, prefix: str, extension: str) -> str:
        return f"{prefix}{self.slot_id}{extension}"

    def candidate_urls(self, base_url: str, prefix: str, extensions: list[str]) -> list[str]:
        """Candidate asset URLs for this slot, highest priority first."""
        return [f"{base_url}/{self.filename(prefix, ext)}" for ext in extensions]


@dataclass(frozen=True)
class DiscoveredAsset:
    """A slot that probed present, with the URL that matched."""

    slot: AssetSlot
    url: str


class RotatingAdEntry(BaseModel):
    """One rotating ad with its on-screen duration.

    The duration is always filled in at construction time (directive value or
    the configured default) so consumers never branch on its presence.
    """

    url: str
    duration: int = Field(..., gt=0, description="On-screen time in milliseconds")

    model_config = ConfigDict(frozen=True)

    @property
    def file_name(self) -> str:
        return self.url.rsplit("/", 1)[-1]


class DiscoveryResult(BaseModel):
    """Result of one discovery run as served on ``GET /api/ads``."""

    rotating: list[RotatingAdEntry] = Field(default_factory=list)
    static: list[str] = Field(default_factory=list)
    last_discovered: datetime = Field(default_factory=now_utc, alias="lastDiscovered")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_serializer("last_discovered")
    def _serialize_last_discovered(self, value: datetime) -> str:
        return serialize_iso(value)

    @classmethod
    def empty(cls) -> DiscoveryResult:
        return cls()

    def to_api_dict(self) -> dict[str, Any]:
        """JSON-ready payload using the wire field names."""
        return self.model_dump(by_alias=True, mode="json")


class DiscoveryOutcome(str, Enum):
    """Where a served discovery result came from."""

    FRESH = "fresh"  # Probed just now
    CACHED = "cached"  # Unexpired cache entry
    STALE = "stale"  # Discovery failed; expired cache entry served
    EMPTY = "empty"  # Discovery failed and nothing was cached
