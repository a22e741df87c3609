"""Validated settings models for the ad server and the display client."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from infotavle.ads.exceptions import ConfigurationError

DEFAULT_AD_DURATION_MS = 20000
DEFAULT_DISCOVERY_TTL_MS = 600000


class AdServerSettings(BaseModel):
    """Options consumed by the discovery engine."""

    base_url: str = Field(..., description="Base URL of the remote asset server")
    rotating_prefix: str = "rotating-"
    static_prefix: str = "static-"
    static_count: int = Field(default=4, ge=0)
    extensions: list[str] = Field(
        default_factory=lambda: [".png", ".mp4"],
        min_length=1,
        description="File extensions to try per slot, in priority order",
    )
    max_rotating_ads: int = Field(default=50, ge=1)
    # A run of this many absent slots is taken as the end of the numbered series
    max_consecutive_misses: int = Field(default=3, ge=1)
    default_ad_duration_ms: int = Field(default=DEFAULT_AD_DURATION_MS, gt=0)
    discovery_ttl_ms: int = Field(default=DEFAULT_DISCOVERY_TTL_MS, gt=0)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    durations_filename: str = "ad-durations.txt"

    model_config = ConfigDict(frozen=True)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so asset URLs are joined with a single slash."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        """Ensure every extension carries its leading dot."""
        return [ext if ext.startswith(".") else f".{ext}" for ext in (e.strip() for e in v) if ext]

    @property
    def discovery_ttl_seconds(self) -> float:
        return self.discovery_ttl_ms / 1000.0


class DisplaySettings(BaseModel):
    """Options consumed by the rotation scheduler and update manager."""

    server_url: str = "http://localhost:3000"
    default_ad_duration_ms: int = Field(default=DEFAULT_AD_DURATION_MS, gt=0)
    # Cache busting is suppressed while the local hour is in [start, end)
    update_check_window_start_hour: int = Field(default=8, ge=0, le=24)
    update_check_window_end_hour: int = Field(default=14, ge=0, le=24)
    update_interval_seconds: float = Field(default=600.0, gt=0)
    preload_lead_ms: int = Field(default=5000, ge=0)
    min_preload_delay_ms: int = Field(default=1000, ge=0)
    fade_ms: int = Field(default=500, ge=0)

    model_config = ConfigDict(frozen=True)


def load_ad_server_settings(cfg: dict[str, Any]) -> AdServerSettings:
    """Build ``AdServerSettings`` from a flat configuration dict.

    Args:
        cfg: Configuration dictionary as produced by ``ConfigManager``

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the asset server URL is missing or a value is invalid
    """
    base_url = cfg.get("ad_server_url")
    if not base_url:
        raise ConfigurationError(
            "Asset server URL not configured; set AD_SERVER_URL or INFOTAVLE_AD_SERVER_URL"
        )

    fields = {
        key: cfg[key]
        for key in (
            "rotating_prefix",
            "static_prefix",
            "static_count",
            "extensions",
            "max_rotating_ads",
            "max_consecutive_misses",
            "default_ad_duration_ms",
            "discovery_ttl_ms",
        )
        if key in cfg
    }
    try:
        return AdServerSettings(base_url=base_url, **fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid ad server settings: {e}") from e


def load_display_settings(cfg: dict[str, Any]) -> DisplaySettings:
    """Build ``DisplaySettings`` from a flat configuration dict.

    Raises:
        ConfigurationError: If a value is invalid
    """
    fields = {
        key: cfg[key]
        for key in (
            "server_url",
            "default_ad_duration_ms",
            "update_check_window_start_hour",
            "update_check_window_end_hour",
            "update_interval_seconds",
        )
        if key in cfg
    }
    try:
        return DisplaySettings(**fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid display settings: {e}") from e
