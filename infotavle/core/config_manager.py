"""Configuration management for the infotavle server and display client."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


# Integer environment options -> config key
_INT_OPTIONS: dict[str, str] = {
    "INFOTAVLE_MAX_ROTATING_ADS": "max_rotating_ads",
    "INFOTAVLE_STATIC_COUNT": "static_count",
    "INFOTAVLE_MAX_CONSECUTIVE_MISSES": "max_consecutive_misses",
    "INFOTAVLE_DEFAULT_AD_DURATION_MS": "default_ad_duration_ms",
    "INFOTAVLE_DISCOVERY_TTL_MS": "discovery_ttl_ms",
    "INFOTAVLE_UPDATE_WINDOW_START_HOUR": "update_check_window_start_hour",
    "INFOTAVLE_UPDATE_WINDOW_END_HOUR": "update_check_window_end_hour",
}


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - AD_SERVER_URL or INFOTAVLE_AD_SERVER_URL -> 'ad_server_url'
        - INFOTAVLE_EXTENSIONS (comma separated) -> 'extensions'
        - INFOTAVLE_ROTATING_PREFIX / INFOTAVLE_STATIC_PREFIX -> prefixes
        - integer options listed in _INT_OPTIONS
        - INFOTAVLE_WEB_HOST -> 'server_bind'
        - INFOTAVLE_WEB_PORT or PORT -> 'server_port' (int)
        - INFOTAVLE_SERVER_URL -> 'server_url' (display client)
        - INFOTAVLE_UPDATE_INTERVAL_SECONDS -> 'update_interval_seconds' (float)
        - INFOTAVLE_DEBUG -> 'debug_logging'

        Returns:
            Configuration dictionary
        """
        cfg: dict[str, Any] = {}

        ad_server_url = os.environ.get("INFOTAVLE_AD_SERVER_URL") or os.environ.get(
            "AD_SERVER_URL"
        )
        if ad_server_url:
            cfg["ad_server_url"] = ad_server_url

        extensions = os.environ.get("INFOTAVLE_EXTENSIONS")
        if extensions:
            cfg["extensions"] = [ext.strip() for ext in extensions.split(",") if ext.strip()]

        for env_key, cfg_key in (
            ("INFOTAVLE_ROTATING_PREFIX", "rotating_prefix"),
            ("INFOTAVLE_STATIC_PREFIX", "static_prefix"),
        ):
            value = os.environ.get(env_key)
            if value:
                cfg[cfg_key] = value

        for env_key, cfg_key in _INT_OPTIONS.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                cfg[cfg_key] = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)

        host = os.environ.get("INFOTAVLE_WEB_HOST")
        if host:
            cfg["server_bind"] = host

        port = os.environ.get("INFOTAVLE_WEB_PORT") or os.environ.get("PORT")
        if port:
            try:
                cfg["server_port"] = int(port)
            except ValueError:
                logger.warning("Invalid INFOTAVLE_WEB_PORT=%r; ignoring", port)

        server_url = os.environ.get("INFOTAVLE_SERVER_URL")
        if server_url:
            cfg["server_url"] = server_url

        interval = os.environ.get("INFOTAVLE_UPDATE_INTERVAL_SECONDS")
        if interval:
            try:
                cfg["update_interval_seconds"] = float(interval)
            except ValueError:
                logger.warning("Invalid INFOTAVLE_UPDATE_INTERVAL_SECONDS=%r; ignoring", interval)

        if os.environ.get("INFOTAVLE_DEBUG", "").lower() in ("1", "true", "yes"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
