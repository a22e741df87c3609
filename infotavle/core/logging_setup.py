"""
Central logging configuration for infotavle.

Keeps the display host quiet by suppressing verbose debug logs from third-party
libraries while maintaining the discovery and rotation diagnostics.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        # Import here to avoid pulling aiohttp into non-server processes
        try:
            from infotavle.middleware import get_request_id

            record.request_id = get_request_id()
        except ImportError:
            record.request_id = "no-request-id"

        return True


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for infotavle.

    Suppresses DEBUG logs from noisy third-party libraries while keeping
    WARNING/ERROR/INFO logs for diagnostics.

    Args:
        debug_mode: Whether to enable debug logging for infotavle modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        INFOTAVLE_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        INFOTAVLE_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("INFOTAVLE_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("INFOTAVLE_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Don't use force=True to preserve the colorized handler from _init_logging
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "aiohttp.web_log": logging.WARNING,
        "httpx": logging.WARNING,  # one line per HEAD probe otherwise
        "httpcore": logging.WARNING,
        "asyncio": logging.WARNING,
    }

    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in ("infotavle", "infotavle.ads", "infotavle.display", "infotavle.api"):
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info(
            "Debug logging enabled for infotavle modules. Third-party debug logs suppressed."
        )
    else:
        root_logger.info("Production logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ("infotavle", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
