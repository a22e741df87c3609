"""infotavle - ad discovery and rotation engine for an unattended info display.

The package has two halves:

- a small aiohttp server that discovers ad assets on a remote asset server and
  exposes them as JSON (``infotavle.api``, ``infotavle.ads``)
- a display client that polls that JSON and rotates the ads with preloading and
  failure recovery (``infotavle.display``)

Imports are kept light at package level so ``python -m infotavle --help`` works
without touching the network stack.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler when no handler is present yet and sets
    the root level. The INFOTAVLE_DEBUG environment variable (truthy values:
    "1", "true", "yes", "on") forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("INFOTAVLE_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure basic handler if no handlers are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Start the ad discovery server.

    Args:
        args: Optional command line namespace; ``port`` overrides the configured port.
    """
    import logging
    import os

    _init_logging(os.environ.get("INFOTAVLE_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from infotavle.ads.exceptions import ConfigurationError
    from infotavle.api.server import start_server
    from infotavle.core.config_manager import ConfigManager

    cfg = ConfigManager().load_full_config()

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            cfg["server_port"] = int(port)
            logger.debug("Applied command line port override: %d", port)

    logger.info("Starting infotavle ad server")
    try:
        start_server(cfg)
    except ConfigurationError as e:
        logger.error("%s", e)
        raise SystemExit(2) from e


def run_display(args: Optional[object] = None) -> None:
    """Start the headless display client.

    Args:
        args: Optional command line namespace; ``server`` overrides the server URL.
    """
    import asyncio
    import logging
    import os

    _init_logging(os.environ.get("INFOTAVLE_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from infotavle.ads.exceptions import ConfigurationError
    from infotavle.core.config_manager import ConfigManager
    from infotavle.display.update_manager import run_display_client

    cfg = ConfigManager().load_full_config()

    if args is not None:
        server = getattr(args, "server", None)
        if server:
            cfg["server_url"] = server

    logger.info("Starting infotavle display client")
    try:
        asyncio.run(run_display_client(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except ConfigurationError as e:
        logger.error("%s", e)
        raise SystemExit(2) from e
