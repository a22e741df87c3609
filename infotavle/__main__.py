"""Command-line entry for infotavle.

``python -m infotavle serve`` runs the ad discovery server and
``python -m infotavle display`` runs the headless rotation client.
"""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_display, run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the infotavle CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="infotavle",
        description="Infotavle - ad discovery server and rotation client for info displays",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m infotavle serve                              # Start server on default port (3000)
  python -m infotavle serve --port 8080                  # Start server on port 8080
  python -m infotavle display --server http://pi:3000    # Rotate ads served by a remote server
        """,
    )

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the ad discovery HTTP server")
    serve.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 3000, or from INFOTAVLE_WEB_PORT env var)",
    )

    display = subparsers.add_parser("display", help="Run the headless ad rotation client")
    display.add_argument(
        "--server",
        metavar="URL",
        help="Base URL of the ad server (default: from INFOTAVLE_SERVER_URL env var)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the infotavle CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "display":
        run_display(args)
    else:
        # Serving is the default so a bare `python -m infotavle` starts the server
        run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
