"""Duration directive manifest parsing.

The asset server may carry an ``ad-durations.txt`` file that overrides the
default on-screen time per rotating slot::

    # Summer campaign
    001: 30s
    007:45

One directive per line, ``<slot>:<seconds>`` with an optional ``s`` suffix.
Lines starting with ``#`` and blank lines are ignored; anything else that does
not match is skipped without failing the whole manifest.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import httpx

from .models import DurationDirectiveMap, format_slot_id

logger = logging.getLogger(__name__)

_DIRECTIVE_RE = re.compile(r"^(\d+):\s*(\d+)s?$", re.IGNORECASE)


class DirectiveStatus(str, Enum):
    """How the duration manifest fetch went."""

    LOADED = "loaded"
    MISSING = "missing"  # 404: operator has not configured custom durations
    UNAVAILABLE = "unavailable"  # Network error or unexpected status


@dataclass(frozen=True)
class DirectiveFetchResult:
    status: DirectiveStatus
    directives: DurationDirectiveMap = field(default_factory=lambda: MappingProxyType({}))


def parse_duration_directives(text: str) -> DurationDirectiveMap:
    """Parse manifest text into a read-only slot id -> milliseconds mapping.

    Args:
        text: Raw manifest body

    Returns:
        Mapping keyed by zero-padded 3-digit slot id

    Example:
        >>> dict(parse_duration_directives("001: 30s\\n# comment\\n\\n007:45"))
        {'001': 30000, '007': 45000}
    """
    durations: dict[str, int] = {}

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        match = _DIRECTIVE_RE.match(line)
        if not match:
            logger.debug("Skipping unparsable duration directive: %r", line)
            continue

        slot_id = format_slot_id(match.group(1))
        seconds = int(match.group(2))
        if seconds <= 0:
            logger.debug("Skipping non-positive duration for ad %s", slot_id)
            continue

        durations[slot_id] = seconds * 1000
        logger.debug("  -> Ad %s: %ds", slot_id, seconds)

    return MappingProxyType(durations)


async def fetch_duration_directives(
    client: httpx.AsyncClient,
    base_url: str,
    filename: str = "ad-durations.txt",
    timeout: float = 5.0,
) -> DirectiveFetchResult:
    """Fetch and parse the duration manifest from the asset server.

    Never raises; a missing or unreachable manifest yields an empty mapping so
    every ad falls back to the default duration.

    Args:
        client: HTTP client to use
        base_url: Asset server base URL (no trailing slash)
        filename: Manifest file name
        timeout: Request timeout in seconds

    Returns:
        DirectiveFetchResult with status and directives
    """
    url = f"{base_url}/{filename}"
    logger.debug("Fetching ad durations from: %s", url)

    try:
        response = await client.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("Error loading %s: %s - using default duration for all ads", filename, e)
        return DirectiveFetchResult(DirectiveStatus.UNAVAILABLE)

    if response.status_code == 404:
        logger.info("%s not found on server - using default duration for all ads", filename)
        return DirectiveFetchResult(DirectiveStatus.MISSING)

    if response.status_code != 200:
        logger.warning(
            "Unexpected status %d for %s - using default duration for all ads",
            response.status_code,
            filename,
        )
        return DirectiveFetchResult(DirectiveStatus.UNAVAILABLE)

    directives = parse_duration_directives(response.text)
    logger.info("Loaded %s with %d custom durations", filename, len(directives))
    return DirectiveFetchResult(DirectiveStatus.LOADED, directives)
