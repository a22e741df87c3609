"""Clock helpers shared by the server and the display client.

Both ``now_local`` and ``now_utc`` honor the INFOTAVLE_TEST_TIME environment
variable (ISO 8601, e.g. "2025-10-27T09:00:00+02:00") so the cache-busting
quiet window can be exercised on a real device without waiting for the clock.
"""

from __future__ import annotations

import datetime
import logging
import os

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


def _test_time_override() -> datetime.datetime | None:
    test_time = os.environ.get("INFOTAVLE_TEST_TIME")
    if not test_time:
        return None
    try:
        return date_parser.isoparse(test_time)
    except ValueError:
        logger.warning("Invalid INFOTAVLE_TEST_TIME=%r; using real clock", test_time)
        return None


def now_local() -> datetime.datetime:
    """Return the current local wall-clock time (timezone aware)."""
    override = _test_time_override()
    if override is not None:
        if override.tzinfo is not None:
            return override
        # Naive overrides are taken as local wall-clock time
        return override.astimezone()
    return datetime.datetime.now().astimezone()


def now_utc() -> datetime.datetime:
    """Return the current time in UTC with tzinfo."""
    return now_local().astimezone(datetime.timezone.utc)


def to_epoch_ms(dt: datetime.datetime) -> int:
    """Milliseconds since the Unix epoch, as used by the cache-busting parameter."""
    return int(dt.timestamp() * 1000)


def serialize_iso(dt: datetime.datetime) -> str:
    """Serialize a datetime as ISO 8601 UTC with millisecond precision and a Z suffix.

    Example:
        2025-10-27T07:00:00.000Z
    """
    utc = dt.astimezone(datetime.timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
