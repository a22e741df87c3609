"""Existence checks for candidate asset URLs."""

from __future__ import annotations

import logging
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class ProbeOutcome(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"  # Server answered with anything but 200
    UNREACHABLE = "unreachable"  # Timeout or connection error


class AssetProbe:
    """HEAD-based existence check with a bounded timeout.

    Only a 200 answer counts as present. Errors are folded into the outcome and
    never raised, so one flaky slot cannot abort a discovery run.
    """

    def __init__(self, client: httpx.AsyncClient, timeout: float = 5.0):
        self.client = client
        self.timeout = timeout
        self.unreachable_count = 0

    async def check(self, url: str) -> ProbeOutcome:
        try:
            response = await self.client.head(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            self.unreachable_count += 1
            logger.debug("Probe failed for %s: %s", url, e)
            return ProbeOutcome.UNREACHABLE

        if response.status_code == 200:
            return ProbeOutcome.PRESENT
        return ProbeOutcome.ABSENT

    async def exists(self, url: str) -> bool:
        return await self.check(url) is ProbeOutcome.PRESENT
