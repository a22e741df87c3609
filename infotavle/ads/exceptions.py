"""Exception hierarchy for the ad discovery engine.

Probe-level failures (timeouts, connection errors, missing duration manifest)
are never raised; they are reported as outcome enums by the probe and the
directive fetcher. The exceptions below cover the failures that do travel up
a call stack before being recovered.
"""


class AdEngineError(Exception):
    """Base exception for all ad discovery and rotation errors."""


class ConfigurationError(AdEngineError):
    """Settings are missing or invalid.

    Raised when:
    - The asset server URL is not configured
    - A numeric option is out of range (e.g. zero default duration)
    """


class UpstreamUnavailableError(AdEngineError):
    """A whole discovery run failed.

    Raised inside the discovery engine when the concurrent lookups blow up as
    a whole. The engine recovers by serving the last cached result, stale if
    necessary, else an empty result; callers of ``discover()`` never see it.
    """
