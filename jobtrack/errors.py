"""Exception types raised inside the tracking pipeline."""

from __future__ import annotations


class JobTrackError(Exception):
    """Base class for all jobtrack errors."""


class ConfigError(JobTrackError):
    """The config file is missing or contains invalid values."""


class TargetParseError(JobTrackError):
    """A navigation target could not be parsed as an http(s) URL."""

    def __init__(self, raw_target: str, reason: str = "not an http(s) URL"):
        self.raw_target = raw_target
        self.reason = reason
        super().__init__(f"Cannot parse target {raw_target[:200]!r}: {reason}")


class SinkNotConfiguredError(JobTrackError):
    """No sink URL is configured, so nothing can be delivered."""

    def __init__(self, message: str = "Sink URL is not configured"):
        super().__init__(message)


class DeliveryError(JobTrackError):
    """The sink could not be reached or answered with a non-2xx status.

    Attributes:
        status_code: HTTP status of the response, or None for transport errors
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
