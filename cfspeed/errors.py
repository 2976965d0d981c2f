"""Exception types raised by cfspeed."""

from __future__ import annotations


class SpeedTestError(Exception):
    """Base class for all cfspeed errors."""


class NetworkError(SpeedTestError):
    """A single request failed at the transport level (DNS, TCP, TLS, timeout).

    Measurement phases treat this as recoverable: the iteration is dropped.
    """


class RequestBuildError(SpeedTestError):
    """The request itself could not be constructed (e.g. malformed URL)."""


class StageError(SpeedTestError):
    """A run stage failed and the whole measurement was aborted."""

    def __init__(self, stage: str, cause: BaseException | str):
        self.stage = stage
        self.cause = cause
        super().__init__(f"failed to {stage}: {cause}")
