"""Exception taxonomy for the CHIPS tracker core."""

from typing import Any


class ChipsTrackerError(Exception):
    """Base exception for tracker errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class NotConfiguredError(ChipsTrackerError):
    """The gateway has no endpoint; callers fall back to demo mode."""

    def __init__(
        self,
        message: str = "Please configure your Google Apps Script Web App URL in Settings",
    ):
        super().__init__(message)


class NetworkError(ChipsTrackerError):
    """Transport failure or a non-success HTTP status."""

    pass


class RemoteError(ChipsTrackerError):
    """The remote store answered with ``success: false``."""

    pass


class ValidationError(ChipsTrackerError):
    """Local input rejected before any network call."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field
