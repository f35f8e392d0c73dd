"""Custom exceptions for the CommuteX route engine."""

from typing import List, Optional

from .models import FeedFailure


class CommuteError(Exception):
    """Base exception for route engine errors."""

    pass


class FeedError(CommuteError):
    """Raised when a realtime feed cannot be used; tagged with line and feed URL."""

    def __init__(self, message: str, line: Optional[str] = None, feed_url: Optional[str] = None):
        super().__init__(message)
        self.line = line
        self.feed_url = feed_url

    def to_failure(self) -> FeedFailure:
        return FeedFailure(line=self.line, feed_url=self.feed_url, message=str(self))


class FeedUnavailableError(FeedError):
    """Raised when a feed request fails at the HTTP layer."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    SERVER_ERROR = "server_error"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    NETWORK = "network"

    def __init__(
        self,
        message: str,
        reason: str,
        line: Optional[str] = None,
        feed_url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, line=line, feed_url=feed_url)
        self.reason = reason
        self.status_code = status_code


class FeedDecodeError(FeedError):
    """Raised when a feed payload is empty, malformed or not a GTFS-Realtime message."""

    pass


class NoConnectionError(CommuteError):
    """Raised when the caller reports that the device is offline."""

    pass


class AllFeedsFailedError(CommuteError):
    """Raised when every segment feed failed and no route could be computed."""

    def __init__(self, failures: List[FeedFailure]):
        self.failures = failures
        feeds = ", ".join(
            f"{failure.line or '?'} ({failure.feed_url or 'unknown feed'})" for failure in failures
        )
        super().__init__(f"Unable to fetch realtime data from any feed: {feeds}")


class AlertParseError(CommuteError):
    """Raised when the alerts feed cannot be decoded. Non-fatal for route computation."""

    pass


class StationNotFoundError(CommuteError):
    """Raised when a station or a line at a station is not in the catalog."""

    pass
