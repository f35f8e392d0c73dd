"""CommuteX - Realtime subway route engine for a fixed NYC commute."""

__version__ = "0.1.0"

from .alerts import AlertCorrelator
from .cache import CacheManager
from .config import Settings
from .context import EngineContext
from .exceptions import (
    AlertParseError,
    AllFeedsFailedError,
    CommuteError,
    FeedDecodeError,
    FeedError,
    FeedUnavailableError,
    NoConnectionError,
    StationNotFoundError,
)
from .feed_client import FeedClient
from .models import Direction, Route, ServiceAlert
from .orchestrator import RouteOrchestrator
from .stations import StationCatalog
from .travel_times import TravelTimeTable
from .walking import StaticWalkingTimeProvider, WalkingTimeProvider

__all__ = [
    "RouteOrchestrator",
    "EngineContext",
    "AlertCorrelator",
    "CacheManager",
    "FeedClient",
    "StationCatalog",
    "TravelTimeTable",
    "Settings",
    "StaticWalkingTimeProvider",
    "WalkingTimeProvider",
    "Direction",
    "Route",
    "ServiceAlert",
    "CommuteError",
    "FeedError",
    "FeedUnavailableError",
    "FeedDecodeError",
    "NoConnectionError",
    "AllFeedsFailedError",
    "AlertParseError",
    "StationNotFoundError",
]
