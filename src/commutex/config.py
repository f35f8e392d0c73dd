"""Feed endpoints, cache lifetimes and runtime settings."""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# MTA GTFS-Realtime subway feeds, keyed by feed group
SUBWAY_FEEDS: Dict[str, str] = {
    "ace": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-ace",
    "bdfm": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-bdfm",
    "g": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-g",
    "jz": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-jz",
    "nqrw": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-nqrw",
    "l": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-l",
    "1234567s": "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs",
}

LINE_TO_FEED: Dict[str, str] = {
    "A": "ace", "C": "ace", "E": "ace",
    "B": "bdfm", "D": "bdfm", "F": "bdfm", "M": "bdfm",
    "G": "g",
    "J": "jz", "Z": "jz",
    "N": "nqrw", "Q": "nqrw", "R": "nqrw", "W": "nqrw",
    "L": "l",
    "1": "1234567s", "2": "1234567s", "3": "1234567s", "4": "1234567s",
    "5": "1234567s", "6": "1234567s", "7": "1234567s", "S": "1234567s",
}

# Service alert feeds in priority order (primary first)
ALERT_FEEDS: List[str] = [
    "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/camsys%2Fsubway-alerts",
    "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-alerts",
]

FEED_TIMEOUT_SECONDS = 10.0

# Cache lifetimes in seconds
FEED_CACHE_TTL = 30
ROUTE_CACHE_TTL = 60
ALERT_CACHE_TTL = 120

MAX_DEPARTURES = 6
MAX_ROUTES = 5

ALERT_LOOKAHEAD_MINUTES = 30
ALERT_RELEVANCE_WINDOW_HOURS = 4
RECENT_ALERT_DAYS = 7

# The rider's home line and the stations on it they always care about
HOME_LINE = "F"
HOME_STATIONS: Tuple[str, ...] = ("Carroll St", "Bergen St", "Smith-9 Sts", "Jay St-MetroTech")

USER_AGENT = "CommuteX/1.0.0"

# Environment variables
ENV_API_KEY = "MTA_API_KEY"
ENV_DISABLE_AUTH = "MTA_DISABLE_AUTH"
ENV_FEED_TIMEOUT = "COMMUTEX_FEED_TIMEOUT"
ENV_MAX_ROUTES = "COMMUTEX_MAX_ROUTES"


def feed_url_for_line(line: str) -> str:
    """Return the realtime feed URL that carries a subway line."""
    feed_group = LINE_TO_FEED.get(line.upper())
    if feed_group is None:
        raise ValueError(f"Unknown subway line: {line}")
    return SUBWAY_FEEDS[feed_group]


@dataclass
class Settings:
    """Runtime settings for the route engine."""
    api_key: Optional[str] = None
    disable_auth: bool = False
    feed_timeout: float = FEED_TIMEOUT_SECONDS
    feed_cache_ttl: float = FEED_CACHE_TTL
    route_cache_ttl: float = ROUTE_CACHE_TTL
    alert_cache_ttl: float = ALERT_CACHE_TTL
    max_departures: int = MAX_DEPARTURES
    max_routes: int = MAX_ROUTES
    alert_feeds: List[str] = field(default_factory=lambda: list(ALERT_FEEDS))
    alert_lookahead_minutes: int = ALERT_LOOKAHEAD_MINUTES
    alert_relevance_window_hours: float = ALERT_RELEVANCE_WINDOW_HOURS
    home_line: str = HOME_LINE
    home_stations: Tuple[str, ...] = HOME_STATIONS

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Build settings from defaults overridden by environment variables."""
        env = os.environ if environ is None else environ
        settings = cls(
            api_key=env.get(ENV_API_KEY) or None,
            disable_auth=env.get(ENV_DISABLE_AUTH, "").lower() == "true",
        )

        timeout = env.get(ENV_FEED_TIMEOUT)
        if timeout:
            try:
                settings.feed_timeout = float(timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_FEED_TIMEOUT}={timeout!r}")

        max_routes = env.get(ENV_MAX_ROUTES)
        if max_routes:
            try:
                settings.max_routes = int(max_routes)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_MAX_ROUTES}={max_routes!r}")

        return settings

    def api_headers(self) -> Dict[str, str]:
        """Request headers for MTA feed calls."""
        headers = {
            "Accept": "application/x-protobuf",
            "User-Agent": USER_AGENT,
        }
        if self.api_key and not self.disable_auth:
            headers["x-api-key"] = self.api_key
        return headers
