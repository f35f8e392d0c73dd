"""Service alert decoding, severity classification and route correlation."""

import logging
import re
import time
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Set, Union

from google.transit import gtfs_realtime_pb2

from .cache import CacheManager
from .config import RECENT_ALERT_DAYS, Settings
from .exceptions import AlertParseError, FeedError
from .feed_client import FeedClient, normalize_epoch
from .models import (
    ActivePeriod,
    AlertCheck,
    Direction,
    InformedEntity,
    Route,
    ServiceAlert,
    Severity,
    step_lines,
    step_stations,
)
from .stations import StationCatalog

logger = logging.getLogger(__name__)

SEVERE_PHRASES = (
    "suspend",
    "no service",
    "not running",
    "no trains",
    "not in service",
    "out of service",
)
WARNING_PHRASES = (
    "delay",
    "slow",
    "running late",
    "longer wait",
    "longer travel",
    "less frequent",
    "reduced service",
)

_SKIP_PATTERN = re.compile(r"skip|not stopping", re.IGNORECASE)

DirectionArg = Union[Direction, int]


def classify_severity(text: str) -> Severity:
    """Severity from alert wording: suspensions are severe, delays are warnings."""
    lowered = text.lower()
    if any(phrase in lowered for phrase in SEVERE_PHRASES):
        return Severity.SEVERE
    if any(phrase in lowered for phrase in WARNING_PHRASES):
        return Severity.WARNING
    return Severity.INFO


def is_station_skipping(alert: ServiceAlert) -> bool:
    """True if the alert says trains skip, or are not stopping at, a station."""
    return _SKIP_PATTERN.search(f"{alert.header_text} {alert.description_text}") is not None


def escalated_severity(alert: ServiceAlert) -> Severity:
    if is_station_skipping(alert):
        return Severity.SEVERE
    return alert.severity


def _direction_id(direction: DirectionArg) -> int:
    if isinstance(direction, Direction):
        return direction.direction_id
    return int(direction)


def _base_stop_id(stop_id: str) -> str:
    if len(stop_id) > 1 and stop_id[-1] in "NS" and stop_id[-2].isdigit():
        return stop_id[:-1]
    return stop_id


def entity_direction_id(entity: InformedEntity) -> Optional[int]:
    """The entity's direction_id, derived from a directional stop ID when not given."""
    if entity.direction_id is not None:
        return entity.direction_id
    if entity.stop_id and entity.stop_id != _base_stop_id(entity.stop_id):
        direction = Direction.from_stop_id(entity.stop_id)
        if direction is not None:
            return direction.direction_id
    return None


def matches_direction(alert: ServiceAlert, direction: DirectionArg) -> bool:
    """True if any informed entity matches the direction or names no direction."""
    if not alert.informed_entities:
        return True
    wanted = _direction_id(direction)
    for entity in alert.informed_entities:
        entity_direction = entity_direction_id(entity)
        if entity_direction is None or entity_direction == wanted:
            return True
    return False


def affects_lines(alert: ServiceAlert, lines: Iterable[str]) -> bool:
    return bool(set(alert.affected_routes) & set(lines))


def active_alerts(alerts: Sequence[ServiceAlert], now: float, lookahead_minutes: int) -> List[ServiceAlert]:
    """
    Alerts in effect now or starting within the lookahead.

    Alerts without an active period are always active, and station-skipping
    alerts are kept whatever their period says.
    """
    horizon = now + lookahead_minutes * 60
    result = []
    for alert in alerts:
        period = alert.active_period
        if (
            period is None
            or is_station_skipping(alert)
            or period.covers(now)
            or (period.start is not None and now < period.start <= horizon)
        ):
            result.append(alert)
    return result


def relevant_alerts(alerts: Sequence[ServiceAlert], now: float, window_seconds: float) -> List[ServiceAlert]:
    """Alerts whose period overlaps a window centred on now."""
    half = window_seconds / 2
    return [
        alert
        for alert in alerts
        if alert.active_period is None or alert.active_period.overlaps(now - half, now + half)
    ]


def prioritize_for_commute(
    alerts: Sequence[ServiceAlert],
    lines: Iterable[str],
    direction: DirectionArg,
    now: float,
    window_seconds: float,
) -> List[ServiceAlert]:
    """
    Alerts that matter for a commute on the given lines and direction.

    Station-skipping alerts pass regardless of direction or timing; others must
    fall in the relevance window and match the direction. Ordered
    station-skipping first, then severe, warning, info.
    """
    lines = list(lines)
    in_window = {id(alert) for alert in relevant_alerts(alerts, now, window_seconds)}
    selected = []
    for alert in alerts:
        if not affects_lines(alert, lines):
            continue
        if is_station_skipping(alert) or (id(alert) in in_window and matches_direction(alert, direction)):
            selected.append(alert)

    selected.sort(key=lambda a: (0 if is_station_skipping(a) else 1, escalated_severity(a).rank))
    return selected


def _translated_text(translated_string) -> str:
    translations = list(translated_string.translation)
    if not translations:
        return ""
    for preferred in ("en", ""):
        for translation in translations:
            if translation.language == preferred:
                return translation.text
    return translations[0].text


def _informed_entity(selector) -> InformedEntity:
    fields = selector.DESCRIPTOR.fields_by_name
    direction_id = None
    if "direction_id" in fields and selector.HasField("direction_id"):
        direction_id = selector.direction_id
    elif selector.HasField("trip") and selector.trip.HasField("direction_id"):
        direction_id = selector.trip.direction_id

    route_id = selector.route_id or None
    if route_id is None and selector.HasField("trip"):
        route_id = selector.trip.route_id or None

    return InformedEntity(
        agency_id=selector.agency_id or None,
        route_id=route_id,
        route_type=selector.route_type if selector.HasField("route_type") else None,
        direction_id=direction_id,
        stop_id=selector.stop_id or None,
        trip_id=(selector.trip.trip_id or None) if selector.HasField("trip") else None,
    )


def _period(time_range) -> ActivePeriod:
    start = normalize_epoch(time_range.start) if time_range.HasField("start") else None
    end = normalize_epoch(time_range.end) if time_range.HasField("end") else None
    return ActivePeriod(start=start or None, end=end or None)


def _select_period(time_ranges, now: float) -> Optional[ActivePeriod]:
    # Prefer the period in effect, then the next one to start, then the latest one
    periods = [_period(time_range) for time_range in time_ranges]
    if not periods:
        return None
    for period in periods:
        if period.covers(now):
            return period
    upcoming = [p for p in periods if p.start is not None and p.start > now]
    if upcoming:
        return min(upcoming, key=lambda p: p.start)
    return max(periods, key=lambda p: p.end if p.end is not None else float("inf"))


def parse_alerts(feed: gtfs_realtime_pb2.FeedMessage, now: float) -> List[ServiceAlert]:
    """
    Decode service alerts from a feed message.

    Args:
        feed: Decoded GTFS-Realtime feed.
        now: Reference time for choosing among several active periods.

    Returns:
        List of ServiceAlert objects with text-classified severity.
    """
    alerts: List[ServiceAlert] = []

    for entity in feed.entity:
        if not entity.HasField("alert"):
            continue

        alert_obj = entity.alert
        header_text = _translated_text(alert_obj.header_text) if alert_obj.HasField("header_text") else ""
        description_text = (
            _translated_text(alert_obj.description_text) if alert_obj.HasField("description_text") else ""
        )

        informed_entities = [_informed_entity(selector) for selector in alert_obj.informed_entity]
        affected_routes: List[str] = []
        for informed in informed_entities:
            if informed.route_id and informed.route_id not in affected_routes:
                affected_routes.append(informed.route_id)

        alert = ServiceAlert(
            id=entity.id,
            header_text=header_text,
            description_text=description_text,
            affected_routes=affected_routes,
            severity=classify_severity(f"{header_text} {description_text}"),
            informed_entities=informed_entities,
            active_period=_select_period(alert_obj.active_period, now),
        )
        alert.severity = escalated_severity(alert)
        alerts.append(alert)

    logger.debug(f"Parsed {len(alerts)} alerts")
    return alerts


class AlertCorrelator:
    """Fetches service alerts and matches them to routes."""

    CACHE_KEY = "alerts"

    def __init__(
        self,
        feed_client: FeedClient,
        cache: CacheManager,
        catalog: StationCatalog,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.feed_client = feed_client
        self.cache = cache
        self.catalog = catalog
        self.settings = settings or feed_client.settings
        self._clock = clock

    @property
    def _window_seconds(self) -> float:
        return self.settings.alert_relevance_window_hours * 3600

    async def fetch_alerts(self) -> List[ServiceAlert]:
        """
        Get all current service alerts.

        Tries each configured alerts feed in priority order. Never raises:
        if no feed can be read the failure is logged and no alerts are returned.
        """
        try:
            return await self.cache.get_or_compute(
                self.CACHE_KEY, self.settings.alert_cache_ttl, self._fetch_from_feeds
            )
        except AlertParseError as e:
            logger.warning(f"Service alerts unavailable: {e}")
            return []

    async def _fetch_from_feeds(self) -> List[ServiceAlert]:
        errors = []
        for feed_url in self.settings.alert_feeds:
            try:
                feed = await self.feed_client.fetch_feed_message(feed_url, line="alerts")
            except FeedError as e:
                logger.warning(f"Alerts feed {feed_url} failed, trying next: {e}")
                errors.append(str(e))
                continue
            alerts = parse_alerts(feed, self._clock())
            logger.info(f"Loaded {len(alerts)} service alerts from {feed_url}")
            return alerts

        raise AlertParseError("; ".join(errors) or "no alerts feeds configured")

    async def get_active_alerts(
        self, alerts: Optional[List[ServiceAlert]] = None, now: Optional[float] = None
    ) -> List[ServiceAlert]:
        if alerts is None:
            alerts = await self.fetch_alerts()
        if now is None:
            now = self._clock()
        return active_alerts(alerts, now, self.settings.alert_lookahead_minutes)

    async def get_relevant_alerts_for_time_window(
        self,
        window_seconds: Optional[float] = None,
        alerts: Optional[List[ServiceAlert]] = None,
        now: Optional[float] = None,
    ) -> List[ServiceAlert]:
        """Alerts overlapping a window centred on now; the window defaults to four hours."""
        if alerts is None:
            alerts = await self.fetch_alerts()
        if now is None:
            now = self._clock()
        if window_seconds is None:
            window_seconds = self._window_seconds
        return relevant_alerts(alerts, now, window_seconds)

    async def get_upcoming_station_skipping_alerts(self) -> List[ServiceAlert]:
        """Station-skipping alerts scheduled to start in the future."""
        now = self._clock()
        return [
            alert
            for alert in await self.fetch_alerts()
            if is_station_skipping(alert)
            and alert.active_period is not None
            and alert.active_period.start is not None
            and alert.active_period.start > now
        ]

    async def get_recent_station_skipping_alerts(self, days: int = RECENT_ALERT_DAYS) -> List[ServiceAlert]:
        """Station-skipping alerts that ended within the last few days."""
        now = self._clock()
        since = now - days * 86400
        return [
            alert
            for alert in await self.fetch_alerts()
            if is_station_skipping(alert)
            and alert.active_period is not None
            and alert.active_period.end is not None
            and since <= alert.active_period.end < now
        ]

    async def get_prioritized_alerts_for_commute(
        self, lines: Iterable[str], direction: DirectionArg
    ) -> List[ServiceAlert]:
        alerts = await self.fetch_alerts()
        return prioritize_for_commute(alerts, lines, direction, self._clock(), self._window_seconds)

    async def check_route_for_alerts(self, route: Route, direction: DirectionArg) -> AlertCheck:
        """
        Find the alerts that affect a route.

        Any matched alert naming one of the rider's stations (the route's
        stations plus the home stations) makes the route severe, and those
        alerts are listed first.
        """
        alerts = await self.fetch_alerts()
        return self._check(route, direction, alerts)

    async def enrich_routes(
        self, routes: List[Route], direction: DirectionArg, alerts: Optional[List[ServiceAlert]] = None
    ) -> List[Route]:
        """
        Return copies of the routes with alert information attached.

        Alerts are fetched once if not given. The input routes are left unchanged.
        """
        if alerts is None:
            alerts = await self.fetch_alerts()
        enriched: List[Route] = []
        for route in routes:
            check = self._check(route, direction, alerts)
            enriched.append(
                replace(route, has_alerts=check.has_alerts, alert_severity=check.severity, alerts=check.alerts)
            )
        return enriched

    def _check(self, route: Route, direction: DirectionArg, alerts: Sequence[ServiceAlert]) -> AlertCheck:
        lines: List[str] = []
        stations: List[str] = []
        for step in route.steps:
            for line in step_lines(step):
                if line not in lines:
                    lines.append(line)
            for station in step_stations(step):
                if station not in stations:
                    stations.append(station)
        for line in route.lines:
            if line not in lines:
                lines.append(line)
        stations.extend(s for s in self.settings.home_stations if s not in stations)

        rider_stops = self.catalog.stop_ids_for_stations(stations)
        matched = prioritize_for_commute(alerts, lines, direction, self._clock(), self._window_seconds)

        impacting = [alert for alert in matched if _names_stop(alert, rider_stops)]
        others = [alert for alert in matched if not _names_stop(alert, rider_stops)]

        if impacting:
            severity: Optional[Severity] = Severity.SEVERE
        elif matched:
            severity = min((escalated_severity(alert) for alert in matched), key=lambda s: s.rank)
        else:
            severity = None

        return AlertCheck(has_alerts=bool(matched), severity=severity, alerts=impacting + others)


def _names_stop(alert: ServiceAlert, stop_ids: Set[str]) -> bool:
    return any(
        entity.stop_id is not None and _base_stop_id(entity.stop_id) in stop_ids
        for entity in alert.informed_entities
    )
