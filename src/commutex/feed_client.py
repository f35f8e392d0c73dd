"""GTFS-Realtime feed fetcher and trip-update decoder."""

import logging
import time
from typing import Any, Callable, List, Mapping, Optional

import httpx
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from .cache import CacheManager
from .config import Settings
from .exceptions import FeedDecodeError, FeedUnavailableError
from .models import StopTimeUpdate

logger = logging.getLogger(__name__)

_NON_FEED_CONTENT_TYPES = ("text/html", "application/json", "application/xml", "text/xml")


def normalize_epoch(value: Any) -> Optional[int]:
    """
    Normalize a feed timestamp to integer epoch seconds.

    Feeds decoded by other tooling can carry 64-bit values as {low, high}
    32-bit halves, as decimal strings or as floats; protobuf gives plain ints.

    Args:
        value: Raw timestamp value.

    Returns:
        Epoch seconds, or None if value is None.

    Raises:
        TypeError: If the value has no recognizable timestamp shape.
        ValueError: If a string value is not an integer.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"Not a timestamp: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return int(value.strip())

    if isinstance(value, Mapping):
        low, high = value.get("low"), value.get("high")
    else:
        low, high = getattr(value, "low", None), getattr(value, "high", None)
    if low is None or high is None:
        raise TypeError(f"Not a timestamp: {value!r}")
    return (int(high) << 32) | (int(low) & 0xFFFFFFFF)


def decode_feed(
    payload: bytes,
    feed_url: str,
    line: Optional[str] = None,
    content_type: Optional[str] = None,
) -> gtfs_realtime_pb2.FeedMessage:
    """
    Decode a GTFS-Realtime FeedMessage.

    Raises:
        FeedDecodeError: If the payload is empty, is not protobuf (e.g. an HTML
            error page), fails to parse, or carries no feed header.
    """
    label = line or feed_url
    if not payload:
        raise FeedDecodeError(f"{label} feed returned an empty response", line=line, feed_url=feed_url)

    if content_type and any(t in content_type.lower() for t in _NON_FEED_CONTENT_TYPES):
        raise FeedDecodeError(
            f"{label} feed returned {content_type} instead of a GTFS-Realtime message",
            line=line,
            feed_url=feed_url,
        )
    if payload.lstrip(b" \t\r")[:1] in (b"<", b"{"):
        raise FeedDecodeError(
            f"{label} feed returned a text document instead of a GTFS-Realtime message",
            line=line,
            feed_url=feed_url,
        )

    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(payload)
    except DecodeError as e:
        raise FeedDecodeError(f"Failed to decode {label} feed: {e}", line=line, feed_url=feed_url) from e

    if not feed.HasField("header"):
        raise FeedDecodeError(f"{label} feed has no GTFS-Realtime header", line=line, feed_url=feed_url)
    return feed


def _event_time(stop_time_update, field_name: str) -> Optional[int]:
    if not stop_time_update.HasField(field_name):
        return None
    event = getattr(stop_time_update, field_name)
    if not event.HasField("time"):
        return None
    return normalize_epoch(event.time)


def _event_delay(stop_time_update) -> Optional[int]:
    for field_name in ("departure", "arrival"):
        if stop_time_update.HasField(field_name):
            event = getattr(stop_time_update, field_name)
            if event.HasField("delay"):
                return event.delay
    return None


def parse_departures(
    feed: gtfs_realtime_pb2.FeedMessage,
    directional_stop_id: str,
    max_results: int,
    now: float,
    route_id: Optional[str] = None,
) -> List[StopTimeUpdate]:
    """
    Extract future departures at one directional stop.

    Args:
        feed: Decoded feed message.
        directional_stop_id: Stop ID with direction suffix (e.g. "F21N").
        max_results: Maximum number of departures to return.
        now: Decode time; departures at or before it are dropped.
        route_id: If given, only trips on this route are kept. Several lines
            share stops within one feed (e.g. the A and C at A41N).

    Returns:
        Departures sorted strictly ascending by departure time.
    """
    departures: List[StopTimeUpdate] = []

    for entity in feed.entity:
        if not entity.HasField("trip_update"):
            continue

        trip_update = entity.trip_update
        if route_id is not None and trip_update.trip.route_id and trip_update.trip.route_id != route_id:
            continue

        for stop_time_update in trip_update.stop_time_update:
            if stop_time_update.stop_id != directional_stop_id:
                continue

            update = StopTimeUpdate(
                stop_id=stop_time_update.stop_id,
                stop_sequence=stop_time_update.stop_sequence,
                arrival_time=_event_time(stop_time_update, "arrival"),
                departure_time=_event_time(stop_time_update, "departure"),
                delay=_event_delay(stop_time_update),
                trip_id=trip_update.trip.trip_id or None,
                route_id=trip_update.trip.route_id or None,
            )

            departure = update.departure_epoch
            if departure is None or departure <= now:
                continue
            departures.append(update)

    departures.sort(key=lambda x: x.departure_epoch)

    # Duplicate trip entities can report the same departure twice
    unique: List[StopTimeUpdate] = []
    for update in departures:
        if unique and unique[-1].departure_epoch == update.departure_epoch:
            continue
        unique.append(update)

    return unique[:max_results]


class FeedClient:
    """Fetches and decodes MTA GTFS-Realtime feeds."""

    def __init__(
        self,
        cache: CacheManager,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the feed client.

        Args:
            cache: Shared cache; decoded feeds are cached per URL.
            settings: Engine settings (timeouts, TTLs, API headers).
            http_client: Optional client to use instead of creating one.
            clock: Wall-clock source in epoch seconds.
        """
        self.cache = cache
        self.settings = settings or Settings()
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.feed_timeout))
        return self._client

    async def fetch_departures(
        self,
        feed_url: str,
        directional_stop_id: str,
        max_results: Optional[int] = None,
        line: Optional[str] = None,
    ) -> List[StopTimeUpdate]:
        """
        Get upcoming departures at a directional stop.

        Args:
            feed_url: Realtime feed carrying the line.
            directional_stop_id: Stop ID with direction suffix (e.g. "F21N").
            max_results: Cap on returned departures. Defaults to settings.
            line: Line to keep departures for; also labels errors and logs.

        Returns:
            Future departures sorted by departure time. Empty if the feed has
            no updates for the stop.

        Raises:
            FeedUnavailableError: On HTTP, timeout or connection failure.
            FeedDecodeError: If the payload is not a usable feed.
        """
        if max_results is None:
            max_results = self.settings.max_departures

        feed = await self.fetch_feed_message(feed_url, line=line)
        departures = parse_departures(feed, directional_stop_id, max_results, now=self._clock(), route_id=line)
        logger.debug(f"Found {len(departures)} upcoming {line or ''} departures at {directional_stop_id}")
        return departures

    async def fetch_feed_message(self, feed_url: str, line: Optional[str] = None) -> gtfs_realtime_pb2.FeedMessage:
        """Fetch and decode a feed, sharing one request per URL within the feed TTL."""

        async def download_and_decode() -> gtfs_realtime_pb2.FeedMessage:
            payload, content_type = await self._download(feed_url, line)
            return decode_feed(payload, feed_url, line=line, content_type=content_type)

        return await self.cache.get_or_compute(
            f"feed:{feed_url}", self.settings.feed_cache_ttl, download_and_decode
        )

    async def _download(self, feed_url: str, line: Optional[str]):
        label = line or feed_url
        logger.debug(f"Fetching {feed_url}")
        try:
            response = await self._get_client().get(
                feed_url,
                headers=self.settings.api_headers(),
                timeout=self.settings.feed_timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timed out fetching {feed_url}: {e}")
            raise FeedUnavailableError(
                f"{label} feed timed out after {self.settings.feed_timeout:g}s",
                reason=FeedUnavailableError.TIMEOUT,
                line=line,
                feed_url=feed_url,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch {feed_url}: {e}")
            raise FeedUnavailableError(
                f"{label} feed unreachable: {e}",
                reason=FeedUnavailableError.NETWORK,
                line=line,
                feed_url=feed_url,
            ) from e

        status = response.status_code
        if not response.is_success:
            if status == 404:
                message = f"{label} feed not found (404). The MTA feed may be temporarily unavailable."
                reason = FeedUnavailableError.NOT_FOUND
            elif status in (401, 403):
                message = f"{label} feed access denied ({status}). API authentication may be required."
                reason = FeedUnavailableError.FORBIDDEN
            elif status >= 500:
                message = f"{label} feed server error ({status}). MTA servers may be down."
                reason = FeedUnavailableError.SERVER_ERROR
            else:
                message = f"{label} feed error: {status} {response.reason_phrase}"
                reason = FeedUnavailableError.HTTP_ERROR
            logger.error(message)
            raise FeedUnavailableError(message, reason=reason, line=line, feed_url=feed_url, status_code=status)

        return response.content, response.headers.get("content-type")

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FeedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
