"""Shared engine state, built once and passed to every component."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .cache import CacheManager
from .config import Settings
from .feed_client import FeedClient
from .stations import StationCatalog
from .travel_times import TravelTimeTable

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    """Bundle of the cache, static tables, feed client and settings."""
    settings: Settings
    cache: CacheManager
    catalog: StationCatalog
    travel_times: TravelTimeTable
    feed_client: FeedClient

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        catalog: Optional[StationCatalog] = None,
        travel_times: Optional[TravelTimeTable] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> "EngineContext":
        """
        Build a context, filling anything not given with defaults.

        Args:
            settings: Engine settings. Defaults to Settings.from_env().
            catalog: Station directory. Defaults to the built-in table.
            travel_times: Segment travel times. Defaults to the built-in table.
            http_client: HTTP client for feed requests; created lazily if omitted.
            clock: Wall-clock source in epoch seconds.
            cache_clock: Monotonic clock used for cache expiry.
        """
        settings = settings or Settings.from_env()
        cache = CacheManager(clock=cache_clock)
        context = cls(
            settings=settings,
            cache=cache,
            catalog=catalog or StationCatalog(),
            travel_times=travel_times or TravelTimeTable(),
            feed_client=FeedClient(cache, settings=settings, http_client=http_client, clock=clock),
        )
        logger.debug(f"Created engine context with {len(context.catalog)} stations")
        return context

    async def close(self) -> None:
        await self.feed_client.close()
