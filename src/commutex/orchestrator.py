"""Main CommuteX route engine entry point."""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from .alerts import AlertCorrelator
from .builder import RouteBuilder, RouteIdAllocator, TargetTime, to_epoch
from .commutes import ChainPlan, commute_plan
from .context import EngineContext
from .exceptions import AllFeedsFailedError, FeedError, NoConnectionError
from .models import Direction, FeedFailure, Route, ServiceAlert
from .planner import Chain, SegmentPlanner
from .walking import StaticWalkingTimeProvider, WalkingTimeProvider

logger = logging.getLogger(__name__)


class RouteOrchestrator:
    """
    Computes ranked, alert-annotated commute routes from live feeds.

    This class provides methods to:
    - Compute direct, one-transfer and two-transfer routes in parallel
    - Get the current service alerts
    - Attach alerts to routes
    - Flush cached feeds, routes and alerts
    """

    def __init__(
        self,
        context: EngineContext,
        walking_provider: Optional[WalkingTimeProvider] = None,
        alert_correlator: Optional[AlertCorrelator] = None,
        connectivity: Optional[Callable[[], bool]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the orchestrator.

        Args:
            context: Shared engine context.
            walking_provider: Source of walking minutes. Without one, every walk uses
                the default estimate and a warning is logged.
            alert_correlator: Alert matcher. Built from the context if omitted.
            connectivity: Optional probe returning False when the device is offline.
            clock: Wall-clock source in epoch seconds.
        """
        self.context = context
        if walking_provider is None:
            logger.warning("No walking provider given, every walk will use the default estimate")
            walking_provider = StaticWalkingTimeProvider()
        self.walking_provider = walking_provider
        self.planner = SegmentPlanner(context.feed_client, context.travel_times, clock=clock)
        self.builder = RouteBuilder()
        self.alert_correlator = alert_correlator or AlertCorrelator(
            context.feed_client, context.cache, context.catalog, context.settings, clock=clock
        )
        self._connectivity = connectivity
        self._clock = clock

    async def compute_all_routes(
        self,
        origin: str,
        destination: str,
        target_arrival: TargetTime = None,
        direction: Direction = Direction.NORTHBOUND,
        limit: Optional[int] = None,
    ) -> List[Route]:
        """
        Get the best routes across direct, transfer and double-transfer chains.

        Args:
            origin: Rider's starting address.
            destination: Rider's destination address.
            target_arrival: Optional time the rider wants to arrive by.
            direction: NORTHBOUND for the morning commute, SOUTHBOUND for the afternoon.
            limit: Maximum number of routes. Defaults to settings.

        Returns:
            Routes sorted by arrival time, ties broken by departure time.

        Raises:
            NoConnectionError: If the connectivity probe reports offline.
            AllFeedsFailedError: If every chain failed to fetch its feeds.
        """
        plan = commute_plan(self.context.catalog, direction)
        return await self._cached_routes("all", plan.chains, origin, destination, target_arrival, direction, limit)

    async def calculate_all_routes(
        self,
        origin: str,
        destination: str,
        target_arrival: TargetTime = None,
        direction: Direction = Direction.NORTHBOUND,
        limit: Optional[int] = None,
    ) -> List[Route]:
        return await self.compute_all_routes(origin, destination, target_arrival, direction, limit)

    async def calculate_routes(
        self,
        origin: str,
        destination: str,
        target_arrival: TargetTime = None,
        direction: Direction = Direction.NORTHBOUND,
        limit: Optional[int] = None,
    ) -> List[Route]:
        """Get routes on the direct line only."""
        plan = commute_plan(self.context.catalog, direction)
        return await self._cached_routes("direct", (plan.direct,), origin, destination, target_arrival, direction, limit)

    async def get_service_alerts(self) -> List[ServiceAlert]:
        return await self.alert_correlator.fetch_alerts()

    async def enrich_routes_with_alerts(self, routes: List[Route], direction: Direction) -> List[Route]:
        return await self.alert_correlator.enrich_routes(routes, direction)

    def clear_all_caches(self) -> None:
        """Flush cached feeds, routes and alerts."""
        self.context.cache.clear()
        logger.info("Cleared all caches")

    async def _cached_routes(
        self,
        kind: str,
        chain_plans: Sequence[ChainPlan],
        origin: str,
        destination: str,
        target_arrival: TargetTime,
        direction: Direction,
        limit: Optional[int],
    ) -> List[Route]:
        if self._connectivity is not None and not self._connectivity():
            raise NoConnectionError("No internet connection. Realtime train data is unavailable offline.")

        if limit is None:
            limit = self.context.settings.max_routes
        target = to_epoch(target_arrival)
        key = f"routes:{kind}:{origin}|{destination}|{target}|{direction.value}|{limit}"

        async def compute() -> List[Route]:
            return await self._compute_routes(chain_plans, origin, destination, target, direction, limit)

        routes = await self.context.cache.get_or_compute(key, self.context.settings.route_cache_ttl, compute)
        # The cached list and its routes stay private to the cache
        return [replace(route, steps=list(route.steps), alerts=list(route.alerts)) for route in routes]

    async def _compute_routes(
        self,
        chain_plans: Sequence[ChainPlan],
        origin: str,
        destination: str,
        target: Optional[float],
        direction: Direction,
        limit: int,
    ) -> List[Route]:
        now = self._clock()

        # Alerts are fetched alongside the chains; fetch_alerts never raises
        alerts, *results = await asyncio.gather(
            self.alert_correlator.fetch_alerts(),
            *(self._plan(chain_plan, origin, destination, now) for chain_plan in chain_plans),
            return_exceptions=True,
        )
        if isinstance(alerts, BaseException):
            raise alerts

        chains: List[Chain] = []
        failures: List[FeedFailure] = []
        for chain_plan, result in zip(chain_plans, results):
            if isinstance(result, FeedError):
                logger.warning(f"Skipping {chain_plan.name} routes: {result}")
                failures.append(result.to_failure())
            elif isinstance(result, BaseException):
                raise result
            else:
                chains.extend(result)

        if len(failures) == len(chain_plans):
            logger.error(f"All {len(failures)} route feeds failed")
            raise AllFeedsFailedError(failures)

        routes = self.builder.build_all(chains, RouteIdAllocator(), target)
        routes.sort(key=lambda r: (r.arrival_time, r.departure_time))
        routes = routes[:limit]

        routes = await self.alert_correlator.enrich_routes(routes, direction, alerts=alerts)
        logger.info(f"Computed {len(routes)} {direction.value} routes from {len(chains)} feasible chains")
        return routes

    async def _plan(self, chain_plan: ChainPlan, origin: str, destination: str, now: float) -> List[Chain]:
        walk_to_first = await self.walking_provider.walking_minutes(origin, chain_plan.first_station)
        walk_from_last = await self.walking_provider.walking_minutes(destination, chain_plan.last_station)
        return await self.planner.plan_chain(
            chain_plan.segments,
            chain_plan.transfer_points,
            walk_to_first,
            walk_from_last,
            now=now,
        )

    async def close(self) -> None:
        await self.context.close()

    async def __aenter__(self) -> "RouteOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
