"""Turns feasible chains into fully described routes."""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional, Union

from .models import (
    Confidence,
    DataSource,
    Route,
    RouteStep,
    TransferStep,
    TransitStep,
    WaitStep,
    WalkStep,
)
from .planner import Chain

logger = logging.getLogger(__name__)

# Route IDs come from a disjoint block per transfer count so merged results never collide
ROUTE_ID_BLOCK = 1000

TargetTime = Union[datetime, float, int, None]


def to_epoch(value: TargetTime) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


def _minutes_after(now: float, epoch: float) -> int:
    # Half-up rounding; shifting by whole minutes never changes the result
    return math.floor((epoch - now) / 60 + 0.5)


class RouteIdAllocator:
    """Hands out route IDs: direct 1-999, one transfer 1000-1999, two transfers 2000-2999."""

    def __init__(self):
        self._issued: Dict[int, int] = {}

    def next_id(self, transfers: int) -> int:
        issued = self._issued.get(transfers, 0)
        if issued >= ROUTE_ID_BLOCK - 1:
            raise ValueError(f"Route ID block for {transfers} transfers is exhausted")
        self._issued[transfers] = issued + 1
        return transfers * ROUTE_ID_BLOCK + issued + 1


class RouteBuilder:
    """Builds Route objects whose timings come only from chain timestamps."""

    def build(self, chain: Chain, route_id: int, target_arrival: TargetTime = None) -> Route:
        """
        Build a route from a feasible chain.

        Steps are: walk, wait, transit, then (transfer, wait, transit) per extra
        leg, then the final walk. Every step boundary is a whole-minute offset
        from chain.now, so step durations add up exactly to the route duration.

        Args:
            chain: Feasible chain from the planner.
            route_id: Identifier for the route.
            target_arrival: Optional time the rider wants to arrive by.

        Returns:
            The described route.
        """
        now = chain.now
        first_leg = chain.legs[0]
        last_leg = chain.legs[-1]

        steps: List[RouteStep] = [
            WalkStep(duration=chain.walk_to_first, to_station=first_leg.segment.from_station)
        ]
        cursor = chain.walk_to_first
        first_boarding: Optional[int] = None
        first_wait = 0

        for leg in chain.legs:
            segment = leg.segment
            if leg.transfer is not None:
                steps.append(
                    TransferStep(
                        duration=leg.transfer.transfer_minutes,
                        station=leg.transfer.station,
                        from_line=leg.transfer.from_line,
                        to_line=leg.transfer.to_line,
                    )
                )
                cursor += leg.transfer.transfer_minutes

            boarding = _minutes_after(now, leg.departure_time)
            wait = boarding - cursor
            if first_boarding is None:
                first_boarding = boarding
                first_wait = wait

            steps.append(
                WaitStep(
                    duration=wait,
                    station=segment.from_station,
                    line=segment.line,
                    direction=segment.direction,
                )
            )
            steps.append(
                TransitStep(
                    duration=leg.travel_minutes,
                    line=segment.line,
                    from_station=segment.from_station,
                    to_station=segment.to_station,
                    departure_time=leg.departure_time,
                    data_source=DataSource.REALTIME if leg.travel_time_known else DataSource.ESTIMATE,
                )
            )
            cursor = boarding + leg.travel_minutes

        transit_time = cursor - first_boarding
        steps.append(WalkStep(duration=chain.walk_from_last, from_station=last_leg.segment.to_station))
        duration = cursor + chain.walk_from_last

        target = to_epoch(target_arrival)
        route = Route(
            id=route_id,
            arrival_time=chain.arrival_time,
            departure_time=first_leg.departure_time,
            leave_by=chain.leave_by,
            duration=duration,
            steps=steps,
            transfers=sum(1 for step in steps if isinstance(step, TransferStep)),
            confidence=confidence_for(steps),
            is_realtime=True,
            starting_station=first_leg.segment.from_station,
            ending_station=last_leg.segment.to_station,
            lines=tuple(leg.segment.line for leg in chain.legs),
            transfer_stations=tuple(leg.transfer.station for leg in chain.legs if leg.transfer is not None),
            wait_time=first_wait,
            walking_to_transit=chain.walk_to_first,
            final_walking_time=chain.walk_from_last,
            transit_time=transit_time,
            arrives_by_target=None if target is None else chain.arrival_time <= target,
        )
        return route

    def build_all(self, chains: List[Chain], allocator: RouteIdAllocator, target_arrival: TargetTime = None) -> List[Route]:
        return [self.build(chain, allocator.next_id(chain.transfers), target_arrival) for chain in chains]


def confidence_for(steps: List[RouteStep]) -> Confidence:
    """
    High when every wait and transit timing comes from live data.

    Walk and transfer steps are fixed estimates by nature and never count
    against confidence.
    """
    estimated = 0
    for step in steps:
        if isinstance(step, (WaitStep, TransitStep)):
            if step.data_source is not DataSource.REALTIME:
                estimated += 1
        elif isinstance(step, (WalkStep, TransferStep)):
            continue
        else:
            raise TypeError(f"Unknown route step: {step!r}")

    if estimated == 0:
        return Confidence.HIGH
    if estimated == 1:
        return Confidence.MEDIUM
    return Confidence.LOW
