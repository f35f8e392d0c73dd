"""Finds feasible departure chains across line segments and transfer points."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .feed_client import FeedClient
from .models import LineSegment, StopTimeUpdate, TransferPoint
from .travel_times import TravelTimeTable

logger = logging.getLogger(__name__)


@dataclass
class ChainLeg:
    """One boarded train within a chain."""
    segment: LineSegment
    departure: StopTimeUpdate
    departure_time: int  # Unix timestamp the train leaves segment.from_station
    arrival_time: int  # Unix timestamp the train reaches segment.to_station
    travel_minutes: int
    travel_time_known: bool  # False when the fallback travel time was used
    transfer: Optional[TransferPoint] = None  # Transfer made before boarding this leg


@dataclass
class Chain:
    """A feasible sequence of connecting departures from origin to destination."""
    legs: List[ChainLeg]
    walk_to_first: int
    walk_from_last: int
    now: float

    @property
    def leave_by(self) -> int:
        return self.legs[0].departure_time - self.walk_to_first * 60

    @property
    def arrival_time(self) -> int:
        return self.legs[-1].arrival_time + self.walk_from_last * 60

    @property
    def transfers(self) -> int:
        return len(self.legs) - 1


class SegmentPlanner:
    """
    Connects realtime departures across a fixed chain of segments.

    Selection is greedy: at each transfer the earliest departure at or after
    (arrival + transfer time) is taken. Every starting departure that can be
    connected produces one chain; ranking happens later.
    """

    def __init__(
        self,
        feed_client: FeedClient,
        travel_times: Optional[TravelTimeTable] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.feed_client = feed_client
        self.travel_times = travel_times or TravelTimeTable()
        self._clock = clock

    async def fetch_segment_departures(self, segments: Sequence[LineSegment]) -> List[List[StopTimeUpdate]]:
        """Fetch departures for every segment concurrently, in segment order."""
        return list(
            await asyncio.gather(
                *(
                    self.feed_client.fetch_departures(
                        segment.feed_url, segment.directional_stop_id, line=segment.line
                    )
                    for segment in segments
                )
            )
        )

    async def plan_chain(
        self,
        segments: Sequence[LineSegment],
        transfer_points: Sequence[TransferPoint],
        walk_to_first: int,
        walk_from_last: int,
        now: Optional[float] = None,
    ) -> List[Chain]:
        """
        Find every feasible chain over the given segments.

        Args:
            segments: Ordered line segments from origin station to destination station.
            transfer_points: transfer_points[i] joins segments[i] and segments[i + 1].
            walk_to_first: Minutes to walk from the origin to the first station.
            walk_from_last: Minutes to walk from the last station to the destination.
            now: Reference time in epoch seconds. Defaults to the clock.

        Returns:
            Chains in first-departure order; empty if nothing connects.

        Raises:
            FeedError: If any segment's feed cannot be fetched or decoded.
        """
        _check_shape(segments, transfer_points)
        departures = await self.fetch_segment_departures(segments)
        if now is None:
            now = self._clock()
        chains = self.connect(segments, transfer_points, departures, walk_to_first, walk_from_last, now)
        lines = "→".join(segment.line for segment in segments)
        logger.info(f"Found {len(chains)} feasible {lines} chains")
        return chains

    def connect(
        self,
        segments: Sequence[LineSegment],
        transfer_points: Sequence[TransferPoint],
        departures: Sequence[Sequence[StopTimeUpdate]],
        walk_to_first: int,
        walk_from_last: int,
        now: float,
    ) -> List[Chain]:
        """Build chains from already-fetched departures; departures[i] belongs to segments[i]."""
        _check_shape(segments, transfer_points)
        if len(departures) != len(segments):
            raise ValueError(f"Expected departures for {len(segments)} segments, got {len(departures)}")

        ordered = [_sorted_departures(segment_departures) for segment_departures in departures]
        chains: List[Chain] = []

        for first in ordered[0]:
            first_departure = first.departure_epoch
            if first_departure - walk_to_first * 60 < now:
                continue

            legs = [self._leg(segments[0], first, None)]
            for index in range(1, len(segments)):
                transfer = transfer_points[index - 1]
                earliest = legs[-1].arrival_time + transfer.transfer_minutes * 60
                connection = next((d for d in ordered[index] if d.departure_epoch >= earliest), None)
                if connection is None:
                    break
                legs.append(self._leg(segments[index], connection, transfer))

            if len(legs) == len(segments):
                chains.append(Chain(legs=legs, walk_to_first=walk_to_first, walk_from_last=walk_from_last, now=now))

        return chains

    def _leg(self, segment: LineSegment, departure: StopTimeUpdate, transfer: Optional[TransferPoint]) -> ChainLeg:
        travel_minutes = self.travel_times.minutes_for(segment.line, segment.from_station, segment.to_station)
        departure_time = departure.departure_epoch
        return ChainLeg(
            segment=segment,
            departure=departure,
            departure_time=departure_time,
            arrival_time=departure_time + travel_minutes * 60,
            travel_minutes=travel_minutes,
            travel_time_known=self.travel_times.is_known(segment.line, segment.from_station, segment.to_station),
            transfer=transfer,
        )


def _check_shape(segments: Sequence[LineSegment], transfer_points: Sequence[TransferPoint]) -> None:
    if not segments:
        raise ValueError("A chain needs at least one segment")
    if len(transfer_points) != len(segments) - 1:
        raise ValueError(
            f"{len(segments)} segments need {len(segments) - 1} transfer points, got {len(transfer_points)}"
        )


def _sorted_departures(departures: Sequence[StopTimeUpdate]) -> List[StopTimeUpdate]:
    usable = [d for d in departures if d.departure_epoch is not None]
    return sorted(usable, key=lambda d: d.departure_epoch)
